"""Metrics substrate

Tagged metric groups over a Prometheus CollectorRegistry:
- ConnectMetrics: owns the collector registry and caches groups by id
- MetricGroup: shared lifecycle for a tag-scoped set of metrics
- Sensor: records into accumulating metrics (CumulativeSum, Value)
- ConnectMetricsRegistry: name/description templates
"""

from .templates import ConnectMetricsRegistry, MetricName, MetricNameTemplate
from .stats import Stat, CumulativeSum, Value
from .group import MetricGroup, MetricGroupId, Sensor
from .connect_metrics import ConnectMetrics

__all__ = [
    # naming
    "ConnectMetricsRegistry",
    "MetricName",
    "MetricNameTemplate",
    # stats
    "Stat",
    "CumulativeSum",
    "Value",
    # runtime
    "MetricGroup",
    "MetricGroupId",
    "Sensor",
    "ConnectMetrics",
]
