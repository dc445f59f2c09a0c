"""
Connect Error Metrics

Per-task error handling metrics for record-processing pipelines, backed by
a Prometheus collector registry.

Usage:
    from connect_metrics import ConnectMetrics, ConnectorTaskId, ErrorHandlingMetrics

    connect_metrics = ConnectMetrics("worker-1")
    metrics = ErrorHandlingMetrics(ConnectorTaskId("sink-1", 0), connect_metrics)
    metrics.record_failure()
    metrics.record_error_timestamp()
    metrics.close()
"""

from .task_id import ConnectorTaskId
from .settings import MetricsSettings, get_settings
from .exceptions import ConnectMetricsError, MetricsConfigurationError, MetricRemovalError
from .metrics import ConnectMetrics, ConnectMetricsRegistry, MetricGroup, Sensor, CumulativeSum
from .errors import ErrorHandlingMetrics

__version__ = "1.0.0"
__all__ = [
    "ConnectorTaskId",
    "MetricsSettings",
    "get_settings",
    "ConnectMetricsError",
    "MetricsConfigurationError",
    "MetricRemovalError",
    "ConnectMetrics",
    "ConnectMetricsRegistry",
    "MetricGroup",
    "Sensor",
    "CumulativeSum",
    "ErrorHandlingMetrics",
]
