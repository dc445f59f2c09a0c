"""
Accumulation functions attachable to a Sensor.

Each stat names the Prometheus metric type that backs it and knows how to
apply one recorded value to that metric's labelled child.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Literal

MetricKind = Literal["counter", "gauge"]


class Stat(ABC):
    kind: MetricKind

    @abstractmethod
    def record(self, child: Any, value: float) -> None:
        """Apply one recorded value to the backing child."""


class CumulativeSum(Stat):
    """Running sum of all recorded values. Values must be non-negative."""

    kind: MetricKind = "counter"

    def record(self, child: Any, value: float) -> None:
        child.inc(value)


class Value(Stat):
    """Last recorded value."""

    kind: MetricKind = "gauge"

    def record(self, child: Any, value: float) -> None:
        child.set(value)
