"""
Tagged metric groups and sensors.

A MetricGroup is the unit of lifecycle: everything registered through it
(sensor-backed accumulators and lazily evaluated value metrics) is removed
together by close(). Sensors hand out no references to the underlying
Prometheus children; callers only ever record().
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from connect_metrics.exceptions import MetricRemovalError, MetricsConfigurationError
from connect_metrics.metrics.stats import MetricKind, Stat
from connect_metrics.metrics.templates import MetricName, MetricNameTemplate

if TYPE_CHECKING:
    from connect_metrics.metrics.connect_metrics import ConnectMetrics

ValueFunction = Callable[[int], float]


@dataclass(frozen=True)
class MetricGroupId:
    """Group name plus ordered tags; identifies a group within ConnectMetrics."""

    group_name: str
    tags: tuple[tuple[str, str], ...]

    def tag_map(self) -> dict[str, str]:
        return dict(self.tags)

    def __str__(self) -> str:
        tags = ",".join(f"{k}={v}" for k, v in self.tags)
        return f"{self.group_name}{{{tags}}}"


class Sensor:
    """Named handle that records into one or more accumulating metrics."""

    def __init__(self, name: str, group: MetricGroup):
        self._name = name
        self._group = group
        self._stats: list[tuple[Stat, Any]] = []
        self._closed = False

    @property
    def name(self) -> str:
        return self._name

    def add(self, metric_name: MetricName, stat: Stat) -> None:
        """Attach an accumulating metric to this sensor.

        Args:
            metric_name: Name produced by the owning group's metric_name()
            stat: Accumulation function, e.g. CumulativeSum()

        Raises:
            MetricsConfigurationError: metric already registered in the group,
                or the substrate rejects the name
        """
        child = self._group._register(metric_name, stat.kind)
        self._stats.append((stat, child))

    def record(self, value: float = 1.0) -> None:
        """Apply value to every attached metric. No-op once removed."""
        if self._closed:
            return
        for stat, child in self._stats:
            stat.record(child, value)

    def _close(self) -> None:
        self._closed = True
        self._stats = []


class MetricGroup:
    """A named, tag-scoped collection of metrics with a shared lifecycle.

    Obtained from ConnectMetrics.group(); the same id always maps to the
    same instance for the lifetime of the substrate.

    Example:
        group = connect_metrics.group("task-error-metrics", "connector", "sink-1", "task", "0")
        sensor = group.sensor("total-retries")
        sensor.add(group.metric_name(registry.retries), CumulativeSum())
        sensor.record()
        group.close()
    """

    def __init__(self, metrics: ConnectMetrics, group_id: MetricGroupId):
        self._metrics = metrics
        self._group_id = group_id
        self._lock = threading.RLock()
        self._registered: dict[str, tuple[MetricName, MetricKind]] = {}
        self._sensors: dict[str, Sensor] = {}
        self._generation = 0

    @property
    def group_id(self) -> MetricGroupId:
        return self._group_id

    @property
    def generation(self) -> int:
        """Number of times close() has run; lets owners detect a takeover."""
        return self._generation

    def metric_name(self, template: MetricNameTemplate) -> MetricName:
        """Bind a template to this group's tags."""
        tags = self._group_id.tags
        if set(template.tags) != {k for k, _ in tags}:
            raise MetricsConfigurationError(
                f"Template {template.name} expects tags {template.tags}, "
                f"group {self._group_id} has {[k for k, _ in tags]}"
            )
        if template.group != self._group_id.group_name:
            raise MetricsConfigurationError(
                f"Template {template.name} belongs to group {template.group}, "
                f"not {self._group_id.group_name}"
            )
        return MetricName(
            name=template.name,
            group=template.group,
            description=template.description,
            tags=tags,
        )

    def sensor(self, name: str) -> Sensor:
        """Return the sensor with this name, creating it if absent."""
        with self._lock:
            sensor = self._sensors.get(name)
            if sensor is None:
                sensor = Sensor(name, self)
                self._sensors[name] = sensor
            return sensor

    def add_value_metric(self, metric_name: MetricName, fn: ValueFunction) -> None:
        """Register a metric whose value is fn(now_ms) evaluated on every read.

        Re-adding a name already registered as a value metric replaces its
        callback.
        """
        with self._lock:
            existing = self._registered.get(metric_name.name)
            if existing is not None and existing[1] != "gauge":
                raise MetricsConfigurationError(
                    f"Metric {metric_name} already registered as {existing[1]}"
                )
            self._check_collision(metric_name)
            child = self._metrics._child(metric_name, "gauge")
            clock = self._metrics.clock
            child.set_function(lambda: fn(clock()))
            self._registered[metric_name.name] = (metric_name, "gauge")

    def _register(self, metric_name: MetricName, kind: MetricKind) -> Any:
        with self._lock:
            if metric_name.name in self._registered:
                raise MetricsConfigurationError(
                    f"Metric {metric_name} already registered in group {self._group_id}"
                )
            self._check_collision(metric_name)
            child = self._metrics._child(metric_name, kind)
            self._registered[metric_name.name] = (metric_name, kind)
            return child

    def _check_collision(self, metric_name: MetricName) -> None:
        # names differing only in "-" vs "_" map to the same Prometheus series
        prom = self._metrics._prometheus_name(metric_name)
        for name, _ in self._registered.values():
            if name.name != metric_name.name and self._metrics._prometheus_name(name) == prom:
                raise MetricsConfigurationError(
                    f"Metric {metric_name.name} collides with {name.name} as {prom} "
                    f"in group {self._group_id}"
                )

    def metric_names(self) -> list[MetricName]:
        with self._lock:
            return [name for name, _ in self._registered.values()]

    def metric_value(self, metric_name: MetricName | str) -> float | None:
        """Current value of a registered metric, or None if not registered."""
        key = metric_name if isinstance(metric_name, str) else metric_name.name
        with self._lock:
            entry = self._registered.get(key)
        if entry is None:
            return None
        name, kind = entry
        return self._metrics._read(name, kind)

    def snapshot(self) -> dict[str, float]:
        """Metric name -> current value for everything in the group."""
        with self._lock:
            entries = list(self._registered.values())
        values = {}
        for name, kind in entries:
            value = self._metrics._read(name, kind)
            if value is not None:
                values[name.name] = value
        return values

    def close(self) -> None:
        """Remove every metric and sensor in this group.

        Idempotent; a no-op on an empty group. Every metric is attempted even
        if an earlier removal fails. Metrics that could not be removed stay
        tracked so the next close() retries them.

        Raises:
            MetricRemovalError: one or more metrics could not be removed
        """
        with self._lock:
            entries = list(self._registered.values())
            sensors = list(self._sensors.values())
            self._sensors.clear()
            self._generation += 1

            for sensor in sensors:
                sensor._close()

            failures: list[str] = []
            for name, kind in entries:
                try:
                    self._metrics._remove(name, kind)
                except MetricRemovalError as exc:
                    failures.append(str(exc))
                    continue
                del self._registered[name.name]

        if entries:
            logger.debug(
                f"Closed metric group {self._group_id} "
                f"({len(entries) - len(failures)} of {len(entries)} metrics removed)"
            )
        if failures:
            raise MetricRemovalError(
                f"Failed to remove {len(failures)} metric(s) from {self._group_id}: "
                + "; ".join(failures)
            )
