"""
Prometheus-backed metrics substrate.

Each metric template maps to one labelled Prometheus family per substrate
(labels = the group's tag keys); a MetricGroup owns the label children for
its own tag values. Removing a group's metric removes only its child, so
groups for other tasks sharing the family are untouched.
"""

from __future__ import annotations

import threading
from typing import Any

from loguru import logger
from prometheus_client import CollectorRegistry, Counter, Gauge

from connect_metrics.exceptions import MetricRemovalError, MetricsConfigurationError
from connect_metrics.metrics.group import MetricGroup, MetricGroupId
from connect_metrics.metrics.stats import MetricKind
from connect_metrics.metrics.templates import ConnectMetricsRegistry, MetricName
from connect_metrics.settings import MetricsSettings, get_settings
from connect_metrics.utils import Clock, now_ms, prometheus_name


class ConnectMetrics:
    """Holds the collector registry and the metric groups of one worker.

    Args:
        worker_id: Identifies the worker process in logs
        settings: Naming settings (defaults to get_settings())
        registry: Prometheus registry to register into (a fresh one by default)
        clock: Millisecond wall clock passed to value metric callbacks
    """

    def __init__(
        self,
        worker_id: str,
        settings: MetricsSettings | None = None,
        *,
        registry: CollectorRegistry | None = None,
        clock: Clock | None = None,
    ):
        self._worker_id = worker_id
        self._settings = settings or get_settings()
        self._registry = ConnectMetricsRegistry(self._settings)
        self._collector_registry = registry if registry is not None else CollectorRegistry()
        self._clock = clock or now_ms
        self._lock = threading.RLock()
        self._groups: dict[MetricGroupId, MetricGroup] = {}
        # prometheus name -> (kind, family, label names, created by this substrate)
        self._families: dict[str, tuple[MetricKind, Any, tuple[str, ...], bool]] = {}
        logger.debug(f"Registering connect metrics for worker {worker_id}")

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def collector_registry(self) -> CollectorRegistry:
        return self._collector_registry

    @property
    def clock(self) -> Clock:
        return self._clock

    def registry(self) -> ConnectMetricsRegistry:
        return self._registry

    def group(self, group_name: str, *tag_key_values: str) -> MetricGroup:
        """Return the group for this name and tag set, creating it if absent.

        Args:
            group_name: e.g. "task-error-metrics"
            tag_key_values: Alternating tag keys and values,
                e.g. "connector", "sink-1", "task", "0"

        Raises:
            MetricsConfigurationError: odd number of tag arguments or empty key
        """
        if len(tag_key_values) % 2 != 0:
            raise MetricsConfigurationError(
                f"Tags for group {group_name} must be key/value pairs, got {tag_key_values}"
            )
        tags = tuple(
            (str(tag_key_values[i]), str(tag_key_values[i + 1]))
            for i in range(0, len(tag_key_values), 2)
        )
        if any(not k for k, _ in tags):
            raise MetricsConfigurationError(f"Empty tag key for group {group_name}")
        group_id = MetricGroupId(group_name, tags)
        with self._lock:
            group = self._groups.get(group_id)
            if group is None:
                group = MetricGroup(self, group_id)
                self._groups[group_id] = group
            return group

    def close(self) -> None:
        """Remove the metrics of every group, then unregister the families
        this substrate created once no other substrate still has series in them.
        """
        with self._lock:
            groups = list(self._groups.values())
            self._groups.clear()
        for group in groups:
            try:
                group.close()
            except MetricRemovalError as exc:
                logger.warning(f"Failed to close metric group {group.group_id}: {exc}")

        with self._lock:
            families = list(self._families.values())
            self._families.clear()
        for _, family, _, created in families:
            if not created or getattr(family, "_metrics", None):
                continue
            try:
                self._collector_registry.unregister(family)
            except KeyError:
                # already unregistered
                pass
        logger.debug(f"Unregistered connect metrics for worker {self._worker_id}")

    # --- Prometheus plumbing used by MetricGroup ---

    def _prometheus_name(self, metric_name: MetricName) -> str:
        return prometheus_name(self._settings.namespace, metric_name.group, metric_name.name)

    def _registered_collector(self, prom: str) -> Any:
        names = getattr(self._collector_registry, "_names_to_collectors", None)
        if isinstance(names, dict):
            return names.get(prom)
        return None

    def _family(self, metric_name: MetricName, kind: MetricKind) -> Any:
        prom = self._prometheus_name(metric_name)
        labelnames = metric_name.tag_keys
        metric_cls = Counter if kind == "counter" else Gauge
        with self._lock:
            cached = self._families.get(prom)
            if cached is not None and self._registered_collector(prom) is not cached[1]:
                # unregistered by another substrate sharing the registry
                del self._families[prom]
                cached = None
            if cached is not None:
                existing_kind, family, existing_labels, _ = cached
                if existing_kind != kind:
                    raise MetricsConfigurationError(
                        f"Metric {prom} already registered as {existing_kind}, not {kind}"
                    )
                if set(existing_labels) != set(labelnames):
                    raise MetricsConfigurationError(
                        f"Metric {prom} registered with labels {existing_labels}, got {labelnames}"
                    )
                return family

            # reuse a collector another substrate registered under this name
            shared = self._registered_collector(prom)
            if shared is not None:
                if not isinstance(shared, metric_cls):
                    raise MetricsConfigurationError(
                        f"Metric {prom} already registered as {type(shared).__name__}, not {kind}"
                    )
                shared_labels = tuple(shared._labelnames)
                if set(shared_labels) != set(labelnames):
                    raise MetricsConfigurationError(
                        f"Metric {prom} registered with labels {shared_labels}, got {labelnames}"
                    )
                self._families[prom] = (kind, shared, shared_labels, False)
                return shared

            try:
                family = metric_cls(
                    prom,
                    metric_name.description,
                    labelnames=labelnames,
                    registry=self._collector_registry,
                )
            except ValueError as exc:
                raise MetricsConfigurationError(f"Cannot register metric {prom}: {exc}") from exc
            self._families[prom] = (kind, family, labelnames, True)
            return family

    def _child(self, metric_name: MetricName, kind: MetricKind) -> Any:
        family = self._family(metric_name, kind)
        if not metric_name.tags:
            return family
        try:
            return family.labels(**metric_name.tag_map())
        except ValueError as exc:
            raise MetricsConfigurationError(f"Bad tags for {metric_name}: {exc}") from exc

    def _remove(self, metric_name: MetricName, kind: MetricKind) -> None:
        prom = self._prometheus_name(metric_name)
        with self._lock:
            entry = self._families.get(prom)
            if entry is None:
                return
            _, family, labelnames, _ = entry
            try:
                if not labelnames:
                    # untagged metrics own the whole family
                    self._collector_registry.unregister(family)
                    del self._families[prom]
                    return
                labels = metric_name.tag_map()
                family.remove(*(labels[k] for k in labelnames))
            except KeyError:
                # already gone
                pass
            except Exception as exc:
                raise MetricRemovalError(f"{metric_name}: {exc}") from exc

    def _read(self, metric_name: MetricName, kind: MetricKind) -> float | None:
        prom = self._prometheus_name(metric_name)
        if kind == "counter":
            base = prom[: -len("_total")] if prom.endswith("_total") else prom
            sample = f"{base}_total"
        else:
            sample = prom
        return self._collector_registry.get_sample_value(sample, metric_name.tag_map())
