"""
Per-task error handling metrics.

Counts failures, errors, skipped records, retries, logged errors and
dead letter queue produce attempts/failures for one connector task, plus a
last-error-timestamp gauge read lazily from in-memory state.
"""

from __future__ import annotations

from loguru import logger

from connect_metrics.metrics.connect_metrics import ConnectMetrics
from connect_metrics.metrics.group import MetricGroup, Sensor
from connect_metrics.metrics.stats import CumulativeSum
from connect_metrics.metrics.templates import ConnectMetricsRegistry, MetricNameTemplate
from connect_metrics.task_id import ConnectorTaskId
from connect_metrics.utils import Clock, now_ms


class ErrorHandlingMetrics:
    """Sensors used for monitoring errors of a single task.

    Construction clears any metrics left in the task's group by a previous
    instance that was never closed, then registers a fresh set; a second
    instance for the same task therefore takes over the group instead of
    failing. Recording methods never raise. After close() they are no-ops.

    Example:
        metrics = ErrorHandlingMetrics(ConnectorTaskId("sink-1", 0), connect_metrics)
        metrics.record_failure()
        metrics.record_error_timestamp()
        metrics.close()
    """

    def __init__(
        self,
        task_id: ConnectorTaskId,
        connect_metrics: ConnectMetrics,
        *,
        clock: Clock | None = None,
    ):
        self._task_id = task_id
        self._clock = clock or now_ms
        self._closed = False
        self._metric_group: MetricGroup | None = None
        self._generation = 0
        self.last_error_time = 0

        registry = connect_metrics.registry()
        self._metric_group = connect_metrics.group(
            registry.task_error_handling_group_name,
            registry.connector_tag_name,
            task_id.connector,
            registry.task_tag_name,
            str(task_id.task),
        )

        # prevent collisions by removing any previously created metrics in this group
        self._metric_group.close()
        self._generation = self._metric_group.generation

        try:
            self._register(registry)
        except Exception:
            self.close()
            raise

    def _register(self, registry: ConnectMetricsRegistry) -> None:
        self._record_processing_failures = self._sensor(
            "total-record-failures", registry.record_processing_failures
        )
        self._record_processing_errors = self._sensor(
            "total-record-errors", registry.record_processing_errors
        )
        self._records_skipped = self._sensor("total-records-skipped", registry.records_skipped)
        self._retries = self._sensor("total-retries", registry.retries)
        self._errors_logged = self._sensor("total-errors-logged", registry.errors_logged)
        self._dlq_produce_requests = self._sensor(
            "deadletterqueue-produce-requests", registry.dlq_produce_requests
        )
        self._dlq_produce_failures = self._sensor(
            "deadletterqueue-produce-failures", registry.dlq_produce_failures
        )

        self._metric_group.add_value_metric(
            self._metric_group.metric_name(registry.last_error_timestamp),
            lambda now: self.last_error_time,
        )

    def _sensor(self, name: str, template: MetricNameTemplate) -> Sensor:
        sensor = self._metric_group.sensor(name)
        sensor.add(self._metric_group.metric_name(template), CumulativeSum())
        return sensor

    @property
    def task_id(self) -> ConnectorTaskId:
        return self._task_id

    @property
    def closed(self) -> bool:
        return self._closed

    def record_failure(self) -> None:
        """Increment the number of failed operations (retriable and non-retriable)."""
        self._record_processing_failures.record()

    def record_error(self) -> None:
        """Increment the number of operations which could not be successfully executed."""
        self._record_processing_errors.record()

    def record_skipped(self) -> None:
        """Increment the number of records skipped."""
        self._records_skipped.record()

    def record_retry(self) -> None:
        """The number of retries made while executing operations."""
        self._retries.record()

    def record_error_logged(self) -> None:
        """The number of errors logged by the log reporter."""
        self._errors_logged.record()

    def record_dead_letter_queue_produce_request(self) -> None:
        """The number of produce requests to the dead letter queue reporter."""
        self._dlq_produce_requests.record()

    def record_dead_letter_queue_produce_failed(self) -> None:
        """The number of dead letter queue produce requests that failed."""
        self._dlq_produce_failures.record()

    def record_error_timestamp(self) -> None:
        """Record the time of error."""
        self.last_error_time = self._clock()

    def metric_group(self) -> MetricGroup:
        """The metric group for this task, for collaborators adding their own metrics."""
        return self._metric_group

    def close(self) -> None:
        """Remove the task's error metrics group. Safe to call more than once.

        Never raises: removal failures are logged so task shutdown can go on.
        If the group was closed since this instance registered (by a newer
        instance for the same task, or by the substrate shutting down), its
        current contents are left in place.
        """
        if self._closed:
            return
        self._closed = True
        group = self._metric_group
        if group is None:
            return
        if group.generation != self._generation:
            logger.debug(
                f"Error handling metrics of group {group.group_id} already removed "
                f"or taken over; skipping removal"
            )
            return
        logger.debug(f"Removing error handling metrics of group {group.group_id}")
        try:
            group.close()
        except Exception as exc:
            logger.warning(
                f"Failed to remove error handling metrics for task {self._task_id}: "
                f"{type(exc).__name__}: {exc}"
            )

    def __enter__(self) -> "ErrorHandlingMetrics":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
