"""
Metric name templates for task-level error handling metrics.

A template fixes a metric's name, group, description and the tag keys it
expects; a MetricGroup fills the tag values in to produce a MetricName.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from connect_metrics.settings import MetricsSettings, get_settings


@dataclass(frozen=True)
class MetricNameTemplate:
    name: str
    group: str
    description: str
    tags: tuple[str, ...]


@dataclass(frozen=True)
class MetricName:
    """Fully qualified metric name: template plus concrete tag values."""

    name: str
    group: str
    description: str
    tags: tuple[tuple[str, str], ...]

    @property
    def tag_keys(self) -> tuple[str, ...]:
        return tuple(k for k, _ in self.tags)

    @property
    def tag_values(self) -> tuple[str, ...]:
        return tuple(v for _, v in self.tags)

    def tag_map(self) -> Mapping[str, str]:
        return dict(self.tags)

    def __str__(self) -> str:
        tags = ",".join(f"{k}={v}" for k, v in self.tags)
        return f"{self.group}:{self.name}{{{tags}}}"


class ConnectMetricsRegistry:
    """Templates for every metric in the task error handling group."""

    def __init__(self, settings: MetricsSettings | None = None):
        s = settings or get_settings()
        self.task_error_handling_group_name = s.group_name
        self.connector_tag_name = s.connector_tag
        self.task_tag_name = s.task_tag

        tags = (s.connector_tag, s.task_tag)
        self._templates: list[MetricNameTemplate] = []

        self.record_processing_failures = self._create(
            "total-record-failures",
            "The number of record processing failures in this task.",
            tags,
        )
        self.record_processing_errors = self._create(
            "total-record-errors",
            "The number of record processing errors in this task.",
            tags,
        )
        self.records_skipped = self._create(
            "total-records-skipped",
            "The number of records skipped due to errors.",
            tags,
        )
        self.retries = self._create(
            "total-retries",
            "The number of operations retried.",
            tags,
        )
        self.errors_logged = self._create(
            "total-errors-logged",
            "The number of errors that were logged.",
            tags,
        )
        self.dlq_produce_requests = self._create(
            "deadletterqueue-produce-requests",
            "The number of attempted writes to the dead letter queue.",
            tags,
        )
        self.dlq_produce_failures = self._create(
            "deadletterqueue-produce-failures",
            "The number of failed writes to the dead letter queue.",
            tags,
        )
        self.last_error_timestamp = self._create(
            "last-error-timestamp",
            "The epoch timestamp when this task last encountered an error.",
            tags,
        )

    def _create(self, name: str, description: str, tags: tuple[str, ...]) -> MetricNameTemplate:
        template = MetricNameTemplate(
            name=name,
            group=self.task_error_handling_group_name,
            description=description,
            tags=tags,
        )
        self._templates.append(template)
        return template

    def all_templates(self) -> list[MetricNameTemplate]:
        return list(self._templates)
