"""
Unit tests for MetricGroup, Sensor and the ConnectMetrics substrate.
"""

import pytest
from prometheus_client import Counter, Gauge

from connect_metrics import ConnectMetrics, MetricRemovalError, MetricsConfigurationError
from connect_metrics.metrics import CumulativeSum, MetricNameTemplate, Stat, Value

TAGS = ("connector", "sink-1", "task", "0")


def template(name: str, tags=("connector", "task"), group="task-error-metrics") -> MetricNameTemplate:
    return MetricNameTemplate(name=name, group=group, description=f"{name} doc", tags=tags)


def test_group_is_cached_per_id(connect_metrics):
    """Test the same name and tags always return the same group."""
    a = connect_metrics.group("task-error-metrics", *TAGS)
    b = connect_metrics.group("task-error-metrics", *TAGS)
    c = connect_metrics.group("task-error-metrics", "connector", "sink-1", "task", "1")
    assert a is b
    assert a is not c
    assert str(a.group_id) == "task-error-metrics{connector=sink-1,task=0}"


def test_group_requires_tag_pairs(connect_metrics):
    """Test odd tag arguments and empty keys are rejected."""
    with pytest.raises(MetricsConfigurationError):
        connect_metrics.group("task-error-metrics", "connector", "sink-1", "task")
    with pytest.raises(MetricsConfigurationError):
        connect_metrics.group("task-error-metrics", "", "sink-1")


def test_metric_name_binds_group_tags(connect_metrics):
    """Test metric_name fills the template with the group's tag values."""
    group = connect_metrics.group("task-error-metrics", *TAGS)
    name = group.metric_name(template("total-retries"))
    assert name.tag_map() == {"connector": "sink-1", "task": "0"}
    assert str(name) == "task-error-metrics:total-retries{connector=sink-1,task=0}"


def test_metric_name_rejects_mismatched_template(connect_metrics):
    """Test templates with other tags or another group are rejected."""
    group = connect_metrics.group("task-error-metrics", *TAGS)
    with pytest.raises(MetricsConfigurationError):
        group.metric_name(template("total-retries", tags=("connector",)))
    with pytest.raises(MetricsConfigurationError):
        group.metric_name(template("total-retries", group="connector-metrics"))


def test_sensor_records_cumulative_sum(connect_metrics):
    """Test a sensor accumulates recorded values."""
    group = connect_metrics.group("task-error-metrics", *TAGS)
    sensor = group.sensor("total-retries")
    sensor.add(group.metric_name(template("total-retries")), CumulativeSum())

    sensor.record()
    sensor.record(2.5)
    assert group.metric_value("total-retries") == 3.5


def test_sensor_reused_by_name(connect_metrics):
    """Test sensor() returns the existing sensor while the group is open."""
    group = connect_metrics.group("task-error-metrics", *TAGS)
    assert group.sensor("s") is group.sensor("s")


def test_sensor_with_multiple_stats(connect_metrics):
    """Test one record() updates every attached stat."""
    group = connect_metrics.group("task-error-metrics", *TAGS)
    sensor = group.sensor("batch-size")
    sensor.add(group.metric_name(template("batch-size-total")), CumulativeSum())
    sensor.add(group.metric_name(template("batch-size-last")), Value())

    sensor.record(4)
    sensor.record(6)
    assert group.metric_value("batch-size-total") == 10.0
    assert group.metric_value("batch-size-last") == 6.0


def test_duplicate_metric_rejected(connect_metrics):
    """Test the same metric cannot be registered twice in one group."""
    group = connect_metrics.group("task-error-metrics", *TAGS)
    name = group.metric_name(template("total-retries"))
    group.sensor("a").add(name, CumulativeSum())
    with pytest.raises(MetricsConfigurationError):
        group.sensor("b").add(name, CumulativeSum())
    with pytest.raises(MetricsConfigurationError):
        group.add_value_metric(name, lambda now: 1)


def test_value_metric_evaluated_on_read(connect_metrics, fake_clock):
    """Test value metrics are computed lazily from the substrate clock."""
    group = connect_metrics.group("task-error-metrics", *TAGS)
    state = {"v": 1}
    group.add_value_metric(group.metric_name(template("state")), lambda now: state["v"])
    group.add_value_metric(group.metric_name(template("now")), lambda now: now)

    assert group.metric_value("state") == 1.0
    state["v"] = 7
    assert group.metric_value("state") == 7.0
    fake_clock.advance(10)
    assert group.metric_value("now") == float(fake_clock.now)


def test_value_metric_replaced(connect_metrics):
    """Test re-adding a value metric swaps its callback."""
    group = connect_metrics.group("task-error-metrics", *TAGS)
    name = group.metric_name(template("state"))
    group.add_value_metric(name, lambda now: 1)
    group.add_value_metric(name, lambda now: 2)
    assert group.metric_value("state") == 2.0
    assert len(group.metric_names()) == 1


def test_close_removes_everything_and_is_idempotent(connect_metrics, collector_registry):
    """Test close() empties the group and can run repeatedly."""
    group = connect_metrics.group("task-error-metrics", *TAGS)
    sensor = group.sensor("total-retries")
    sensor.add(group.metric_name(template("total-retries")), CumulativeSum())
    group.add_value_metric(group.metric_name(template("state")), lambda now: 1)
    sensor.record()

    generation = group.generation
    group.close()
    group.close()
    assert group.generation == generation + 2
    assert group.metric_names() == []
    assert group.snapshot() == {}
    assert group.metric_value("total-retries") is None
    assert (
        collector_registry.get_sample_value(
            "test_task_error_metrics_total_retries_total", {"connector": "sink-1", "task": "0"}
        )
        is None
    )

    # removed sensors stop recording
    sensor.record()
    assert group.metric_value("total-retries") is None


def test_close_on_empty_group(connect_metrics):
    """Test closing a group with no metrics is a no-op."""
    group = connect_metrics.group("task-error-metrics", *TAGS)
    group.close()
    assert group.metric_names() == []


def test_close_leaves_other_groups(connect_metrics):
    """Test removing one group's children keeps the shared family for others."""
    g0 = connect_metrics.group("task-error-metrics", *TAGS)
    g1 = connect_metrics.group("task-error-metrics", "connector", "sink-1", "task", "1")
    for g in (g0, g1):
        s = g.sensor("total-retries")
        s.add(g.metric_name(template("total-retries")), CumulativeSum())
        s.record()

    g0.close()
    assert g1.metric_value("total-retries") == 1.0


def test_untagged_group_unregisters_family(connect_metrics, collector_registry):
    """Test a group without tags owns and unregisters whole families."""
    group = connect_metrics.group("worker-metrics")
    s = group.sensor("tasks-started")
    s.add(group.metric_name(template("tasks-started", tags=(), group="worker-metrics")), CumulativeSum())
    s.record()
    assert collector_registry.get_sample_value("test_worker_metrics_tasks_started_total") == 1.0

    group.close()
    assert collector_registry.get_sample_value("test_worker_metrics_tasks_started_total") is None

    s = group.sensor("tasks-started")
    s.add(group.metric_name(template("tasks-started", tags=(), group="worker-metrics")), CumulativeSum())
    assert group.metric_value("tasks-started") == 0.0


def test_kind_conflict_rejected(connect_metrics):
    """Test one name cannot back both a counter and a gauge."""
    g0 = connect_metrics.group("task-error-metrics", *TAGS)
    g1 = connect_metrics.group("task-error-metrics", "connector", "sink-2", "task", "0")
    g0.sensor("x").add(g0.metric_name(template("x")), CumulativeSum())
    with pytest.raises(MetricsConfigurationError):
        g1.add_value_metric(g1.metric_name(template("x")), lambda now: 0)


def test_close_reports_removal_failures(connect_metrics, monkeypatch):
    """Test a failed removal still attempts the rest and raises afterwards."""
    group = connect_metrics.group("task-error-metrics", *TAGS)
    for n in ("a", "b"):
        group.sensor(n).add(group.metric_name(template(n)), CumulativeSum())

    real_remove = connect_metrics._remove
    removed = []

    def flaky_remove(metric_name, kind):
        removed.append(metric_name.name)
        if metric_name.name == "a":
            raise MetricRemovalError("a: boom")
        real_remove(metric_name, kind)

    monkeypatch.setattr(connect_metrics, "_remove", flaky_remove)
    with pytest.raises(MetricRemovalError, match="boom"):
        group.close()
    assert sorted(removed) == ["a", "b"]
    # the metric that could not be removed stays tracked for the next close
    assert [n.name for n in group.metric_names()] == ["a"]

    monkeypatch.setattr(connect_metrics, "_remove", real_remove)
    group.close()
    assert group.metric_names() == []


def test_connect_metrics_close_clears_groups(settings, collector_registry, log_messages):
    """Test closing the substrate removes every group's metrics."""
    cm = ConnectMetrics("w1", settings, registry=collector_registry)
    group = cm.group("task-error-metrics", *TAGS)
    group.sensor("total-retries").add(group.metric_name(template("total-retries")), CumulativeSum())

    cm.close()
    assert group.metric_names() == []
    assert cm.group("task-error-metrics", *TAGS) is not group
    assert any("Unregistered connect metrics for worker w1" in r["message"] for r in log_messages)


def test_registry_templates(connect_metrics):
    """Test the error handling templates carry names, group and tags."""
    registry = connect_metrics.registry()
    names = [t.name for t in registry.all_templates()]
    assert names == [
        "total-record-failures",
        "total-record-errors",
        "total-records-skipped",
        "total-retries",
        "total-errors-logged",
        "deadletterqueue-produce-requests",
        "deadletterqueue-produce-failures",
        "last-error-timestamp",
    ]
    assert all(t.group == "task-error-metrics" for t in registry.all_templates())
    assert all(t.tags == ("connector", "task") for t in registry.all_templates())
    assert registry.last_error_timestamp.description.startswith("The epoch timestamp")


def test_dash_underscore_collision_rejected(connect_metrics):
    """Test names mapping to the same Prometheus series cannot coexist in a group."""
    group = connect_metrics.group("task-error-metrics", *TAGS)
    group.sensor("a").add(group.metric_name(template("total-retries")), CumulativeSum())
    with pytest.raises(MetricsConfigurationError, match="collides"):
        group.sensor("b").add(group.metric_name(template("total_retries")), CumulativeSum())
    with pytest.raises(MetricsConfigurationError, match="collides"):
        group.add_value_metric(group.metric_name(template("total_retries")), lambda now: 1)
    assert [n.name for n in group.metric_names()] == ["total-retries"]


def test_stat_is_abstract():
    """Test the Stat base class cannot be used without a record() implementation."""
    with pytest.raises(TypeError):
        Stat()


def test_reuses_family_registered_elsewhere(connect_metrics, collector_registry):
    """Test a matching family already in the registry is reused and left registered."""
    external = Gauge(
        "test_task_error_metrics_state",
        "registered by another worker",
        labelnames=("connector", "task"),
        registry=collector_registry,
    )
    external.labels(connector="sink-9", task="3").set(5)

    group = connect_metrics.group("task-error-metrics", *TAGS)
    group.add_value_metric(group.metric_name(template("state")), lambda now: 1)
    assert group.metric_value("state") == 1.0

    connect_metrics.close()
    assert group.metric_names() == []
    assert (
        collector_registry.get_sample_value(
            "test_task_error_metrics_state", {"connector": "sink-9", "task": "3"}
        )
        == 5.0
    )


def test_foreign_collector_type_rejected(connect_metrics, collector_registry):
    """Test a registered collector of another metric type is not reused."""
    Counter(
        "test_task_error_metrics_state",
        "registered by another worker",
        labelnames=("connector", "task"),
        registry=collector_registry,
    )
    group = connect_metrics.group("task-error-metrics", *TAGS)
    with pytest.raises(MetricsConfigurationError):
        group.add_value_metric(group.metric_name(template("state")), lambda now: 1)
    assert group.metric_names() == []
