"""
Pytest configuration and fixtures for connect-error-metrics.

Every test gets its own Prometheus CollectorRegistry so metric families
never leak between tests.
"""

import pytest
from loguru import logger
from prometheus_client import CollectorRegistry

from connect_metrics import ConnectMetrics, ConnectorTaskId, MetricsSettings


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def advance(self, ms: int) -> None:
        self.now += ms

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def collector_registry():
    """Isolated Prometheus registry."""
    return CollectorRegistry()


@pytest.fixture
def settings():
    """Settings with a test namespace (env and .env ignored)."""
    return MetricsSettings(_env_file=None, namespace="test")


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def connect_metrics(settings, collector_registry, fake_clock):
    """Substrate bound to the isolated registry and the fake clock."""
    cm = ConnectMetrics("test-worker", settings, registry=collector_registry, clock=fake_clock)
    yield cm
    cm.close()


@pytest.fixture
def task_id():
    return ConnectorTaskId("sink-1", 0)


@pytest.fixture
def log_messages():
    """Capture loguru records (caplog does not see loguru)."""
    messages: list = []
    handler_id = logger.add(lambda m: messages.append(m.record), level="DEBUG")
    yield messages
    logger.remove(handler_id)
