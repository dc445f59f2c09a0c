"""
Time helpers shared by the metrics substrate and the error registry.
"""

import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def prometheus_name(namespace: str, group: str, name: str) -> str:
    """Join namespace, group and metric name into a Prometheus-safe name."""
    parts = [p for p in (namespace, group, name) if p]
    return "_".join(p.replace("-", "_").replace(".", "_") for p in parts)
