"""
Demo for per-task error handling metrics.

Shows:
- Prometheus metrics (exposed on :8000/metrics)
- A flaky task retrying records and routing exhausted ones to a dead letter queue
- Task restart without a clean close (group taken over, no duplicate errors)
"""

import random
import time

from loguru import logger
from prometheus_client import start_http_server

from connect_metrics import ConnectMetrics, ConnectorTaskId, ErrorHandlingMetrics

MAX_ATTEMPTS = 3


def process(record: int) -> None:
    if random.random() < 0.2:
        raise TimeoutError(f"simulated transient failure for record {record}")


def run_task(metrics: ErrorHandlingMetrics, records: range) -> None:
    for record in records:
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                process(record)
                break
            except TimeoutError as exc:
                metrics.record_failure()
                metrics.record_error_timestamp()
                if attempt < MAX_ATTEMPTS:
                    metrics.record_retry()
                    continue
                metrics.record_error()
                metrics.record_error_logged()
                logger.warning(f"Giving up on record {record}: {exc}")
                metrics.record_dead_letter_queue_produce_request()
                if random.random() < 0.1:
                    metrics.record_dead_letter_queue_produce_failed()
                else:
                    metrics.record_skipped()


def main():
    connect_metrics = ConnectMetrics("demo-worker")
    start_http_server(8000, registry=connect_metrics.collector_registry)
    logger.info("📊 Prometheus metrics available at http://localhost:8000/metrics")

    task_id = ConnectorTaskId("sink-1", 0)
    metrics = ErrorHandlingMetrics(task_id, connect_metrics)
    run_task(metrics, range(200))
    logger.info(f"Task {task_id} metrics: {metrics.metric_group().snapshot()}")

    # Simulate an abnormal restart: the old instance is never closed
    logger.info("🔁 Restarting task without closing its metrics...")
    metrics = ErrorHandlingMetrics(task_id, connect_metrics)
    run_task(metrics, range(200, 300))
    logger.info(f"Task {task_id} metrics after restart: {metrics.metric_group().snapshot()}")

    try:
        while True:
            time.sleep(5)
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        metrics.close()
        connect_metrics.close()


if __name__ == "__main__":
    main()
