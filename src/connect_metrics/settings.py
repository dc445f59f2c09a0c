from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class MetricsSettings(BaseSettings):
    """Naming settings for the Prometheus-backed metrics substrate."""

    model_config = SettingsConfigDict(
        env_prefix="CONNECT_METRICS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    namespace: str = "connect"
    group_name: str = "task-error-metrics"
    connector_tag: str = "connector"
    task_tag: str = "task"


@lru_cache()
def get_settings() -> MetricsSettings:
    return MetricsSettings()
