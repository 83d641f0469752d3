from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationSettings(BaseSettings):
    """Environment for the notification worker; variables are prefixed ``NOTIFY_``."""

    log_level: str = "INFO"

    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_consumer_group: str = "canteen-notification-service"

    otlp_endpoint: str = ""
    trace_sample_ratio: float = 1.0
    metrics_port: int = 8002

    model_config = SettingsConfigDict(env_prefix="NOTIFY_", env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> NotificationSettings:
    return NotificationSettings()
