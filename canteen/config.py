from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/canteen"
    log_level: str = "INFO"

    # Midtrans Snap; the gateway is disabled when the server key is empty
    midtrans_server_key: str = ""
    midtrans_client_key: str = ""
    payment_gateway_timeout: float = 10.0

    # Circuit breaker
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_recovery_timeout: float = 30.0

    # Kafka; publishing is disabled when empty
    kafka_bootstrap_servers: str = ""

    # Observability; tracing is disabled when empty
    otlp_endpoint: str = ""
    trace_sample_ratio: float = 1.0

    model_config = {"env_file": ".env"}

    @property
    def midtrans_is_sandbox(self) -> bool:
        return self.midtrans_client_key.startswith("SB-")

    @property
    def snap_base_url(self) -> str:
        if self.midtrans_is_sandbox:
            return "https://app.sandbox.midtrans.com"
        return "https://app.midtrans.com"


def get_settings() -> Settings:
    return Settings()
