import uuid

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/orders"
    log_level: str = "INFO"

    # Restaurants whose live board this worker keeps in sync
    restaurant_ids: list[uuid.UUID] = []

    # Change feed
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_topic_prefix: str = "changes"

    # Reconciliation: paid orders stay on the board for this long
    recent_paid_window_hours: int = 24

    # Observability
    otlp_endpoint: str = "http://jaeger:4318/v1/traces"
    metrics_port: int = 8002

    model_config = {"env_file": ".env"}


settings = Settings()
