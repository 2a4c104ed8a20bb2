from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/orders"
    log_level: str = "INFO"

    # Change feed
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_topic_prefix: str = "changes"

    # Live board: paid orders stay visible for this long after creation
    recent_paid_window_hours: int = 24

    # Observability
    otlp_endpoint: str = "http://jaeger:4318/v1/traces"

    model_config = {"env_file": ".env"}


settings = Settings()
