"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Console backend REST API
    CONSOLE_API_URL: str = "http://localhost:3000"
    CONSOLE_API_TOKEN: str = ""
    HTTP_TIMEOUT: float = 30.0

    # Event stream (WebSocket)
    CONSOLE_WS_URL: str | None = None  # derived from CONSOLE_API_URL when unset
    CONSOLE_WS_TOKEN: str = ""
    WS_PING_INTERVAL: float = 30.0
    WS_PING_TIMEOUT: float = 10.0
    RECONNECT_INITIAL_DELAY: float = 1.0
    RECONNECT_MAX_DELAY: float = 60.0

    # Bounded inbox between the transport and the reconciler
    EVENT_QUEUE_SIZE: int = 1000

    # Redis (debug event journal)
    REDIS_URL: str = "redis://localhost:6379/0"
    EVENT_JOURNAL_ENABLED: bool = False

    # Telemetry
    OTEL_EXPORTER_OTLP_ENDPOINT: str = ""
    OTEL_SERVICE_NAME: str = "wpp-inbox-console"

    # Debug mode
    DEBUG: bool = False


settings = Settings()
