"""Application configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. WebSocket policy constants (queue bound, close timeout,
frame size limit) live here so they can be tuned per deployment.
"""

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_TELEMETRY_EXPORTERS = ("console", "otlp", "none")


class Settings(BaseSettings):
    """Application settings loaded from environment and .env.

    Every field has a default; validate_limits rejects values that would make
    the connection registry misbehave (non-positive bounds, bad sample rate).
    """

    # App
    app_name: str = "echohub"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Server (used by `python -m echohub`)
    host: str = "0.0.0.0"
    port: int = 3000

    # CORS
    allowed_origins: str = "*"

    # Request / middleware
    request_id_header: str = "X-Request-ID"

    # WebSocket
    ws_max_queue_size: int = 256
    ws_close_timeout_seconds: float = 5.0
    ws_max_message_bytes: int = 64 * 1024  # 64 KiB
    ws_send_welcome: bool = True
    ws_welcome_message: str = "Welcome to the WebSocket server!"
    # Unknown message types are echoed unless strict mode rejects them as malformed.
    ws_strict_message_types: bool = False

    # OpenTelemetry
    telemetry_enabled: bool = False
    telemetry_exporter: str = "console"
    telemetry_otlp_endpoint: str | None = None
    telemetry_sample_rate: float = 1.0
    telemetry_environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Validate WebSocket limits and telemetry options."""
        if self.ws_max_queue_size <= 0:
            raise ValueError(
                f"WS_MAX_QUEUE_SIZE must be positive, got: {self.ws_max_queue_size}"
            )
        if self.ws_close_timeout_seconds <= 0:
            raise ValueError(
                f"WS_CLOSE_TIMEOUT_SECONDS must be positive, got: {self.ws_close_timeout_seconds}"
            )
        if self.ws_max_message_bytes <= 0:
            raise ValueError(
                f"WS_MAX_MESSAGE_BYTES must be positive, got: {self.ws_max_message_bytes}"
            )
        if not 0.0 <= self.telemetry_sample_rate <= 1.0:
            raise ValueError(
                f"TELEMETRY_SAMPLE_RATE must be between 0 and 1, got: {self.telemetry_sample_rate}"
            )
        if self.telemetry_exporter not in _TELEMETRY_EXPORTERS:
            raise ValueError(
                f"Invalid telemetry_exporter '{self.telemetry_exporter}'. "
                f"Must be one of: {', '.join(_TELEMETRY_EXPORTERS)}"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings (single instance per process).

    In tests, call get_settings.cache_clear() before overriding env vars so the
    next get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
