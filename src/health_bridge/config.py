"""Configuration management using pydantic-settings."""

import threading
import warnings

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Valid log levels
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Valid policies for origins missing from the CORS allow-list
VALID_CORS_FALLBACKS = {"first", "reject"}


class HTTPSettings(BaseSettings):
    """HTTP API settings."""

    model_config = SettingsConfigDict(env_prefix="HTTP_", env_file=".env", extra="ignore")

    host: str = Field(default="0.0.0.0", description="HTTP bind address")
    port: int = Field(default=8080, description="HTTP listen port")
    api_prefix: str = Field(default="/api", description="Path prefix for weight endpoints")
    auth_token: str = Field(default="", description="Bearer token required by write endpoints")
    allowed_origins: str = Field(
        default="", description="Comma-separated CORS allow-list (empty allows all)"
    )
    cors_fallback: str = Field(
        default="first",
        description="Origin echoed for disallowed origins: 'first' allow-listed or 'reject'",
    )
    require_auth_for_reads: bool = Field(
        default=False, description="Require the bearer token on GET endpoints"
    )
    max_request_size: int = Field(
        default=1_048_576, description="Maximum request body size in bytes"
    )

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {v}")
        return v

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v: str) -> str:
        """Normalize prefix to a leading slash and no trailing slash."""
        stripped = v.strip().strip("/")
        return f"/{stripped}" if stripped else ""

    @field_validator("cors_fallback")
    @classmethod
    def validate_cors_fallback(cls, v: str) -> str:
        """Validate CORS fallback policy."""
        normalized = v.strip().lower()
        if normalized not in VALID_CORS_FALLBACKS:
            raise ValueError(f"Invalid CORS fallback '{v}'. Must be 'first' or 'reject'")
        return normalized

    @field_validator("max_request_size")
    @classmethod
    def validate_max_request_size(cls, v: int) -> int:
        """Validate request size limit is reasonable."""
        if v < 1024:
            raise ValueError(f"Max request size must be at least 1KB, got {v}")
        return v

    @model_validator(mode="after")
    def warn_without_auth_token(self) -> "HTTPSettings":
        """Warn when write endpoints are left unauthenticated."""
        if not self.auth_token:
            warnings.warn(
                "HTTP_AUTH_TOKEN is empty; weight endpoints accept unauthenticated requests",
                UserWarning,
                stacklevel=2,
            )
        return self

    @property
    def origin_list(self) -> list[str]:
        """Parsed CORS allow-list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


class StoreSettings(BaseSettings):
    """SQLite store settings."""

    model_config = SettingsConfigDict(env_prefix="STORE_", env_file=".env", extra="ignore")

    db_path: str = Field(default="/data/health_bridge.db", description="SQLite database path")
    busy_timeout_ms: int = Field(
        default=5000, description="Time to wait for a locked database in milliseconds"
    )

    @field_validator("busy_timeout_ms")
    @classmethod
    def validate_busy_timeout(cls, v: int) -> int:
        """Validate busy timeout is not negative."""
        if v < 0:
            raise ValueError(f"Busy timeout cannot be negative, got {v}")
        return v


class TracingSettings(BaseSettings):
    """OpenTelemetry tracing settings."""

    model_config = SettingsConfigDict(env_prefix="TRACING_", env_file=".env", extra="ignore")

    enabled: bool = Field(default=False, description="Export traces via OTLP")
    service_name: str = Field(default="health-bridge", description="Service name resource")


class AppSettings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="APP_", env_file=".env", extra="ignore")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or console")
    default_source: str = Field(
        default="manual-entry", description="Source id stored when a sample has none"
    )
    strict_sample_ids: bool = Field(
        default=True, description="Reject supplied sample ids that are not UUIDs"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        normalized = v.upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
            )
        return normalized

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is valid."""
        normalized = v.lower()
        if normalized not in ("json", "console"):
            raise ValueError(f"Invalid log format '{v}'. Must be 'json' or 'console'")
        return normalized

    @field_validator("default_source")
    @classmethod
    def validate_default_source(cls, v: str) -> str:
        """Validate default source is not blank."""
        if not v or not v.strip():
            raise ValueError("Default source cannot be empty")
        return v.strip()


class Settings(BaseSettings):
    """Combined application settings."""

    http: HTTPSettings = Field(default_factory=HTTPSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    tracing: TracingSettings = Field(default_factory=TracingSettings)
    app: AppSettings = Field(default_factory=AppSettings)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            http=HTTPSettings(),
            store=StoreSettings(),
            tracing=TracingSettings(),
            app=AppSettings(),
        )


# Global settings instance with thread-safe initialization
_settings: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get or create the global settings instance.

    Thread-safe singleton pattern using double-checked locking.
    """
    global _settings
    if _settings is None:
        with _settings_lock:
            # Double-check after acquiring lock
            if _settings is None:
                _settings = Settings.load()
    return _settings
