"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ early.
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class StorageBackend(str, Enum):
    """Counter store implementations selectable from configuration."""

    MEMORY = "memory"
    REDIS = "redis"


class FailurePolicyName(str, Enum):
    """How the engine answers when the counter store fails."""

    OPEN = "open"
    CLOSED = "closed"


class ClientLimitConfig(BaseModel):
    """Per-client quota as it appears in configuration.

    Values are not range-checked here. A malformed entry raises
    ConfigurationError when that client is rate limited.
    """

    requests: int
    window_seconds: float


def _default_clients() -> dict[str, ClientLimitConfig]:
    return {
        "client-1": ClientLimitConfig(requests=5, window_seconds=60),
        "client-2": ClientLimitConfig(requests=2, window_seconds=60),
    }


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment.

    Pydantic Settings (v2) populates values from environment variables, but
    static type checkers treat required fields as constructor arguments.
    """

    return RateLimitSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    """Build log settings from environment."""

    return LogSettings()  # type: ignore[call-arg]


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration.

    ``clients`` is read from ``RATE_LIMIT_CLIENTS`` as JSON, e.g.
    ``{"alpha": {"requests": 50, "window_seconds": 30}}``.
    """

    enabled: bool = Field(
        True,
        description="Enable rate limiting on protected routes",
    )
    default_requests: int = Field(
        100,
        description="Requests allowed per window for clients without an explicit entry",
    )
    default_window_seconds: float = Field(
        60.0,
        description="Window length in seconds for clients without an explicit entry",
    )
    clients: dict[str, ClientLimitConfig] = Field(
        default_factory=_default_clients,
        description="Per-client limits keyed by client identifier",
    )
    backend: StorageBackend = Field(
        StorageBackend.MEMORY,
        description="Counter store backend: memory (per process) or redis (shared)",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL used when backend=redis",
    )
    redis_timeout_seconds: float = Field(
        0.5,
        description="Default deadline for a single Redis round trip",
        gt=0,
    )
    key_prefix: str = Field(
        "ratelimit",
        description="Prefix for counter storage keys",
    )
    failure_policy: FailurePolicyName = Field(
        FailurePolicyName.OPEN,
        description="Decision returned when the counter store fails: open (allow) or closed (deny)",
    )
    sweep_interval_seconds: float = Field(
        30.0,
        description="Interval between background sweeps of the in-memory store",
        gt=0,
    )
    sweep_grace_seconds: float = Field(
        0.0,
        description="How long an expired in-memory entry may linger before a sweep evicts it",
        ge=0,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers in responses",
    )
    client_id_header: str = Field(
        "X-Client-ID",
        description="Request header carrying the client identifier",
    )
    default_client_id: str = Field(
        "default",
        description="Client identifier used when the header is absent",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
