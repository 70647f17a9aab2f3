"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Production may inject everything via real env vars
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class RateLimitPolicy(BaseModel):
    """Limits applied by one protected endpoint."""

    window_seconds: float = Field(
        60.0,
        gt=0,
        description="Length of the counting window before a key's count resets",
    )
    ceiling: int = Field(
        100,
        ge=1,
        description="Maximum admitted requests per key per window",
    )
    capacity: int = Field(
        500,
        ge=1,
        description="Maximum distinct keys tracked before LRU eviction",
    )


def _default_policies() -> dict[str, RateLimitPolicy]:
    """Per-route limits of the social feed API."""

    return {
        "default": RateLimitPolicy(),
        "posts.list": RateLimitPolicy(window_seconds=60, ceiling=100),
        "posts.create": RateLimitPolicy(window_seconds=30 * 60, ceiling=5),
        "posts.update": RateLimitPolicy(window_seconds=5 * 60, ceiling=10),
        "posts.like": RateLimitPolicy(window_seconds=60, ceiling=100),
        "posts.comment": RateLimitPolicy(window_seconds=60, ceiling=10),
        "auth.signin": RateLimitPolicy(window_seconds=60, ceiling=20),
        "auth.me.read": RateLimitPolicy(window_seconds=60, ceiling=100),
        "auth.me.update": RateLimitPolicy(window_seconds=60, ceiling=10),
        "users.recent": RateLimitPolicy(window_seconds=60, ceiling=100),
    }


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    BaseSettings is populated from the environment; the type ignore keeps
    static checkers from treating fields as constructor arguments.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    rate_limit_enabled: bool = Field(
        True,
        description="Enforce per-client rate limits on protected routes",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    rate_limit_fail_open: bool = Field(
        True,
        description="Admit requests when the limiter itself fails (false rejects them)",
    )
    rate_limit_fallback_key: str = Field(
        "anonymous",
        min_length=1,
        description="Shared key for requests with no attributable client address",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Named rate limit policies, one per protected endpoint.

    Override with a JSON object, e.g.
    ``RATE_LIMIT_POLICIES='{"default": {"window_seconds": 60, "ceiling": 10}}'``.
    """

    policies: dict[str, RateLimitPolicy] = Field(
        default_factory=_default_policies,
        description="Policy name to limits",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        ge=0,
        description="Rotate the log file at this size (0 disables rotation)",
    )
    backup_count: int = Field(5, ge=0, description="Rotated files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if a setting is malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Nested settings are created via default_factory so env loading works.
settings = Settings()
