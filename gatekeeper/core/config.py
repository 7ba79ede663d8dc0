"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
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


# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Static type checkers treat fields as required constructor arguments,
    which is not how BaseSettings is intended to be used.
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
    admin_api_key_required: bool = Field(
        True,
        description="Whether administrative endpoints (quota reset) require an API key",
    )
    admin_api_keys: str | None = Field(
        None,
        description="Comma-separated list of API keys allowed to call admin endpoints",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Counter store backend and HTTP integration settings."""

    enabled: bool = Field(
        True,
        description="Enable rate limit enforcement on protected routes",
    )
    backend: Literal["memory", "redis"] = Field(
        "memory",
        description="Counter store backend: per-process memory or shared Redis",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL (used when backend=redis)",
    )
    redis_socket_timeout_seconds: float = Field(
        0.5,
        description="Socket timeout for Redis calls; a timeout counts as store unavailable",
        gt=0,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers on responses",
    )
    trust_proxy_headers: bool = Field(
        False,
        description=(
            "Derive client IP from X-Forwarded-For / X-Real-IP headers; "
            "enable only behind a proxy that overwrites them"
        ),
    )
    sweep_enabled: bool = Field(
        True,
        description="Run the background eviction sweeper for the memory backend",
    )
    sweep_interval_seconds: float = Field(
        60.0,
        description="Seconds between eviction sweeps",
        gt=0,
    )
    stale_after_ms: int = Field(
        60_000,
        description="Grace period after a window ends before its state is evicted",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to accept and propagate the request id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
