"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mybooks.adapters.rate_limit.base import API, LOGIN, REGISTER, RateLimitPolicy


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

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None

# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_version: str = Field(
        "1.0.0",
        description="Value reported in the X-API-Version response header",
    )
    ssl_enabled: bool = Field(
        False,
        description="Send Strict-Transport-Security on HTTPS requests",
    )
    admin_auth_required: bool = Field(
        True,
        description="Whether the rate limit admin endpoints require X-Admin-Key",
    )
    admin_api_keys: str | None = Field(
        None,
        description="Comma-separated list of keys accepted on the admin endpoints",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-category quotas and cleanup cadence for the in-memory limiter."""

    enabled: bool = Field(
        True,
        description="Apply rate limiting in the HTTP middleware",
    )
    login_max_requests: int = Field(5, ge=1)
    login_window_seconds: int = Field(60, ge=1)
    register_max_requests: int = Field(3, ge=1)
    register_window_seconds: int = Field(60, ge=1)
    api_max_requests: int = Field(100, ge=1)
    api_window_seconds: int = Field(60, ge=1)
    cleanup_interval_seconds: int = Field(
        300,
        ge=1,
        description="Minimum spacing between opportunistic cleanup sweeps",
    )
    retention_seconds: int = Field(
        600,
        ge=1,
        description="Timestamps older than this are dropped during cleanup",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _retention_exceeds_windows(self) -> "RateLimitSettings":
        longest = max(
            self.login_window_seconds,
            self.register_window_seconds,
            self.api_window_seconds,
        )
        if self.retention_seconds <= longest:
            raise ValueError(
                f"retention_seconds ({self.retention_seconds}) must exceed the "
                f"longest rate limit window ({longest})"
            )
        return self

    def policies(self) -> dict[str, RateLimitPolicy]:
        """Return the quota table keyed by category name."""

        return {
            LOGIN: RateLimitPolicy(self.login_max_requests, self.login_window_seconds),
            REGISTER: RateLimitPolicy(
                self.register_max_requests, self.register_window_seconds
            ),
            API: RateLimitPolicy(self.api_max_requests, self.api_window_seconds),
        }


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
    backup_count: int = Field(5, ge=0)
    request_id_header: str = Field("X-Request-ID")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Raises validation errors on startup if a setting is malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
