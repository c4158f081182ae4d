"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before any import of ``mybooks`` so that the
module-level settings instance is built from them and no .env file is read.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("APP_ADMIN_AUTH_REQUIRED", "true")
os.environ.setdefault("APP_ADMIN_API_KEYS", "test-admin-key-123,test-admin-key-456")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

from mybooks.core import rate_limit  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_rate_limiter(monkeypatch: pytest.MonkeyPatch) -> None:
    """Give every test its own process-wide limiter."""
    monkeypatch.setattr(rate_limit, "_limiter", None)
    monkeypatch.setattr(rate_limit, "_limiter_config", None)
