"""Tests for rate limit configuration."""

import pytest
from pydantic import ValidationError

from mybooks.adapters.rate_limit.base import DEFAULT_POLICIES, RateLimitPolicy
from mybooks.core.config import RateLimitSettings


def test_defaults_match_category_table():
    cfg = RateLimitSettings()

    assert cfg.policies() == DEFAULT_POLICIES
    assert cfg.policies()["login"] == RateLimitPolicy(max_requests=5, window_seconds=60)
    assert cfg.cleanup_interval_seconds == 300
    assert cfg.retention_seconds == 600


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("RATE_LIMIT_LOGIN_MAX_REQUESTS", "10")
    monkeypatch.setenv("RATE_LIMIT_API_WINDOW_SECONDS", "120")

    policies = RateLimitSettings().policies()

    assert policies["login"].max_requests == 10
    assert policies["api"].window_seconds == 120


@pytest.mark.parametrize(
    "overrides",
    [
        {"login_max_requests": 0},
        {"register_window_seconds": 0},
        {"api_max_requests": -5},
        {"cleanup_interval_seconds": 0},
    ],
)
def test_non_positive_values_rejected(overrides: dict):
    with pytest.raises(ValidationError):
        RateLimitSettings(**overrides)


def test_retention_must_exceed_longest_window():
    with pytest.raises(ValidationError):
        RateLimitSettings(api_window_seconds=600, retention_seconds=600)

    cfg = RateLimitSettings(api_window_seconds=600, retention_seconds=601)
    assert cfg.policies()["api"].window_seconds == 600
