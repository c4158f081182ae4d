"""Tests for the rate limiting stage of the HTTP pipeline."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mybooks.core import rate_limit
from mybooks.core.app_factory import create_app
from mybooks.core.rate_limit import get_rate_limiter, resolve_category


@pytest.fixture
def app() -> FastAPI:
    """Full application plus stub handlers standing in for the auth/book routes."""
    application = create_app()

    @application.post("/api/auth/login")
    async def login() -> dict:
        return {"message": "Login successful"}

    @application.post("/api/auth/register")
    async def register() -> dict:
        return {"message": "User registered successfully"}

    @application.post("/api/auth/refresh")
    async def refresh() -> dict:
        return {"message": "refreshed"}

    @application.get("/api/books")
    async def list_books() -> list:
        return []

    @application.get("/")
    async def index() -> dict:
        return {"page": "index"}

    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def _from(ip: str) -> dict[str, str]:
    return {"X-Forwarded-For": ip}


class TestResolveCategory:
    @pytest.mark.parametrize(
        ("method", "path", "expected"),
        [
            ("POST", "/api/auth/login", "login"),
            ("post", "/api/auth/login", "login"),
            ("POST", "/api/auth/register", "register"),
            ("GET", "/api/books", "api"),
            ("DELETE", "/api/notes/7", "api"),
            ("GET", "/api/admin/rate-limit/stats", "api"),
            ("GET", "/api/auth/login", None),
            ("POST", "/api/auth/refresh", None),
            ("POST", "/api/auth/login/extra", None),
            ("GET", "/health", None),
            ("GET", "/", None),
            ("GET", "/apiary", None),
        ],
    )
    def test_category_mapping(self, method: str, path: str, expected: str | None) -> None:
        assert resolve_category(method, path) == expected


class TestLoginLimit:
    def test_allowed_login_carries_informational_headers(self, client: TestClient) -> None:
        resp = client.post("/api/auth/login", headers=_from("203.0.113.7"))

        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Limit"] == "5"
        assert resp.headers["X-RateLimit-Remaining"] == "4"

    def test_sixth_login_is_rejected_with_429_contract(self, client: TestClient) -> None:
        for expected_remaining in range(4, -1, -1):
            resp = client.post("/api/auth/login", headers=_from("203.0.113.7"))
            assert resp.status_code == 200
            assert resp.headers["X-RateLimit-Remaining"] == str(expected_remaining)

        resp = client.post("/api/auth/login", headers=_from("203.0.113.7"))

        assert resp.status_code == 429
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "RATE_LIMIT_EXCEEDED"
        assert body["message"]
        assert body["remainingAttempts"] == 0
        assert 0 < body["retryAfter"] <= 60
        assert resp.headers["Retry-After"] == str(body["retryAfter"])
        assert isinstance(body["timestamp"], int)

    def test_rejected_response_still_has_security_headers(self, client: TestClient) -> None:
        for _ in range(6):
            resp = client.post("/api/auth/login", headers=_from("203.0.113.8"))

        assert resp.status_code == 429
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert resp.headers["X-Request-ID"]

    def test_other_clients_unaffected(self, client: TestClient) -> None:
        for _ in range(6):
            client.post("/api/auth/login", headers=_from("203.0.113.7"))

        resp = client.post("/api/auth/login", headers=_from("198.51.100.2"))

        assert resp.status_code == 200

    def test_exceeded_event_is_logged(
        self, client: TestClient, caplog: pytest.LogCaptureFixture
    ) -> None:
        for _ in range(5):
            client.post("/api/auth/login", headers=_from("203.0.113.9"))

        with caplog.at_level(logging.WARNING, logger="mybooks.security"):
            client.post("/api/auth/login", headers=_from("203.0.113.9"))

        events = [r for r in caplog.records if getattr(r, "event", None) == "RATE_LIMIT_EXCEEDED"]
        assert len(events) == 1
        assert events[0].ip == "203.0.113.9"
        assert events[0].endpoint == "/api/auth/login"
        assert events[0].category == "login"


class TestOtherCategories:
    def test_register_limit_has_no_remaining_attempts_field(self, client: TestClient) -> None:
        for _ in range(3):
            assert client.post("/api/auth/register", headers=_from("10.1.1.1")).status_code == 200

        resp = client.post("/api/auth/register", headers=_from("10.1.1.1"))

        assert resp.status_code == 429
        body = resp.json()
        assert "remainingAttempts" not in body
        assert resp.headers["Retry-After"] == str(body["retryAfter"])
        assert "X-RateLimit-Limit" not in resp.headers

    def test_api_limit(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(rate_limit.settings.rate_limit, "api_max_requests", 2)

        assert client.get("/api/books", headers=_from("10.2.2.2")).status_code == 200
        assert client.get("/api/books", headers=_from("10.2.2.2")).status_code == 200
        assert client.get("/api/books", headers=_from("10.2.2.2")).status_code == 429

    def test_login_and_api_quotas_are_independent(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(rate_limit.settings.rate_limit, "api_max_requests", 1)
        client.get("/api/books", headers=_from("10.3.3.3"))
        assert client.get("/api/books", headers=_from("10.3.3.3")).status_code == 429

        assert client.post("/api/auth/login", headers=_from("10.3.3.3")).status_code == 200

    def test_unlimited_paths_never_throttled(self, client: TestClient) -> None:
        for _ in range(20):
            assert client.get("/", headers=_from("10.4.4.4")).status_code == 200
            assert client.post("/api/auth/refresh", headers=_from("10.4.4.4")).status_code == 200

        assert get_rate_limiter().statistics().tracked_keys == 0


def test_disabled_rate_limit_skips_stage(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(rate_limit.settings.rate_limit, "enabled", False)

    for _ in range(10):
        resp = client.post("/api/auth/login", headers=_from("10.5.5.5"))
        assert resp.status_code == 200
        assert "X-RateLimit-Limit" not in resp.headers


def test_limiter_rebuilt_when_policy_changes(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_rate_limiter()
    assert get_rate_limiter() is first

    monkeypatch.setattr(rate_limit.settings.rate_limit, "login_max_requests", 2)
    second = get_rate_limiter()

    assert second is not first
    assert second.policy_for("login").max_requests == 2


def test_concurrent_first_use_builds_one_limiter(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit.settings.rate_limit, "login_max_requests", 4)
    barrier = threading.Barrier(16)

    def build():
        barrier.wait()
        return get_rate_limiter()

    with ThreadPoolExecutor(max_workers=16) as pool:
        limiters = [future.result() for future in [pool.submit(build) for _ in range(16)]]

    assert len({id(limiter) for limiter in limiters}) == 1
    assert limiters[0] is get_rate_limiter()
    assert limiters[0].policy_for("login").max_requests == 4


def test_login_headers_reflect_quota_at_admission() -> None:
    application = create_app()

    @application.post("/api/auth/login")
    async def login() -> dict:
        # Another login from the same address lands while this one is handled.
        get_rate_limiter().admit("203.0.113.50", "login")
        return {"message": "Login successful"}

    resp = TestClient(application).post("/api/auth/login", headers=_from("203.0.113.50"))

    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Remaining"] == "4"
    assert resp.headers["X-RateLimit-Limit"] == "5"
    assert get_rate_limiter().remaining_quota("203.0.113.50", "login") == 3
