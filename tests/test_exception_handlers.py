"""Tests for global exception handlers."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mybooks.core.errors import (
    AppError,
    AuthenticationAppError,
    ErrorDetails,
    ValidationAppError,
)
from mybooks.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation")
        async def endpoint():
            raise ValidationAppError(
                code="unknown_rate_limit_category",
                message="No rate limit policy",
                details={"category": "export", "allowed_categories": ["api", "login"]},
            )

        response = client.get("/test-validation")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "unknown_rate_limit_category"
        assert error["message"] == "No rate limit policy"
        assert error["details"]["allowed_categories"] == ["api", "login"]
        assert "request_id" in error

    def test_authentication_error_returns_403(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-auth")
        async def endpoint():
            raise AuthenticationAppError(code="invalid_admin_key", message="Invalid admin key")

        response = client.get("/test-auth")

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "invalid_admin_key"
        assert "details" not in response.json()["error"]

    def test_unexpected_exception_returns_generic_500(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/boom")
        async def endpoint():
            raise RuntimeError("bucket table corrupted")

        response = client.get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"
        assert "corrupted" not in response.text


def test_general_exception_handler_never_leaks_details():
    request = AsyncMock()
    request.url.path = "/test"
    request.method = "GET"

    response = asyncio.run(general_exception_handler(request, ValueError("secret detail")))

    body = bytes(response.body).decode()
    data = json.loads(body)
    assert response.status_code == 500
    assert "secret detail" not in body
    assert "Traceback" not in body
    assert "ValueError" not in body
    assert "request_id" in data["error"]


def test_setup_registers_handlers():
    app = FastAPI()
    setup_exception_handlers(app)
    setup_exception_handlers(app)

    assert AppError in app.exception_handlers
    assert Exception in app.exception_handlers


def test_app_error_str_is_message():
    assert str(ValidationAppError(code="c", message="readable")) == "readable"


def test_error_details_only_declares_keys_the_api_produces():
    assert ErrorDetails.__optional_keys__ == {"hint", "category", "allowed_categories"}
