"""Tests for global exception handlers.

Validates that every error type maps to the right HTTP status with the
common ``{"error": {...}}`` body and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from gatekeeper.core.errors import (
    AppError,
    AuthenticationAppError,
    PolicyConfigurationError,
    RateLimitExceededError,
    StoreUnavailableError,
    UnknownPolicyError,
    ValidationAppError,
)
from gatekeeper.core.exception_handlers import (
    general_exception_handler,
    setup_exception_handlers,
    status_code_for,
)


@pytest.fixture
def app_with_handlers() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


@pytest.mark.parametrize(
    ("error", "expected_status"),
    [
        (ValidationAppError(code="bad", message="bad input"), 400),
        (AuthenticationAppError(code="invalid_api_key", message="nope"), 403),
        (UnknownPolicyError(code="unknown_policy", message="missing"), 404),
        (RateLimitExceededError(code="rate_limit_exceeded", message="slow down"), 429),
        (PolicyConfigurationError(code="invalid_policy", message="bad policy"), 500),
        (StoreUnavailableError(code="rate_limit_store_unavailable", message="down"), 503),
        (AppError(code="generic", message="generic"), 400),
    ],
)
def test_status_code_mapping(error: AppError, expected_status: int) -> None:
    assert status_code_for(error) == expected_status


class TestAppErrorHandler:
    def test_rate_limit_error_returns_429_with_headers(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/limited")
        async def limited():
            raise RateLimitExceededError(
                code="rate_limit_exceeded",
                message="Too many requests",
                details={"retry_after": 12, "limit": 5, "remaining": 0, "reset_at": 1_060},
                headers={"Retry-After": "12", "X-RateLimit-Limit": "5"},
            )

        response = client.get("/limited")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "12"
        assert response.headers["X-RateLimit-Limit"] == "5"
        data = response.json()
        assert data["error"]["code"] == "rate_limit_exceeded"
        assert data["error"]["details"]["retry_after"] == 12

    def test_store_unavailable_returns_503(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/store-down")
        async def store_down():
            raise StoreUnavailableError(
                code="rate_limit_store_unavailable",
                message="Rate limit store is unavailable",
            )

        response = client.get("/store-down")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "rate_limit_store_unavailable"
        assert "Retry-After" not in response.headers

    def test_error_response_format_is_consistent(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/format")
        async def fmt():
            raise ValidationAppError(code="test", message="test")

        data = client.get("/format").json()

        assert set(data["error"]) == {"code", "message", "request_id"}


class TestGeneralExceptionHandler:
    def test_unexpected_exception_returns_generic_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/boom")
        async def boom():
            raise RuntimeError("redis password is hunter2")

        response = client.get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"
        assert "hunter2" not in response.text

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        response = asyncio.run(general_exception_handler(request, ValueError("Test error with details")))

        body = bytes(response.body).decode()
        assert json.loads(body)["error"]["code"] == "internal_server_error"
        assert "Traceback" not in body
        assert "ValueError" not in body


def test_setup_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers
