"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from app.core.errors import (
    AppError,
    AuthenticationAppError,
    CounterStoreUnavailableError,
    LLMAppError,
    RateLimitExceededError,
    ValidationAppError,
)
from app.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    @pytest.mark.parametrize(
        "exc,status_code",
        [
            (ValidationAppError(code="subject_too_long", message="Too long"), 400),
            (AuthenticationAppError(code="invalid_api_key", message="Invalid or missing API key"), 403),
            (LLMAppError(code="llm_request_failed", message="The language model request failed"), 502),
            (CounterStoreUnavailableError(code="counter_store_unavailable", message="down"), 503),
        ],
    )
    def test_status_mapping(
        self, client: TestClient, app_with_handlers: FastAPI, exc: AppError, status_code: int
    ) -> None:
        @app_with_handlers.get("/boom")
        async def boom():
            raise exc

        response = client.get("/boom")

        assert response.status_code == status_code
        error = response.json()["error"]
        assert error["code"] == exc.code
        assert error["message"] == exc.message
        assert "request_id" in error

    def test_details_are_included_when_present(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/details")
        async def details():
            raise ValidationAppError(
                code="subject_too_long",
                message="Subject must be 200 characters or less",
                details={"max_value": 200, "actual_value": 250},
            )

        data = client.get("/details").json()

        assert data["error"]["details"] == {"max_value": 200, "actual_value": 250}

    def test_app_error_without_gate_metadata_sets_no_cookie(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/plain-failure")
        async def plain_failure():
            raise LLMAppError(code="llm_request_failed", message="The language model request failed")

        response = client.get("/plain-failure")

        assert response.status_code == 502
        assert "set-cookie" not in response.headers
        assert "X-RateLimit-Remaining" not in response.headers


class TestRateLimitExceededHandler:
    def test_throttled_body_and_headers(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.post("/limited")
        async def limited():
            raise RateLimitExceededError(
                code="rate_limit_exceeded",
                message="Rate limit exceeded.",
                retry_after_seconds=120,
                tier="anonymous",
                upgrade_available=True,
                headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Tier": "anonymous"},
                session_id="3b1f6c1e-0000-4000-8000-000000000001",
            )

        response = client.post("/limited")

        assert response.status_code == 429
        assert response.json() == {
            "error": "Rate limit exceeded.",
            "retryAfter": 120,
            "tier": "anonymous",
            "upgradeAvailable": True,
        }
        assert response.headers["Retry-After"] == "120"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert "anyzine_session=3b1f6c1e" in response.headers["set-cookie"]

    def test_no_cookie_without_new_session(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.post("/limited-auth")
        async def limited_auth():
            raise RateLimitExceededError(
                code="rate_limit_exceeded",
                message="Rate limit exceeded.",
                retry_after_seconds=5,
                tier="authenticated",
            )

        response = client.post("/limited-auth")

        assert response.status_code == 429
        assert response.json()["upgradeAvailable"] is False
        assert "set-cookie" not in response.headers


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_general_exception_handler_hides_details(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"
        request.state = SimpleNamespace()

        exc = RuntimeError("Unexpected error: database connection failed")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "database connection" not in data["error"]["message"]
        assert "RuntimeError" not in bytes(response.body).decode()

    def test_unexpected_error_keeps_gate_metadata(self, app_with_handlers: FastAPI):
        @app_with_handlers.post("/admitted-then-crashed")
        async def admitted_then_crashed(request: Request):
            request.state.rate_limit_headers = {"X-RateLimit-Remaining": "1", "X-RateLimit-Tier": "anonymous"}
            request.state.issued_session_id = "3b1f6c1e-0000-4000-8000-000000000002"
            raise RuntimeError("boom")

        client = TestClient(app_with_handlers, raise_server_exceptions=False)
        response = client.post("/admitted-then-crashed")

        assert response.status_code == 500
        assert response.headers["X-RateLimit-Remaining"] == "1"
        assert "anyzine_session=3b1f6c1e" in response.headers["set-cookie"]


def test_setup_registers_handlers(app_with_handlers: FastAPI):
    assert RateLimitExceededError in app_with_handlers.exception_handlers
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers
