"""Global exception handlers for consistent error responses.

Design:
- RateLimitExceededError → 429 with the throttle body and Retry-After
- Other AppError subclasses → 400/403/502/503
- Unexpected Exception → generic 500 (safety net)
- Error envelopes include request_id for tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.errors import (
    AppError,
    AuthenticationAppError,
    CounterStoreUnavailableError,
    LLMAppError,
    RateLimitExceededError,
)
from app.core.logging import get_request_id
from app.core.session import set_session_cookie

logger = logging.getLogger(__name__)


def _carry_gate_metadata(request: Request, response: JSONResponse) -> JSONResponse:
    """Re-apply rate limit headers and a newly issued session cookie.

    A request admitted by the gate has already been counted, so an error
    raised later in the route must still tell the client its standing and
    its session id.
    """
    state = request.state
    response.headers.update(getattr(state, "rate_limit_headers", None) or {})
    session_id = getattr(state, "issued_session_id", None)
    if session_id:
        set_session_cookie(response, session_id)
    return response


def _status_for(exc: AppError) -> int:
    if isinstance(exc, AuthenticationAppError):
        return 403
    if isinstance(exc, LLMAppError):
        return 502
    if isinstance(exc, CounterStoreUnavailableError):
        return 503
    return 400


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """Render a throttled request.

    Body: ``{"error", "retryAfter", "tier", "upgradeAvailable"}``. Rate limit
    headers and ``Retry-After`` travel with it, and a session cookie minted
    for this request is still persisted.
    """
    response = JSONResponse(
        status_code=429,
        content={
            "error": exc.message,
            "retryAfter": exc.retry_after_seconds,
            "tier": exc.tier,
            "upgradeAvailable": exc.upgrade_available,
        },
        headers={"Retry-After": str(exc.retry_after_seconds), **exc.headers},
    )
    if exc.session_id:
        set_session_cookie(response, exc.session_id)
    return response


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Routes domain errors to HTTP status codes:
    - ValidationAppError → 400 Bad Request (client fault)
    - AuthenticationAppError → 403 Forbidden
    - LLMAppError → 502 Bad Gateway (upstream model fault)
    - CounterStoreUnavailableError → 503 (only reachable outside the gate)

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = _status_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    response = JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )
    return _carry_gate_metadata(request, response)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors.

    Logs detail for debugging while returning a generic message, so no stack
    traces reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    response = JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )
    return _carry_gate_metadata(request, response)


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with a FastAPI app.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(RateLimitExceededError)(rate_limit_exceeded_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
