"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional so each error only carries what it knows.
    """

    code: str
    message: str
    hint: str
    min_value: int
    max_value: int
    actual_value: int
    http_status: int
    retry_after: float
    model: str
    backend: str
    operation: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class LLMAppError(AppError):
    """Raised when LLM provider/client operations fail."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class CounterStoreUnavailableError(AppError):
    """Raised when the durable rate-limit store cannot be reached.

    The request gate recovers from this locally; it is never returned to
    callers.
    """


@dataclass
class RateLimitExceededError(AppError):
    """Raised by the request gate when a caller has exhausted its window.

    Attributes:
        retry_after_seconds: Seconds until the current window ends.
        tier: Tier the caller was evaluated under.
        upgrade_available: True when signing in would raise the limit.
        headers: Rate limit headers to attach to the 429 response.
        session_id: Newly issued anonymous session id to persist, if any.
    """

    retry_after_seconds: int = 0
    tier: str = "anonymous"
    upgrade_available: bool = False
    headers: dict[str, str] = field(default_factory=dict)
    session_id: str | None = None
