"""Authentication helpers.

Identity is established upstream: an auth proxy (or the web frontend's server)
signs users in and forwards the subject id in a header. That header is only
trusted when the caller also presents a configured API key, otherwise any
client could claim to be anyone.

Design principles:
- Resolution never fails a request: an untrusted or malformed subject
  degrades the caller to the anonymous tier.
- API keys are never logged, only short hashes.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from app.core.config import settings
from app.core.errors import AuthenticationAppError
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
MAX_SUBJECT_LENGTH = 255


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_api_key(provided_key: str) -> None:
    """Validate that provided API key matches configured keys.

    Args:
        provided_key: API key to validate.

    Raises:
        AuthenticationAppError: If the key is invalid, or keys are required but
            none are configured.
    """
    if not settings.app.api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.api_keys)

    if not valid_keys:
        logger.error(
            "api_key_validation_failed",
            extra={"reason": "api_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable with APP_API_KEY_REQUIRED=false"},
        )

    if provided_key not in valid_keys:
        logger.warning(
            "api_key_validation_failed",
            extra={
                "reason": "invalid_api_key",
                "api_key_hash": hash_identifier(provided_key),
            },
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_api_key(
    x_api_key: Annotated[str | None, Header(alias=API_KEY_HEADER)] = None,
) -> None:
    """FastAPI dependency guarding operator-only routes.

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    if not settings.app.api_key_required:
        return

    if not x_api_key:
        logger.warning("auth.missing_key", extra={"api_key_present": False})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc


def resolve_authenticated_subject(request: Request) -> str | None:
    """Return the authenticated subject id for a request, if any.

    The subject header is honoured only when auth is disabled or the request
    carries a valid API key. Every failure degrades to anonymous.

    Args:
        request: Incoming request.

    Returns:
        Subject identifier, or None for anonymous callers.
    """
    raw_subject = request.headers.get(settings.app.subject_header)
    if raw_subject is None:
        return None

    subject = raw_subject.strip()
    if not subject or len(subject) > MAX_SUBJECT_LENGTH:
        logger.warning(
            "auth.subject_rejected",
            extra={"reason": "malformed_subject", "subject_length": len(subject)},
        )
        return None

    if not settings.app.api_key_required:
        return subject

    try:
        api_key = request.headers.get(API_KEY_HEADER)
        if not api_key:
            raise AuthenticationAppError(
                code="missing_api_key",
                message="Subject header supplied without an API key",
            )
        validate_api_key(api_key)
    except AuthenticationAppError as exc:
        logger.warning(
            "auth.subject_untrusted",
            extra={"reason": exc.code, "subject_hash": hash_identifier(subject)},
        )
        return None

    return subject
