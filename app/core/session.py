"""Anonymous session cookie and client address helpers.

Anonymous visitors are tracked with a long-lived, HttpOnly, SameSite=Lax
cookie holding a random UUID. The cookie is what lets their usage follow them
across requests and, after sign-in, be migrated to their account.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from fastapi import Request, Response

from app.core.config import settings

DEFAULT_CLIENT_IP = "127.0.0.1"


@dataclass(frozen=True)
class SessionHandle:
    """Anonymous session id and whether it was minted for this request."""

    id: str
    is_new: bool


def generate_session_id() -> str:
    return str(uuid.uuid4())


def _is_valid_session_id(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def get_session_id(request: Request) -> str | None:
    """Read the session id cookie; malformed values are ignored."""

    value = request.cookies.get(settings.app.session_cookie_name)
    if not value or not _is_valid_session_id(value):
        return None
    return value


def _cookie_secure() -> bool:
    if settings.app.session_cookie_secure is not None:
        return settings.app.session_cookie_secure
    return settings.is_production


def set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        key=settings.app.session_cookie_name,
        value=session_id,
        max_age=settings.app.session_cookie_max_age_seconds,
        path="/",
        httponly=True,
        secure=_cookie_secure(),
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.app.session_cookie_name,
        path="/",
        httponly=True,
        secure=_cookie_secure(),
        samesite="lax",
    )


def get_or_create_session_id(request: Request, response: Response) -> SessionHandle:
    """Return the caller's session id, issuing a cookie when there is none.

    Args:
        request: Incoming request.
        response: Outgoing response that receives the Set-Cookie header.

    Returns:
        SessionHandle with ``is_new=True`` when a cookie was just issued.
    """
    session_id = get_session_id(request)
    if session_id:
        return SessionHandle(id=session_id, is_new=False)

    session_id = generate_session_id()
    set_session_cookie(response, session_id)
    return SessionHandle(id=session_id, is_new=True)


def get_client_ip(request: Request) -> str:
    """Best-effort client address, honouring common proxy headers.

    Order: first hop of X-Forwarded-For, X-Real-IP, CF-Connecting-IP, the
    socket peer, then a loopback placeholder.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip()

    if request.client and request.client.host:
        return request.client.host

    return DEFAULT_CLIENT_IP
