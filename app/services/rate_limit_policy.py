"""Tiered rate limit policy.

Pure decision logic shared by the durable counter store and the in-process
fallback counter, so both back ends agree on what "allowed" means.

Windows are fixed and anchored at the first recorded request: a window opens
on the first ``record`` for an identity and ends ``window_seconds`` later.
Checking never opens a window and never consumes budget.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Protocol

from app.core.config import AppSettings


class Tier(str, Enum):
    """Caller tier, derived solely from whether a subject is authenticated."""

    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


class IdentityKind(str, Enum):
    """What an identity value refers to."""

    SUBJECT = "subject"
    SESSION = "session"
    ADDRESS = "address"


@dataclass(frozen=True)
class Identity:
    """The key a caller is limited under.

    Attributes:
        kind: Which kind of identifier ``value`` is.
        value: The identifier itself.
    """

    kind: IdentityKind
    value: str

    @property
    def tier(self) -> Tier:
        if self.kind is IdentityKind.SUBJECT:
            return Tier.AUTHENTICATED
        return Tier.ANONYMOUS

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.value}"

    @classmethod
    def resolve(
        cls,
        *,
        subject_id: str | None = None,
        session_id: str | None = None,
        ip_address: str | None = None,
    ) -> "Identity":
        """Pick the identity to limit under.

        Precedence: authenticated subject, then anonymous session, then
        network address.

        Raises:
            ValueError: If no identifier is supplied at all.
        """

        if subject_id:
            return cls(IdentityKind.SUBJECT, subject_id)
        if session_id:
            return cls(IdentityKind.SESSION, session_id)
        if ip_address:
            return cls(IdentityKind.ADDRESS, ip_address)
        raise ValueError("at least one of subject_id, session_id or ip_address is required")


@dataclass(frozen=True)
class TierLimits:
    max_requests: int
    window_seconds: float

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")


DEFAULT_TIER_LIMITS: dict[Tier, TierLimits] = {
    Tier.ANONYMOUS: TierLimits(max_requests=2, window_seconds=60 * 60),
    Tier.AUTHENTICATED: TierLimits(max_requests=10, window_seconds=24 * 60 * 60),
}


def tier_limits_from_settings(app_settings: AppSettings) -> dict[Tier, TierLimits]:
    """Build the tier table from configuration."""

    return {
        Tier.ANONYMOUS: TierLimits(
            max_requests=app_settings.rate_limit_anonymous_requests,
            window_seconds=app_settings.rate_limit_anonymous_window_seconds,
        ),
        Tier.AUTHENTICATED: TierLimits(
            max_requests=app_settings.rate_limit_authenticated_requests,
            window_seconds=app_settings.rate_limit_authenticated_window_seconds,
        ),
    }


class WindowLike(Protocol):
    """Anything carrying window state (ORM rows and ``WindowState`` alike)."""

    request_count: int
    window_start: float
    window_end: float
    max_requests: int


@dataclass(frozen=True)
class WindowState:
    """Storage-agnostic snapshot of one consumption window."""

    request_count: int
    window_start: float
    window_end: float
    max_requests: int
    window_seconds: float


@dataclass(frozen=True)
class Decision:
    """Outcome of evaluating a window.

    Attributes:
        allowed: Whether another request may proceed.
        limit: Max requests for the window.
        remaining: Requests left before this one is recorded.
        reset_at: UNIX epoch seconds when the window ends.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float


def is_active(window: WindowLike | None, now: float) -> bool:
    """A window is active strictly before its end; at ``window_end`` it is over."""

    return window is not None and window.window_end > now


def evaluate(window: WindowLike | None, limits: TierLimits, now: float) -> Decision:
    """Decide whether a caller may proceed, without consuming anything.

    Args:
        window: The caller's current window, if one was found.
        limits: Limits for the caller's tier.
        now: Current UNIX time in seconds.

    Returns:
        Decision. For a missing or expired window the full budget is
        reported and the reset time is where a window opened now would end.
    """

    if window is None or not is_active(window, now):
        return Decision(
            allowed=True,
            limit=limits.max_requests,
            remaining=limits.max_requests,
            reset_at=now + limits.window_seconds,
        )

    remaining = max(0, window.max_requests - window.request_count)
    return Decision(
        allowed=remaining > 0,
        limit=window.max_requests,
        remaining=remaining,
        reset_at=window.window_end,
    )


def record(window: WindowLike | None, limits: TierLimits, now: float) -> WindowState:
    """Apply one consumed request to a window.

    A missing or expired window is replaced by a fresh one holding this
    request. An active window keeps its bounds and gains one request, capped
    at its ``max_requests``.
    """

    if window is None or not is_active(window, now):
        return WindowState(
            request_count=1,
            window_start=now,
            window_end=now + limits.window_seconds,
            max_requests=limits.max_requests,
            window_seconds=limits.window_seconds,
        )

    return WindowState(
        request_count=min(window.request_count + 1, window.max_requests),
        window_start=window.window_start,
        window_end=window.window_end,
        max_requests=window.max_requests,
        window_seconds=window.window_end - window.window_start,
    )


def merge_request_counts(session_count: int, subject_count: int) -> int:
    """Merge two partial histories generously: the larger count wins."""

    return max(session_count, subject_count)


def promote_window(window: WindowLike, limits: TierLimits) -> WindowState:
    """Re-scope an anonymous window to authenticated limits.

    The window keeps its original start, so signing in never buys a fresh
    full-length window.
    """

    return WindowState(
        request_count=min(window.request_count, limits.max_requests),
        window_start=window.window_start,
        window_end=window.window_start + limits.window_seconds,
        max_requests=limits.max_requests,
        window_seconds=limits.window_seconds,
    )


def limits_for(identity: Identity, table: Mapping[Tier, TierLimits]) -> TierLimits:
    return table[identity.tier]
