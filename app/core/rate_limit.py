"""Tiered rate limiting for FastAPI routes.

This module wires the counter adapters into the HTTP layer.

Strategy:
- Signed-in subjects get the authenticated tier; everyone else is anonymous
  and is keyed by their session cookie, which is issued on the first
  request that arrives without one.
- The durable counter store is consulted first. If it errors or does not
  answer within the configured timeout, the same check/record contract runs
  against the in-process fallback counter and the caller cannot tell.
- check and record are separate steps. A request admitted by check is never
  re-denied because recording failed.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping, TypeVar

from fastapi import Depends, Request, Response

from app.adapters.rate_limit.base import AbstractRateLimitCounter, RateLimitResult
from app.core.auth import resolve_authenticated_subject
from app.core.config import settings
from app.core.errors import RateLimitExceededError
from app.core.logging import hash_identifier
from app.core.session import SessionHandle, get_client_ip, get_or_create_session_id
from app.services.rate_limit_policy import DEFAULT_TIER_LIMITS, Identity, Tier, TierLimits

logger = logging.getLogger(__name__)

T = TypeVar("T")

HEADER_LIMIT = "X-RateLimit-Limit"
HEADER_REMAINING = "X-RateLimit-Remaining"
HEADER_RESET = "X-RateLimit-Reset"
HEADER_TIER = "X-RateLimit-Tier"


@dataclass(frozen=True)
class GateDecision:
    """What the gate decided for one request.

    Attributes:
        allowed: Whether the request may proceed.
        tier: Tier the caller was evaluated under.
        limit: Max requests per window for the tier.
        remaining: Requests left after this one (when admitted).
        reset_at: UNIX epoch seconds when the window ends.
        retry_after_seconds: Seconds to wait, only set when throttled.
        degraded: True when the in-process fallback made the decision.
    """

    allowed: bool
    tier: Tier
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None
    degraded: bool = False

    @property
    def upgrade_available(self) -> bool:
        return self.tier is Tier.ANONYMOUS

    @property
    def reset_epoch_seconds(self) -> int:
        return int(math.ceil(self.reset_at))

    def headers(self) -> dict[str, str]:
        return {
            HEADER_LIMIT: str(self.limit),
            HEADER_REMAINING: str(self.remaining),
            HEADER_RESET: str(self.reset_epoch_seconds),
            HEADER_TIER: self.tier.value,
        }


def describe_window(seconds: float) -> str:
    """Human wording for a window length ("hour", "day", "30 minutes")."""

    if seconds == 60 * 60:
        return "hour"
    if seconds == 24 * 60 * 60:
        return "day"
    if seconds % 3600 == 0:
        return f"{int(seconds // 3600)} hours"
    if seconds % 60 == 0:
        return f"{int(seconds // 60)} minutes"
    return f"{int(seconds)} seconds"


class RequestGate:
    """Per-request rate limit orchestration.

    Both counters are injected and live as long as the application, so each
    test can build its own gate with fresh state.
    """

    def __init__(
        self,
        store: AbstractRateLimitCounter,
        fallback: AbstractRateLimitCounter,
        *,
        limits: Mapping[Tier, TierLimits] = DEFAULT_TIER_LIMITS,
        timeout_seconds: float = 2.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        self.store = store
        self.fallback = fallback
        self._limits = dict(limits)
        self._timeout = timeout_seconds
        self._clock = clock

    def limits_for(self, tier: Tier) -> TierLimits:
        return self._limits[tier]

    async def _call_store(self, operation: str, identity: Identity, call: Callable[[], Awaitable[T]]) -> T | None:
        """Run a store call under the timeout; None means the store failed."""

        try:
            return await asyncio.wait_for(call(), timeout=self._timeout)
        except Exception as exc:  # noqa: BLE001 - any store fault engages the fallback
            logger.warning(
                "rate_limit.store_unavailable",
                extra={
                    "operation": operation,
                    "identity_kind": identity.kind.value,
                    "identity_hash": hash_identifier(identity.value),
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return None

    async def _check(self, identity: Identity) -> tuple[RateLimitResult, bool]:
        result = await self._call_store(
            "check", identity, lambda: self.store.check_rate_limit(identity)
        )
        if result is not None:
            return result, False
        return await self.fallback.check_rate_limit(identity), True

    async def _record(self, identity: Identity, *, degraded: bool) -> None:
        if not degraded:
            recorded = await self._call_store(
                "record", identity, lambda: self.store.record_rate_limit_hit(identity)
            )
            if recorded is not None:
                return
        await self.fallback.record_rate_limit_hit(identity)

    def _decide(self, result: RateLimitResult, *, admitted: bool, degraded: bool) -> GateDecision:
        if admitted:
            return GateDecision(
                allowed=True,
                tier=result.tier,
                limit=result.limit,
                remaining=max(0, result.remaining - 1),
                reset_at=result.reset_at,
                retry_after_seconds=None,
                degraded=degraded,
            )

        retry_after = max(0, math.ceil(result.reset_at - self._clock()))
        return GateDecision(
            allowed=result.allowed,
            tier=result.tier,
            limit=result.limit,
            remaining=result.remaining,
            reset_at=result.reset_at,
            retry_after_seconds=None if result.allowed else retry_after,
            degraded=degraded,
        )

    async def peek(self, identity: Identity) -> GateDecision:
        """Report the caller's standing without consuming anything."""

        result, degraded = await self._check(identity)
        return self._decide(result, admitted=False, degraded=degraded)

    async def admit(self, identity: Identity) -> GateDecision:
        """Check the caller and, when allowed, record the request.

        Returns:
            GateDecision; ``remaining`` already accounts for this request
            when it was admitted.
        """
        result, degraded = await self._check(identity)
        if not result.allowed:
            return self._decide(result, admitted=False, degraded=degraded)

        await self._record(identity, degraded=degraded)
        return self._decide(result, admitted=True, degraded=degraded)

    def throttle_message(self, decision: GateDecision) -> str:
        window = describe_window(self._limits[decision.tier].window_seconds)
        if decision.tier is Tier.ANONYMOUS:
            upgraded = self._limits[Tier.AUTHENTICATED]
            return (
                f"Rate limit exceeded. Anonymous users can generate {decision.limit} zines per {window}. "
                f"Sign in to generate up to {upgraded.max_requests} zines per "
                f"{describe_window(upgraded.window_seconds)}."
            )
        return (
            f"Rate limit exceeded. You can generate {decision.limit} zines per {window}. "
            f"Please try again after your limit resets."
        )


@dataclass(frozen=True)
class ResolvedIdentity:
    identity: Identity
    subject_id: str | None
    session: SessionHandle | None


def resolve_request_identity(request: Request, response: Response) -> ResolvedIdentity:
    """Work out who is calling and make sure anonymous callers get a cookie.

    A session id minted for this request is the limiting key right away, so
    a client that keeps its cookie is counted under one identity from its
    first request.
    """
    subject_id = resolve_authenticated_subject(request)
    if subject_id:
        return ResolvedIdentity(Identity.resolve(subject_id=subject_id), subject_id, None)

    session = get_or_create_session_id(request, response)
    identity = Identity.resolve(session_id=session.id, ip_address=get_client_ip(request))
    return ResolvedIdentity(identity, None, session)


def get_request_gate(request: Request) -> RequestGate:
    return request.app.state.request_gate


async def enforce_rate_limit(
    request: Request,
    response: Response,
    gate: RequestGate = Depends(get_request_gate),
) -> GateDecision | None:
    """FastAPI dependency enforcing tiered rate limits.

    Consumes one unit of the caller's budget when allowed and attaches
    X-RateLimit-* headers to the response.

    Raises:
        RateLimitExceededError: When the caller's window is exhausted.
    """
    if not settings.app.rate_limit_enabled:
        return None

    resolved = resolve_request_identity(request, response)
    identity = resolved.identity
    decision = await gate.admit(identity)

    log_extra = {
        "identity_kind": identity.kind.value,
        "identity_hash": hash_identifier(identity.value),
        "tier": decision.tier.value,
        "limit": decision.limit,
        "remaining": decision.remaining,
        "degraded": decision.degraded,
    }

    headers = decision.headers() if settings.app.rate_limit_include_headers else {}
    new_session_id = resolved.session.id if resolved.session and resolved.session.is_new else None

    # Error handlers build fresh responses; they copy these back on
    request.state.rate_limit = decision
    request.state.rate_limit_headers = headers
    request.state.issued_session_id = new_session_id

    if decision.allowed:
        response.headers.update(headers)
        logger.info("rate_limit.allowed", extra=log_extra)
        return decision

    retry_after = decision.retry_after_seconds or 0
    logger.warning("rate_limit.exceeded", extra={**log_extra, "retry_after_s": retry_after})

    headers = {**headers, "Retry-After": str(retry_after)}
    raise RateLimitExceededError(
        code="rate_limit_exceeded",
        message=gate.throttle_message(decision),
        details={"retry_after": retry_after},
        retry_after_seconds=retry_after,
        tier=decision.tier.value,
        upgrade_available=decision.upgrade_available,
        headers=headers,
        session_id=new_session_id,
    )
