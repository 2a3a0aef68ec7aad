"""Rate limit counter interfaces.

The request gate depends on these abstractions, not on a concrete backend, so
the durable SQL store and the in-process fallback are interchangeable for the
check/record contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from app.services.rate_limit_policy import Identity, Tier


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a read-only rate limit check.

    Attributes:
        allowed: Whether the next request may proceed.
        limit: Max requests per window for the caller's tier.
        remaining: Requests left in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window ends.
        tier: Tier the caller was evaluated under.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    tier: Tier


@dataclass(frozen=True)
class MigrationOutcome:
    """Result of folding an anonymous session into a subject's history.

    Attributes:
        migrated: False when there was nothing to migrate.
        message: Short human-readable description.
        request_count: Count carried by the subject's window afterwards.
        window_end: End of the subject's window afterwards.
    """

    migrated: bool
    message: str
    request_count: int | None = None
    window_end: float | None = None


class AbstractRateLimitCounter(ABC):
    """Check/record contract shared by every counter backend."""

    @abstractmethod
    async def check_rate_limit(self, identity: Identity) -> RateLimitResult:
        """Evaluate the caller's standing without consuming budget.

        Args:
            identity: Who is asking.

        Returns:
            RateLimitResult for the caller's tier.
        """
        raise NotImplementedError

    @abstractmethod
    async def record_rate_limit_hit(self, identity: Identity) -> bool:
        """Consume one unit of the caller's budget.

        Must only be called once the request has been let through.

        Returns:
            True when the hit was recorded.
        """
        raise NotImplementedError

    @abstractmethod
    async def cleanup_expired_records(self) -> int:
        """Remove windows that expired long enough ago.

        Returns:
            Number of windows removed.
        """
        raise NotImplementedError


class AbstractCounterStore(AbstractRateLimitCounter):
    """Authoritative, durable counter store."""

    @abstractmethod
    async def migrate_session(self, session_id: str, subject_id: str) -> MigrationOutcome:
        """Fold an anonymous session's active window into a subject's history."""
        raise NotImplementedError
