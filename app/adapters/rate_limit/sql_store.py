"""Durable counter store backed by async SQLAlchemy.

This is the authoritative record of consumption windows. Only the request
gate and the session migration service talk to it.

Concurrency notes:
- check and record are separate calls; two concurrent requests from one
  identity may both pass the check before either records. At most one extra
  request per race is admitted, which is accepted for limits this small.
- Concurrent first hits may both insert a window. The oldest active window
  wins and the duplicate is folded into it as a capped increment, so races
  undercount rather than overcount.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Mapping

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.rate_limit.base import AbstractCounterStore, MigrationOutcome, RateLimitResult
from app.core.errors import CounterStoreUnavailableError
from app.core.logging import hash_identifier
from app.db.session import Database
from app.models.consumption_window import ConsumptionWindow
from app.services.rate_limit_policy import (
    DEFAULT_TIER_LIMITS,
    Identity,
    IdentityKind,
    Tier,
    TierLimits,
    evaluate,
    limits_for,
    merge_request_counts,
    promote_window,
    record,
)

logger = logging.getLogger(__name__)


class SqlCounterStore(AbstractCounterStore):
    """Counter store persisting one row per consumption window."""

    def __init__(
        self,
        database: Database,
        *,
        limits: Mapping[Tier, TierLimits] = DEFAULT_TIER_LIMITS,
        retention_seconds: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            database: Database wrapper providing sessions.
            limits: Tier table used to size new windows.
            retention_seconds: How long past expiry a window is kept.
            clock: Time source function returning UNIX time in seconds.
        """
        if retention_seconds < 0:
            raise ValueError("retention_seconds must be >= 0")

        self._db = database
        self._limits = dict(limits)
        self._retention = retention_seconds
        self._clock = clock

    @staticmethod
    def _unavailable(operation: str, exc: Exception) -> CounterStoreUnavailableError:
        return CounterStoreUnavailableError(
            code="counter_store_unavailable",
            message=f"Counter store failed during {operation}: {type(exc).__name__}",
            details={"backend": "sql", "operation": operation},
        )

    @staticmethod
    async def _find_active(
        session: AsyncSession,
        kind: IdentityKind,
        value: str,
        now: float,
        *,
        exclude_migrated: bool = False,
    ) -> ConsumptionWindow | None:
        stmt = (
            select(ConsumptionWindow)
            .where(
                ConsumptionWindow.identity_kind == kind.value,
                ConsumptionWindow.identity_value == value,
                ConsumptionWindow.window_end > now,
            )
            .order_by(ConsumptionWindow.window_start, ConsumptionWindow.id)
            .limit(1)
        )
        if exclude_migrated:
            stmt = stmt.where(ConsumptionWindow.migrated_to_identity_value.is_(None))
        result = await session.execute(stmt)
        return result.scalars().first()

    async def check_rate_limit(self, identity: Identity) -> RateLimitResult:
        now = self._clock()
        limits = limits_for(identity, self._limits)

        try:
            async with self._db.session() as session:
                window = await self._find_active(session, identity.kind, identity.value, now)
                decision = evaluate(window, limits, now)
        except (SQLAlchemyError, OSError) as exc:
            raise self._unavailable("check", exc) from exc

        return RateLimitResult(
            allowed=decision.allowed,
            limit=decision.limit,
            remaining=decision.remaining,
            reset_at=decision.reset_at,
            tier=identity.tier,
        )

    async def record_rate_limit_hit(self, identity: Identity) -> bool:
        now = self._clock()
        limits = limits_for(identity, self._limits)

        try:
            async with self._db.session() as session, session.begin():
                window = await self._find_active(session, identity.kind, identity.value, now)
                state = record(window, limits, now)

                if window is not None:
                    window.request_count = state.request_count
                    return True

                created = ConsumptionWindow(
                    identity_kind=identity.kind.value,
                    identity_value=identity.value,
                    request_count=state.request_count,
                    window_start=state.window_start,
                    window_end=state.window_end,
                    tier=identity.tier.value,
                    max_requests=state.max_requests,
                    window_seconds=state.window_seconds,
                )
                session.add(created)
                await session.flush()
                await self._fold_duplicate(session, identity, created, now)
        except (SQLAlchemyError, OSError) as exc:
            raise self._unavailable("record", exc) from exc

        return True

    async def _fold_duplicate(
        self,
        session: AsyncSession,
        identity: Identity,
        created: ConsumptionWindow,
        now: float,
    ) -> None:
        """Keep a single active window when a concurrent insert raced ours."""

        oldest = await self._find_active(session, identity.kind, identity.value, now)
        if oldest is None or oldest.id == created.id:
            return

        oldest.request_count = min(oldest.request_count + 1, oldest.max_requests)
        await session.delete(created)
        logger.info(
            "rate_limit.store.duplicate_window_folded",
            extra={
                "identity_kind": identity.kind.value,
                "identity_hash": hash_identifier(identity.value),
                "kept_window_id": oldest.id,
            },
        )

    async def migrate_session(self, session_id: str, subject_id: str) -> MigrationOutcome:
        """Fold an anonymous session's active window into a subject's history.

        - No active, not-yet-migrated session window: nothing happens.
        - Subject already has an active window: its count becomes the larger
          of the two counts and the session window is stamped as migrated.
        - Otherwise the session window itself becomes the subject's window,
          re-scoped to authenticated limits but keeping its original start.

        Raises:
            CounterStoreUnavailableError: If the database cannot be reached.
        """
        now = self._clock()
        auth_limits = self._limits[Tier.AUTHENTICATED]

        try:
            async with self._db.session() as session, session.begin():
                session_window = await self._find_active(
                    session, IdentityKind.SESSION, session_id, now, exclude_migrated=True
                )
                if session_window is None:
                    return MigrationOutcome(migrated=False, message="No active session window to migrate")

                subject_window = await self._find_active(session, IdentityKind.SUBJECT, subject_id, now)

                if subject_window is not None:
                    subject_window.request_count = min(
                        merge_request_counts(session_window.request_count, subject_window.request_count),
                        subject_window.max_requests,
                    )
                    session_window.migrated_to_identity_value = subject_id
                    session_window.migrated_at = now
                    return MigrationOutcome(
                        migrated=True,
                        message="Session usage merged into existing window",
                        request_count=subject_window.request_count,
                        window_end=subject_window.window_end,
                    )

                promoted = promote_window(session_window, auth_limits)
                session_window.identity_kind = IdentityKind.SUBJECT.value
                session_window.identity_value = subject_id
                session_window.tier = Tier.AUTHENTICATED.value
                session_window.request_count = promoted.request_count
                session_window.max_requests = promoted.max_requests
                session_window.window_seconds = promoted.window_seconds
                session_window.window_end = promoted.window_end
                session_window.migrated_at = now
                return MigrationOutcome(
                    migrated=True,
                    message="Session window converted to authenticated window",
                    request_count=promoted.request_count,
                    window_end=promoted.window_end,
                )
        except (SQLAlchemyError, OSError) as exc:
            raise self._unavailable("migrate", exc) from exc

    async def cleanup_expired_records(self) -> int:
        cutoff = self._clock() - self._retention

        try:
            async with self._db.session() as session, session.begin():
                result = await session.execute(
                    delete(ConsumptionWindow).where(ConsumptionWindow.window_end < cutoff)
                )
                deleted = result.rowcount or 0
        except (SQLAlchemyError, OSError) as exc:
            raise self._unavailable("cleanup", exc) from exc

        logger.info("rate_limit.store.cleanup", extra={"deleted": deleted, "cutoff": cutoff})
        return deleted
