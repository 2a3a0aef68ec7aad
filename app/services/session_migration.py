"""Carry anonymous usage over to a signed-in subject.

When an anonymous visitor signs in, their session window is folded into the
subject's history once, so signing in raises the limit without resetting the
cooldown they have already used up.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable

from app.adapters.rate_limit.base import AbstractCounterStore, MigrationOutcome
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)


class MigrationAttemptGuard:
    """Remembers which subjects already had a migration attempted.

    An attempt is remembered until the subject signs out or ``ttl_seconds``
    pass, so each sign-in triggers at most one attempt and subjects that never
    sign out do not accumulate.
    """

    def __init__(self, ttl_seconds: float = 24 * 60 * 60, clock: Callable[[], float] = time.time) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._attempted: dict[str, float] = {}

    def _purge_expired(self, now: float) -> None:
        expired = [subject for subject, expires_at in self._attempted.items() if expires_at <= now]
        for subject in expired:
            del self._attempted[subject]

    def claim(self, subject_id: str) -> bool:
        """Mark an attempt for ``subject_id``; False if one is still remembered."""

        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            if subject_id in self._attempted:
                return False
            self._attempted[subject_id] = now + self._ttl
            return True

    def reset(self, subject_id: str) -> None:
        with self._lock:
            self._attempted.pop(subject_id, None)

    def __contains__(self, subject_id: object) -> bool:
        with self._lock:
            expires_at = self._attempted.get(subject_id)  # type: ignore[arg-type]
            return expires_at is not None and expires_at > self._clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempted)


class SessionMigrationService:
    """Runs session → subject migrations against the counter store.

    Failures are never raised to the caller: the subject is simply evaluated
    as a fresh authenticated identity on the next check.

    Attributes:
        store: Durable counter store.
        guard: Per-subject attempt tracker.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        guard: MigrationAttemptGuard,
        *,
        timeout_seconds: float = 5.0,
    ) -> None:
        self.store = store
        self.guard = guard
        self._timeout = timeout_seconds

    async def migrate(self, session_id: str, subject_id: str) -> MigrationOutcome:
        """Migrate ``session_id``'s active window to ``subject_id``.

        Args:
            session_id: Anonymous session identifier from the cookie.
            subject_id: Newly authenticated subject identifier.

        Returns:
            MigrationOutcome; ``migrated`` is False when nothing was moved,
            when an attempt was already made for this sign-in, or on failure.
        """
        log_extra = {
            "session_hash": hash_identifier(session_id),
            "subject_hash": hash_identifier(subject_id),
        }

        if not self.guard.claim(subject_id):
            logger.info("session_migration.skipped", extra={**log_extra, "reason": "already_attempted"})
            return MigrationOutcome(migrated=False, message="Migration already attempted for this sign-in")

        try:
            outcome = await asyncio.wait_for(
                self.store.migrate_session(session_id, subject_id),
                timeout=self._timeout,
            )
        except Exception as exc:  # noqa: BLE001 - migration is best effort
            logger.warning(
                "session_migration.failed",
                extra={**log_extra, "error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            return MigrationOutcome(migrated=False, message="Migration failed; usage was not carried over")

        logger.info(
            "session_migration.completed",
            extra={
                **log_extra,
                "migrated": outcome.migrated,
                "request_count": outcome.request_count,
            },
        )
        return outcome

    def sign_out(self, subject_id: str) -> None:
        """Allow the next sign-in of ``subject_id`` to migrate again."""

        self.guard.reset(subject_id)
        logger.info("session_migration.guard_reset", extra={"subject_hash": hash_identifier(subject_id)})
