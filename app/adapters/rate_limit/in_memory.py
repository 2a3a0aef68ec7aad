"""In-process fallback counter.

Used only while the durable counter store is unreachable.

Notes:
- Per-process only: each worker keeps its own map, and nothing is written
  back to the durable store once it recovers.
- Thread-safe: uses a lock around shared state.
- Expired entries are swept opportunistically on check/record, at most once
  per sweep interval.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Mapping

from app.adapters.rate_limit.base import AbstractRateLimitCounter, RateLimitResult
from app.services.rate_limit_policy import (
    DEFAULT_TIER_LIMITS,
    Identity,
    Tier,
    TierLimits,
    WindowState,
    evaluate,
    limits_for,
    record,
)

logger = logging.getLogger(__name__)


class LocalFallbackCounter(AbstractRateLimitCounter):
    """Best-effort mirror of the counter store's check/record contract.

    Important:
        Not authoritative. State is lost on restart and is not shared between
        workers, so during an outage each worker enforces its own limits.
    """

    def __init__(
        self,
        *,
        limits: Mapping[Tier, TierLimits] = DEFAULT_TIER_LIMITS,
        sweep_interval_seconds: float = 5 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the fallback counter.

        Args:
            limits: Tier table used to size new windows.
            sweep_interval_seconds: Minimum gap between expired-entry sweeps.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If sweep_interval_seconds is invalid.
        """
        if sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be > 0")

        self._limits = dict(limits)
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._windows: dict[str, WindowState] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _sweep_expired_locked(self, now: float) -> int:
        expired = [key for key, window in self._windows.items() if window.window_end <= now]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now
        return len(expired)

    def _maybe_sweep_locked(self, now: float) -> None:
        if now - self._last_sweep < self._sweep_interval:
            return
        removed = self._sweep_expired_locked(now)
        if removed:
            logger.debug(
                "rate_limit.fallback.swept",
                extra={"removed": removed, "entries": len(self._windows)},
            )

    async def check_rate_limit(self, identity: Identity) -> RateLimitResult:
        now = self._clock()
        limits = limits_for(identity, self._limits)

        with self._lock:
            self._maybe_sweep_locked(now)
            decision = evaluate(self._windows.get(identity.key), limits, now)

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

        with self._lock:
            self._maybe_sweep_locked(now)
            self._windows[identity.key] = record(self._windows.get(identity.key), limits, now)
        return True

    async def cleanup_expired_records(self) -> int:
        """Sweep expired entries immediately, ignoring the sweep interval."""

        with self._lock:
            return self._sweep_expired_locked(self._clock())
