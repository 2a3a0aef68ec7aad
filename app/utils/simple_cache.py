"""In-memory TTL cache for generated zines.

Identical subjects within the TTL are served from memory instead of calling
the model again. Thread-safe, per-process, LRU-bounded.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Callable

from app.schemas.zine import ZineResponse

logger = logging.getLogger(__name__)


CachedValue = ZineResponse | dict[str, Any]


@dataclass
class CacheItem:
    value: CachedValue
    expires_at: float


class SimpleTTLCache:
    """Thread-safe, in-memory TTL cache with LRU eviction.

    Attributes:
        ttl_seconds: Time-to-live applied to all entries (0 disables caching).
        max_entries: Maximum number of cached items (None for unlimited).
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        max_entries: int | None = 512,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._store: OrderedDict[str, CacheItem] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"SimpleTTLCache(ttl_seconds={self._ttl}, max_entries={self._max_entries}, "
            f"size={len(self._store)}, hits={self._hits}, misses={self._misses})"
        )

    def get(self, key: str) -> CachedValue | None:
        """Return a cached value if present and not expired."""

        with self._lock:
            item = self._store.get(key)
            if item is None:
                self._misses += 1
                logger.debug("cache.miss", extra={"cache_key": key[:16], "reason": "not_found"})
                return None

            if item.expires_at <= self._clock():
                self._evict_single(key)
                self._misses += 1
                logger.debug("cache.miss", extra={"cache_key": key[:16], "reason": "expired"})
                return None

            self._hits += 1
            self._store.move_to_end(key)
            logger.debug("cache.hit", extra={"cache_key": key[:16]})
            return item.value

    def set(self, key: str, value: CachedValue) -> None:
        """Store a value with the configured TTL, evicting as needed."""

        if self._ttl <= 0:
            return

        with self._lock:
            self._evict_expired_locked()
            self._store[key] = CacheItem(value=value, expires_at=self._clock() + self._ttl)
            self._store.move_to_end(key)
            self._evict_if_over_capacity_locked()

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def stats(self) -> dict[str, int | float | None]:
        """Return lightweight cache metrics without exposing values."""

        with self._lock:
            return {
                "ttl_seconds": self._ttl,
                "max_entries": self._max_entries,
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def _evict_single(self, key: str) -> None:
        if self._store.pop(key, None) is not None:
            self._evictions += 1

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        for key in [k for k, item in self._store.items() if item.expires_at <= now]:
            self._evict_single(key)

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_entries is None:
            return

        while len(self._store) > self._max_entries:
            # popitem(last=False) removes the least recently used entry
            self._store.popitem(last=False)
            self._evictions += 1


def build_cache_key(subject: str, *, salt: str | None = None) -> str:
    """Build a case-insensitive cache key for a zine subject.

    Args:
        subject: Sanitized subject text.
        salt: Optional salt to partition keys by model/prompt version.

    Returns:
        Hex-encoded SHA-256 digest string.
    """

    hasher = sha256()
    hasher.update(subject.strip().lower().encode())
    if salt:
        hasher.update(salt.encode())
    return hasher.hexdigest()
