"""Rate limit counter adapters.

A durable SQL-backed store is authoritative; an in-process counter with the
same check/record contract stands in for it while it is unreachable.
"""

from app.adapters.rate_limit.base import (
    AbstractCounterStore,
    AbstractRateLimitCounter,
    MigrationOutcome,
    RateLimitResult,
)
from app.adapters.rate_limit.in_memory import LocalFallbackCounter
from app.adapters.rate_limit.sql_store import SqlCounterStore

__all__ = [
    "AbstractCounterStore",
    "AbstractRateLimitCounter",
    "LocalFallbackCounter",
    "MigrationOutcome",
    "RateLimitResult",
    "SqlCounterStore",
]
