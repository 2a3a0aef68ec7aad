"""Unit tests for the in-process fallback counter."""

from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.in_memory import LocalFallbackCounter
from app.services.rate_limit_policy import Identity, IdentityKind, Tier, TierLimits

LIMITS = {
    Tier.ANONYMOUS: TierLimits(max_requests=2, window_seconds=60),
    Tier.AUTHENTICATED: TierLimits(max_requests=3, window_seconds=120),
}
SESSION = Identity(IdentityKind.SESSION, "s-1")


@pytest.mark.asyncio
async def test_check_does_not_consume() -> None:
    clock = Mock(return_value=1000.0)
    counter = LocalFallbackCounter(limits=LIMITS, clock=clock)

    for _ in range(3):
        result = await counter.check_rate_limit(SESSION)
        assert result.allowed is True
        assert result.remaining == 2

    assert len(counter) == 0


@pytest.mark.asyncio
async def test_allows_up_to_limit_then_blocks() -> None:
    clock = Mock(return_value=1000.0)
    counter = LocalFallbackCounter(limits=LIMITS, clock=clock)

    await counter.record_rate_limit_hit(SESSION)
    assert (await counter.check_rate_limit(SESSION)).remaining == 1

    await counter.record_rate_limit_hit(SESSION)
    blocked = await counter.check_rate_limit(SESSION)
    assert blocked.allowed is False
    assert blocked.remaining == 0
    assert blocked.reset_at == 1060.0
    assert blocked.tier is Tier.ANONYMOUS


@pytest.mark.asyncio
async def test_record_beyond_limit_is_clamped() -> None:
    clock = Mock(return_value=1000.0)
    counter = LocalFallbackCounter(limits=LIMITS, clock=clock)

    for _ in range(5):
        await counter.record_rate_limit_hit(SESSION)

    clock.return_value = 1059.0
    assert (await counter.check_rate_limit(SESSION)).remaining == 0


@pytest.mark.asyncio
async def test_resets_on_new_window() -> None:
    clock = Mock(return_value=1000.0)
    counter = LocalFallbackCounter(limits=LIMITS, clock=clock)

    await counter.record_rate_limit_hit(SESSION)
    await counter.record_rate_limit_hit(SESSION)
    assert (await counter.check_rate_limit(SESSION)).allowed is False

    clock.return_value = 1060.0
    result = await counter.check_rate_limit(SESSION)
    assert result.allowed is True
    assert result.remaining == 2


@pytest.mark.asyncio
async def test_isolated_by_identity_and_tier() -> None:
    clock = Mock(return_value=1000.0)
    counter = LocalFallbackCounter(limits=LIMITS, clock=clock)
    subject = Identity(IdentityKind.SUBJECT, "s-1")

    await counter.record_rate_limit_hit(SESSION)
    await counter.record_rate_limit_hit(SESSION)

    result = await counter.check_rate_limit(subject)
    assert result.allowed is True
    assert result.limit == 3
    assert result.tier is Tier.AUTHENTICATED


@pytest.mark.asyncio
async def test_expired_entries_are_swept_after_interval() -> None:
    clock = Mock(return_value=1000.0)
    counter = LocalFallbackCounter(limits=LIMITS, sweep_interval_seconds=300, clock=clock)

    await counter.record_rate_limit_hit(SESSION)
    assert len(counter) == 1

    # Expired but the sweep interval has not elapsed
    clock.return_value = 1100.0
    await counter.check_rate_limit(Identity(IdentityKind.ADDRESS, "10.0.0.1"))
    assert len(counter) == 1

    clock.return_value = 1301.0
    await counter.check_rate_limit(Identity(IdentityKind.ADDRESS, "10.0.0.1"))
    assert len(counter) == 0


@pytest.mark.asyncio
async def test_cleanup_sweeps_immediately() -> None:
    clock = Mock(return_value=1000.0)
    counter = LocalFallbackCounter(limits=LIMITS, clock=clock)

    await counter.record_rate_limit_hit(SESSION)
    await counter.record_rate_limit_hit(Identity(IdentityKind.SUBJECT, "u"))

    clock.return_value = 1060.0
    assert await counter.cleanup_expired_records() == 1
    assert len(counter) == 1


def test_invalid_sweep_interval() -> None:
    with pytest.raises(ValueError):
        LocalFallbackCounter(limits=LIMITS, sweep_interval_seconds=0)
