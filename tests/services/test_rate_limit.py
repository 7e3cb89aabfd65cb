"""Rate limiter tests."""

import pytest

from accessgate.services.rate_limit import (
    CLEANUP_INTERVAL_SECONDS,
    InMemoryRateLimiter,
    RateLimitType,
    get_identifier,
)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> InMemoryRateLimiter:
    return InMemoryRateLimiter(clock=clock)


@pytest.mark.asyncio
async def test_blocks_after_limit_and_recovers(limiter: InMemoryRateLimiter, clock: FakeClock):
    for i in range(10):
        result = await limiter.check("user:u1", RateLimitType.REDEEM)
        assert result.success
        assert result.remaining == 9 - i

    blocked = await limiter.check("user:u1", RateLimitType.REDEEM)
    assert not blocked.success
    assert blocked.reset == int(clock.now + 60)

    clock.advance(61)
    assert (await limiter.check("user:u1", RateLimitType.REDEEM)).success


@pytest.mark.asyncio
async def test_idle_clients_are_evicted(limiter: InMemoryRateLimiter, clock: FakeClock):
    for n in range(5000):
        await limiter.check(f"ip:10.0.{n // 256}.{n % 256}", RateLimitType.POLL)
    assert len(limiter) == 5000

    clock.advance(3600)
    await limiter.check("ip:192.0.2.1", RateLimitType.POLL)

    assert len(limiter) == 1


@pytest.mark.asyncio
async def test_active_clients_survive_eviction(limiter: InMemoryRateLimiter, clock: FakeClock):
    await limiter.check("ip:idle", RateLimitType.START)
    clock.advance(CLEANUP_INTERVAL_SECONDS - 1)
    await limiter.check("ip:busy", RateLimitType.START)
    clock.advance(2)

    assert await limiter.cleanup_old_entries() == 1
    assert len(limiter) == 1

    result = await limiter.check("ip:busy", RateLimitType.START)
    assert result.remaining == 8


def test_identifier_prefers_user():
    assert get_identifier("198.51.100.4", "u1") == "user:u1"
    assert get_identifier("198.51.100.4") == "ip:198.51.100.4"
    assert get_identifier(None) == "ip:unknown"
