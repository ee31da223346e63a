"""Rate limiter tests."""

import asyncio

import pytest

from authgate.config import Settings
from authgate.services.rate_limit import (
    WINDOW_SECONDS,
    InMemoryRateLimiter,
    RateLimitScope,
    rate_limit_key,
)


class FakeTime:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def limiter(settings: Settings, fake_time: FakeTime) -> InMemoryRateLimiter:
    return InMemoryRateLimiter(settings, clock=fake_time)


PHONE_KEY = rate_limit_key(RateLimitScope.PHONE, "+971500000000")
ADDR_KEY = rate_limit_key(RateLimitScope.ADDR, "203.0.113.7")


def test_rate_limit_key():
    assert PHONE_KEY == "phone:+971500000000"
    assert ADDR_KEY == "addr:203.0.113.7"


async def test_denies_after_limit(limiter: InMemoryRateLimiter):
    """The (N+1)-th call within the window is denied."""
    for _ in range(5):
        assert await limiter.allow(PHONE_KEY) is True
    assert await limiter.allow(PHONE_KEY) is False


async def test_limits_differ_by_scope(limiter: InMemoryRateLimiter):
    results = [await limiter.allow(ADDR_KEY) for _ in range(11)]
    assert results == [True] * 10 + [False]


async def test_window_slides_from_earliest_attempt(
    limiter: InMemoryRateLimiter, fake_time: FakeTime
):
    first = fake_time.now
    assert await limiter.allow(PHONE_KEY)
    fake_time.now = first + 600
    for _ in range(4):
        assert await limiter.allow(PHONE_KEY)
    assert not await limiter.allow(PHONE_KEY)

    # One hour after the earliest attempt only that attempt has aged out
    fake_time.now = first + WINDOW_SECONDS + 1
    assert await limiter.allow(PHONE_KEY)
    assert not await limiter.allow(PHONE_KEY)


async def test_denied_attempts_are_not_recorded(
    limiter: InMemoryRateLimiter, fake_time: FakeTime
):
    start = fake_time.now
    for _ in range(5):
        await limiter.allow(PHONE_KEY)

    # Hammering while blocked must not push the window forward
    for offset in range(1, 10):
        fake_time.now = start + offset * 60
        assert not await limiter.allow(PHONE_KEY)

    fake_time.now = start + WINDOW_SECONDS + 1
    assert await limiter.allow(PHONE_KEY)


async def test_keys_are_independent(limiter: InMemoryRateLimiter):
    for _ in range(5):
        await limiter.allow(PHONE_KEY)
    other = rate_limit_key(RateLimitScope.PHONE, "+971500000001")
    assert await limiter.allow(other)


async def test_reset(limiter: InMemoryRateLimiter):
    for _ in range(5):
        await limiter.allow(PHONE_KEY)
    limiter.reset(PHONE_KEY)
    assert await limiter.allow(PHONE_KEY)


async def test_unknown_scope_rejected(limiter: InMemoryRateLimiter):
    with pytest.raises(ValueError):
        await limiter.allow("email:someone@example.com")


async def test_concurrent_callers_do_not_double_admit(limiter: InMemoryRateLimiter):
    results = await asyncio.gather(*(limiter.allow(PHONE_KEY) for _ in range(20)))
    assert results.count(True) == 5


async def test_cleanup_old_entries(limiter: InMemoryRateLimiter, fake_time: FakeTime):
    await limiter.allow(PHONE_KEY)
    fake_time.now += WINDOW_SECONDS + 1
    await limiter.allow(ADDR_KEY)

    removed = await limiter.cleanup_old_entries()

    assert removed == 1
    assert await limiter.allow(PHONE_KEY)
