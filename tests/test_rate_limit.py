"""Rolling-window limiter tests driven by a fake clock."""

from __future__ import annotations

import asyncio

import pytest

from symbol_sync.providers.rate_limit import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def _limiter(clock: FakeClock, rate: int = 2, period: float = 10.0) -> RateLimiter:
    return RateLimiter(rate, period, clock=clock, sleep=clock.sleep)


@pytest.mark.asyncio
async def test_admits_burst_up_to_rate_without_waiting():
    clock = FakeClock()
    limiter = _limiter(clock)
    await limiter.acquire()
    await limiter.acquire()
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_waits_until_oldest_call_leaves_window():
    clock = FakeClock()
    limiter = _limiter(clock)
    await limiter.acquire()
    clock.now = 6.0
    await limiter.acquire()
    clock.now = 7.0
    await limiter.acquire()
    assert clock.sleeps == [pytest.approx(3.0)]
    assert clock.now == pytest.approx(10.0)


@pytest.mark.asyncio
async def test_concurrent_waiters_never_exceed_rate_per_window():
    clock = FakeClock()
    limiter = _limiter(clock)
    admitted: list[float] = []

    async def _call() -> None:
        await limiter.acquire()
        admitted.append(clock.now)

    await asyncio.gather(*(_call() for _ in range(5)))

    assert admitted == [0.0, 0.0, 10.0, 10.0, 20.0]
    for stamp in admitted:
        in_window = [other for other in admitted if stamp <= other < stamp + limiter.period]
        assert len(in_window) <= limiter.rate


def test_per_minute_uses_sixty_second_window():
    limiter = RateLimiter.per_minute(30)
    assert limiter.rate == 30
    assert limiter.period == 60.0


@pytest.mark.parametrize("rate, period", [(0, 60.0), (5, 0.0)])
def test_rejects_invalid_configuration(rate, period):
    with pytest.raises(ValueError):
        RateLimiter(rate, period)
