"""Request throttle shared by every provider call in a pass."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Deque


class RateLimiter:
    """Admit at most ``rate`` acquisitions in any rolling ``period`` seconds.

    ``acquire`` never rejects; it suspends the caller until a slot frees up.
    Waiters are served in arrival order. ``clock`` and ``sleep`` are
    injectable so tests can drive the limiter without real time passing.
    """

    def __init__(
        self,
        rate: int,
        period: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if rate < 1:
            raise ValueError(f"rate must be at least 1, got {rate}")
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        self._rate = rate
        self._period = period
        self._clock = clock
        self._sleep = sleep
        self._calls: Deque[float] = deque()
        self._lock = asyncio.Lock()

    @classmethod
    def per_minute(cls, requests_per_minute: int) -> "RateLimiter":
        return cls(requests_per_minute, 60.0)

    @property
    def rate(self) -> int:
        return self._rate

    @property
    def period(self) -> float:
        return self._period

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = self._clock()
                while self._calls and now - self._calls[0] >= self._period:
                    self._calls.popleft()
                if len(self._calls) < self._rate:
                    self._calls.append(now)
                    return
                await self._sleep(self._period - (now - self._calls[0]))


__all__ = ["RateLimiter"]
