"""Token bucket admission control for cloud-mutating calls."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from landing_zone.config import Settings
from landing_zone.context import Deadline
from landing_zone.errors import CancellationError, ValidationError


class RateLimiter:
    """Token bucket shared by every stage task of a run.

    Waiters are served one at a time under the lock, so a waiter that has
    reserved the next token is never overtaken.
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if rate <= 0:
            raise ValidationError("rate must be positive")
        if burst < 1:
            raise ValidationError("burst must be at least 1")
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._updated = clock()
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiter":
        return cls(settings.rate_limit_per_second, settings.rate_limit_burst)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._updated = now

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    async def acquire(self, deadline: Deadline | None = None) -> None:
        async with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return

            wait = (1 - self._tokens) / self.rate
            remaining = deadline.remaining() if deadline is not None else None
            if remaining is not None and remaining < wait:
                raise CancellationError(f"deadline expires before a rate limit token is available ({wait:.3f}s needed)")

            await self._sleep(wait)
            self._refill()
            self._tokens = max(0.0, self._tokens - 1)
