"""Route provider calls through the rate limiter and the retry executor."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, TypeVar

from landing_zone.context import RunContext

from .ratelimit import RateLimiter
from .retry import RetryExecutor

T = TypeVar("T")


class CallExecutor:
    """Run a blocking provider call: acquire a token, call in a worker thread, retry on failure.

    A token is acquired for every attempt. A cancelled acquisition ends the
    attempt loop at once without consuming an attempt.
    """

    def __init__(self, limiter: RateLimiter, retry: RetryExecutor, context: RunContext) -> None:
        self._limiter = limiter
        self._retry = retry
        self._context = context

    @property
    def context(self) -> RunContext:
        return self._context

    async def call(self, name: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        deadline = self._context.deadline

        async def attempt() -> T:
            await self._limiter.acquire(deadline)
            return await asyncio.to_thread(func, *args, **kwargs)

        return await self._retry.execute(attempt, name=name, deadline=deadline)
