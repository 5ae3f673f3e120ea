"""Bounded retry with linear-times-attempt backoff."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from landing_zone.config import Settings
from landing_zone.context import Deadline
from landing_zone.errors import CancellationError, RetryExhaustedError, ValidationError

T = TypeVar("T")

logger = logging.getLogger("landing_zone.audit")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValidationError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValidationError("retry delays must not be negative")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return min(self.base_delay * attempt, self.max_delay)

    @classmethod
    def for_provider(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
        )

    @classmethod
    def for_state(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.state_max_attempts,
            base_delay=settings.state_base_delay_seconds,
            max_delay=settings.state_max_delay_seconds,
        )


class RetryExecutor:
    """Run a zero-argument coroutine function until it succeeds or attempts run out.

    Every error is retried except ``CancellationError``, which ends the loop
    immediately and is not counted as an attempt. Stateless apart from its
    configuration, so one instance may be shared between tasks.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_retry: Callable[[str], None] | None = None,
    ) -> None:
        self.policy = policy
        self._sleep = sleep
        self._on_retry = on_retry

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        name: str = "operation",
        deadline: Deadline | None = None,
    ) -> T:
        attempt = 0
        while True:
            attempt += 1
            if deadline is not None:
                deadline.check(name)
            try:
                return await operation()
            except CancellationError:
                raise
            except Exception as exc:
                if attempt >= self.policy.max_attempts:
                    raise RetryExhaustedError(attempt, exc) from exc
                delay = self.policy.delay_for(attempt)
                logger.warning(
                    "retrying_operation",
                    extra={"operation": name, "attempt": attempt, "delay_seconds": delay, "error": str(exc)},
                )
                if self._on_retry is not None:
                    self._on_retry(name)
                await self._sleep(delay)
