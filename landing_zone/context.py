"""Per-run context passed explicitly to every component."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable

from landing_zone.config import Settings
from landing_zone.errors import CancellationError
from landing_zone.metrics import MetricsCollector


class Deadline:
    """A monotonic deadline shared by every blocking call of one run."""

    def __init__(self, timeout_seconds: float | None, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expires_at = None if timeout_seconds is None else clock() + timeout_seconds

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, operation: str) -> None:
        if self.expired():
            raise CancellationError(f"deadline exceeded before {operation}")


@dataclass
class RunContext:
    settings: Settings
    deadline: Deadline
    metrics: MetricsCollector
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("landing_zone.audit"))
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @classmethod
    def create(cls, settings: Settings, *, deadline: Deadline | None = None) -> "RunContext":
        return cls(
            settings=settings,
            deadline=deadline or Deadline(settings.run_timeout_seconds),
            metrics=MetricsCollector(settings.component),
        )
