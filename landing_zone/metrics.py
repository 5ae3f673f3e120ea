"""In-process metrics collection for a provisioning run."""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger("landing_zone.metrics")


class MetricsCollector:
    """Counters and durations for one component, flushed to the log."""

    def __init__(self, component: str) -> None:
        self.component = component
        self._counters: dict[str, int] = defaultdict(int)
        self._durations: dict[str, list[float]] = defaultdict(list)
        self._closed = False

    def increment(self, name: str, value: int = 1) -> None:
        self._counters[name] += value

    def record_duration(self, name: str, seconds: float) -> None:
        self._durations[name].append(seconds)

    @contextmanager
    def timer(self, name: str) -> Iterator[None]:
        start = time.monotonic()
        try:
            yield
        finally:
            self.record_duration(name, time.monotonic() - start)

    def counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    def durations(self, name: str) -> list[float]:
        return list(self._durations.get(name, []))

    def flush(self) -> None:
        logger.info(
            "metrics_flushed",
            extra={
                "component": self.component,
                "counters": dict(self._counters),
                "durations": {name: round(sum(values), 3) for name, values in self._durations.items()},
            },
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.flush()
