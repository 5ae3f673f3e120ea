"""Concurrent execution of independent governance stages."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from landing_zone.errors import AggregateStageError
from landing_zone.metrics import MetricsCollector

Stage = Callable[[], Awaitable[Any]]

logger = logging.getLogger("landing_zone.audit")


@dataclass
class StageOutcome:
    name: str
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class StageRunner:
    """Launch every stage at once, wait for all of them, report every failure.

    A failing stage never cancels its siblings: a partially applied baseline
    is a valid state to inspect, and the aggregate error lists each failure.
    """

    def __init__(self, metrics: MetricsCollector | None = None) -> None:
        self._metrics = metrics

    async def run(self, stages: Mapping[str, Stage]) -> list[StageOutcome]:
        names = list(stages)
        logger.info("stages_started", extra={"stages": names})
        results = await asyncio.gather(*(self._run_stage(name, stages[name]) for name in names))

        failures = {outcome.name: outcome.error for outcome in results if outcome.error is not None}
        if failures:
            logger.error("stages_failed", extra={"failed_stages": list(failures)})
            raise AggregateStageError(failures)

        logger.info("stages_completed", extra={"stages": names})
        return list(results)

    async def _run_stage(self, name: str, stage: Stage) -> StageOutcome:
        try:
            await stage()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("stage_failed", extra={"stage": name, "error": str(exc)})
            if self._metrics is not None:
                self._metrics.increment("stage_failed")
            return StageOutcome(name=name, error=exc)

        logger.info("stage_succeeded", extra={"stage": name})
        if self._metrics is not None:
            self._metrics.increment("stage_succeeded")
        return StageOutcome(name=name)
