"""Inverse actions accumulated during a provisioning run."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger("landing_zone.audit")


@dataclass
class CleanupAction:
    name: str
    func: Callable[..., Any]
    args: tuple[Any, ...]


class CleanupStack:
    """Run registered inverse actions newest-first.

    Failures are logged and collected; running never raises, so cleanup can
    not mask the error that triggered it.
    """

    def __init__(self) -> None:
        self._actions: list[CleanupAction] = []

    def push(self, name: str, func: Callable[..., Any], *args: Any) -> None:
        self._actions.append(CleanupAction(name=name, func=func, args=args))

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def pending(self) -> list[str]:
        return [action.name for action in reversed(self._actions)]

    async def run(self) -> list[tuple[str, Exception]]:
        failures: list[tuple[str, Exception]] = []
        logger.info("cleanup_started", extra={"actions": len(self._actions)})
        while self._actions:
            action = self._actions.pop()
            try:
                await asyncio.to_thread(action.func, *action.args)
            except Exception as exc:
                failures.append((action.name, exc))
                logger.error("cleanup_action_failed", extra={"action": action.name, "error": str(exc)})
        logger.info("cleanup_finished", extra={"failures": len(failures)})
        return failures
