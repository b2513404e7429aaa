"""Periodic background sweeps for in-memory stores."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class PeriodicSweeper:
    """Runs ``sweep`` every ``interval_seconds`` on the running event loop.

    Example:
        >>> sweeper = PeriodicSweeper("venue-cache", 30, cache.sweep)
        >>> sweeper.start()
        >>> ...
        >>> await sweeper.stop()
    """

    def __init__(self, name: str, interval_seconds: float, sweep: Callable[[], int]) -> None:
        self.name = name
        self.interval_seconds = interval_seconds
        self._sweep = sweep
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"sweeper:{self.name}"
        )
        logger.debug(f"Started {self.name} sweeper (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug(f"Stopped {self.name} sweeper")

    def run_once(self) -> int:
        removed = self._sweep()
        if removed:
            logger.info(f"{self.name} sweep removed {removed} entries")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"{self.name} sweep failed: {type(e).__name__}: {e}")
