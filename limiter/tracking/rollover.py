"""
Daily Rollover: fires at every local midnight.

Ledger date keys are always derived from the clock at the moment of each
write, so nothing has to be migrated; the rollover only closes the old day's
bucket for a session that is live across midnight and prunes old buckets.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, List, Optional

from ..clock import Clock, SystemClock, date_key, seconds_until_midnight

logger = logging.getLogger(__name__)

RolloverCallback = Callable[[str], Awaitable[object]]

# Small delay past midnight so the callbacks' clock reads land on the new day.
_MIDNIGHT_GRACE_S = 1.0


class DailyRollover:

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or SystemClock()
        self._callbacks: List[RolloverCallback] = []
        self._task: Optional[asyncio.Task] = None

    def register(self, callback: RolloverCallback) -> None:
        """Register an async callback(new_date_key) run on each rollover."""
        self._callbacks.append(callback)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def delay_until_next(self) -> float:
        return seconds_until_midnight(self._clock.now()) + _MIDNIGHT_GRACE_S

    async def fire(self) -> str:
        """Run every callback for the current day; failures are logged, not raised."""
        key = date_key(self._clock.now())
        logger.info("Daily rollover to %s", key)
        for callback in self._callbacks:
            try:
                await callback(key)
            except Exception:
                logger.exception("Rollover callback %r failed", callback)
        return key

    async def _run(self) -> None:
        while True:
            delay = self.delay_until_next()
            logger.debug("Next rollover in %.0fs", delay)
            await asyncio.sleep(delay)
            await self.fire()


def retention_pruner(prune: Callable[[str], Awaitable[int]], clock: Clock, days: int) -> RolloverCallback:
    """Rollover callback that drops ledger buckets older than *days* days."""

    async def _prune(_new_key: str) -> object:
        if days <= 0:
            return 0
        cutoff = date_key(clock.now() - timedelta(days=days))
        return await prune(cutoff)

    return _prune
