"""
Usage Accounting Engine: turns activity signals into ledger deltas.

Two states: IDLE (no session) and TRACKING (one live TrackingSession bound to
a foreground tab showing a distracting site). Every handler runs under a
single asyncio.Lock, so a checkpoint tick can never interleave with a tab
switch; signals arriving through the monitor subscription are queued and
applied strictly in emission order.

Ledger semantics:
  * one ``+1 opens`` delta per session start, never per checkpoint
  * elapsed time is credited in whole seconds; a checkpoint moves the session
    start forward by exactly what it credited, so sub-second remainders carry
  * time spanning local midnight is split between the two date keys
  * a failed write is kept in memory, merged per (date_key, site_id), and
    replayed before the next write
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..clock import Clock, SystemClock, date_key, split_by_day
from ..models import (
    ActivitySignal,
    EngineState,
    TrackingSession,
    UsageDelta,
    UsageLedger,
)
from .classifier import SiteClassifier

if TYPE_CHECKING:
    from ..limits.gate import EnforcementGate

logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINT_INTERVAL_S = 15.0


class UsageAccountingEngine:
    """
    Usage:
        engine = UsageAccountingEngine(classifier, ledger, gate=gate)
        await engine.start()
        monitor.subscribe(engine.notify)
        ...
        await engine.shutdown()
    """

    def __init__(
        self,
        classifier: SiteClassifier,
        ledger: UsageLedger,
        clock: Optional[Clock] = None,
        gate: Optional["EnforcementGate"] = None,
        checkpoint_interval_s: float = DEFAULT_CHECKPOINT_INTERVAL_S,
    ):
        self._classifier = classifier
        self._ledger = ledger
        self._clock = clock or SystemClock()
        self._gate = gate
        self._checkpoint_interval_s = checkpoint_interval_s

        self._lock = asyncio.Lock()
        self._session: Optional[TrackingSession] = None
        self._retry: List[UsageDelta] = []

        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._checkpoint_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return EngineState.TRACKING if self._session else EngineState.IDLE

    @property
    def session(self) -> Optional[TrackingSession]:
        return self._session

    @property
    def pending_deltas(self) -> List[UsageDelta]:
        return list(self._retry)

    @property
    def checkpoint_armed(self) -> bool:
        return self._checkpoint_task is not None and not self._checkpoint_task.done()

    def status(self) -> Dict[str, Any]:
        s = self._session
        return {
            "state": self.state.value,
            "site_id": s.site_id if s else None,
            "tab_id": s.tab_id if s else None,
            "url": s.url if s else None,
            "interval_started_at": s.started_at.isoformat() if s else None,
            "pending_deltas": len(self._retry),
            "checkpoint_interval_s": self._checkpoint_interval_s,
            "timestamp": self._clock.now().isoformat(),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the worker that applies queued signals in order."""
        if self._worker is not None:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._drain_signals())

    async def shutdown(self) -> int:
        """Stop the worker and flush the live session. Returns seconds credited."""
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        self._queue = None
        return await self.stop_tracking()

    def notify(self, signal: ActivitySignal) -> None:
        """Subscription callback for the ActivityMonitor; never blocks."""
        if self._queue is None:
            logger.warning("Engine not started; dropping activity signal %s", signal)
            return
        self._queue.put_nowait(signal)

    async def join(self) -> None:
        """Wait until every queued signal has been applied."""
        if self._queue is not None:
            await self._queue.join()

    # ------------------------------------------------------------------
    # Handlers (each one is a critical section)
    # ------------------------------------------------------------------

    async def handle_signal(self, signal: ActivitySignal) -> None:
        async with self._lock:
            try:
                await self._replay_pending()
                await self._apply(signal)
            except Exception:
                logger.exception("Failed to apply activity signal %s", signal)

    async def checkpoint(self) -> int:
        """Flush elapsed whole seconds without ending the session or counting an open."""
        async with self._lock:
            try:
                await self._replay_pending()
                if self._session is None:
                    return 0
                credited = await self._flush(final=False)
                logger.debug("Checkpoint credited %ss to %s", credited, self._session.site_id)
                await self._enforce_live_session()
                return credited
            except Exception:
                logger.exception("Checkpoint failed")
                return 0

    async def stop_tracking(self) -> int:
        """End the live session, if any. A no-op returning 0 when already idle."""
        async with self._lock:
            try:
                await self._replay_pending()
                return await self._end_session("stopped")
            except Exception:
                logger.exception("Failed to stop tracking")
                return 0

    async def rollover(self, new_date_key: Optional[str] = None) -> int:
        """Close the old day's bucket for a session that is live across midnight."""
        credited = await self.checkpoint()
        if credited:
            logger.info("Rollover to %s; flushed %ss of the live session", new_date_key, credited)
        return credited

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _apply(self, signal: ActivitySignal) -> None:
        if not signal.is_foreground_page:
            await self._end_session("no foreground page")
            return

        match = self._classifier.classify(signal.url)
        if not match.is_match:
            await self._end_session("left distracting site")
            return

        current = self._session
        if current and current.site_id == match.site_id and current.tab_id == signal.tab_id:
            current.url = signal.url  # same session, e.g. in-site navigation
            return

        if current:
            await self._end_session("switched")
        await self._begin_session(signal.tab_id, signal.url, match.site_id)

    async def _begin_session(self, tab_id: int, url: str, site_id: str) -> None:
        if self._gate is not None and await self._gate.maybe_block(tab_id, url):
            logger.info("Site %s is over its limit; tab %s redirected, not tracking", site_id, tab_id)
            return

        now = self._clock.now()
        self._session = TrackingSession(site_id=site_id, tab_id=tab_id, url=url, started_at=now)
        logger.info("Tracking site %s in tab %s", site_id, tab_id)
        await self._write(UsageDelta(date_key(now), site_id, opens_delta=1))
        self._arm_checkpoint()

    async def _end_session(self, reason: str) -> int:
        if self._session is None:
            return 0
        credited = await self._flush(final=True)
        logger.info(
            "Stopped tracking site %s (%s); final slice %ss", self._session.site_id, reason, credited
        )
        self._session = None
        self._disarm_checkpoint()
        return credited

    async def _enforce_live_session(self) -> None:
        s = self._session
        if self._gate is None or s is None:
            return
        if await self._gate.maybe_block(s.tab_id, s.url, time_only=True):
            await self._end_session("limit reached")

    # ------------------------------------------------------------------
    # Ledger writes
    # ------------------------------------------------------------------

    async def _flush(self, final: bool) -> int:
        s = self._session
        if s is None:
            return 0
        now = self._clock.now()
        elapsed = (now - s.started_at).total_seconds()
        if elapsed < 0:
            logger.warning("Clock moved backwards by %.1fs; restarting interval", -elapsed)
            s.started_at = now
            return 0

        credited = round(elapsed) if final else int(elapsed)
        if credited <= 0:
            return 0
        for key, seconds in split_by_day(s.started_at, credited):
            await self._write(UsageDelta(key, s.site_id, time_spent_seconds_delta=seconds))
        s.started_at = s.started_at + timedelta(seconds=credited)
        return credited

    async def _write(self, delta: UsageDelta) -> None:
        try:
            await self._ledger.add_usage_delta(delta)
        except Exception as e:
            logger.error("Ledger write failed for %s; will retry: %s", delta, e)
            self._hold(delta)

    def _hold(self, delta: UsageDelta) -> None:
        """Queue *delta* for replay, folded into any pending delta for the same row."""
        for i, pending in enumerate(self._retry):
            if (pending.date_key, pending.site_id) == (delta.date_key, delta.site_id):
                self._retry[i] = UsageDelta(
                    delta.date_key,
                    delta.site_id,
                    time_spent_seconds_delta=(
                        pending.time_spent_seconds_delta + delta.time_spent_seconds_delta
                    ),
                    opens_delta=pending.opens_delta + delta.opens_delta,
                )
                return
        self._retry.append(delta)

    async def _replay_pending(self) -> None:
        while self._retry:
            delta = self._retry[0]
            try:
                await self._ledger.add_usage_delta(delta)
            except Exception as e:
                logger.error("Retry of %s failed; %d delta(s) pending: %s", delta, len(self._retry), e)
                return
            self._retry.pop(0)

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    async def _drain_signals(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            signal = await queue.get()
            try:
                await self.handle_signal(signal)
            finally:
                queue.task_done()

    def _arm_checkpoint(self) -> None:
        if self.checkpoint_armed:
            return
        self._checkpoint_task = asyncio.create_task(self._run_checkpoints())

    def _disarm_checkpoint(self) -> None:
        task, self._checkpoint_task = self._checkpoint_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _run_checkpoints(self) -> None:
        me = asyncio.current_task()
        while self._checkpoint_task is me:
            await asyncio.sleep(self._checkpoint_interval_s)
            if self._checkpoint_task is not me:
                break
            await self.checkpoint()
