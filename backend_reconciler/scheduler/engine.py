"""
Reconciliation scheduler: fixed-interval ticks with a phase gate.

The timer runs in its own asyncio task and computes every tick from the
schedule, not from when the previous run finished. Each tick starts the run as
a separate task, so a slow run never delays the next tick; an overlapping tick
is a no-op through the orchestrator's single-flight guard. Once the phase's
active window has elapsed, scheduled runs are skipped; manual runs never are.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from backend_reconciler.agent_worker.orchestrator import SyncOrchestrator, SyncStatus
from backend_reconciler.analysis_engine.aggregator import WalletDetails
from backend_reconciler.core.exceptions import ReconciliationError, SyncBusyError
from backend_reconciler.recon_logging import get_logger
from backend_reconciler.scheduler.phase import is_phase_ended, utcnow

logger = get_logger(__name__)

DEFAULT_INTERVAL_SEC = 60 * 60
DEFAULT_INITIAL_DELAY_SEC = 5.0
DEFAULT_PHASE_END_AFTER = timedelta(days=1)
PHASE_ENDED_MESSAGE = "Phase ended - no more syncs"


@dataclass(frozen=True)
class NextRun:
    minutes: int
    formatted: str


@dataclass(frozen=True)
class SchedulerStatus:
    is_running: bool
    last_sync_time: datetime | None
    next_sync_in: float | None
    """Seconds until the next scheduled run; None when stopped or gated."""
    last_sync_formatted: str | None
    onchain: SyncStatus
    is_phase_ended: bool


def format_minutes(minutes: int) -> str:
    if minutes == 0:
        return "Now"
    if minutes == 1:
        return "1 minute"
    return f"{minutes} minutes"


class SyncScheduler:
    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        *,
        phase_start: datetime,
        interval_sec: float = DEFAULT_INTERVAL_SEC,
        phase_end_after: timedelta = DEFAULT_PHASE_END_AFTER,
        initial_delay_sec: float = DEFAULT_INITIAL_DELAY_SEC,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")
        self._orchestrator = orchestrator
        self._phase_start = phase_start
        self._interval = float(interval_sec)
        self._phase_end_after = phase_end_after
        self._initial_delay = max(0.0, float(initial_delay_sec))
        self._clock = clock
        self._timer: asyncio.Task | None = None
        self._runs: set[asyncio.Task] = set()
        self._last_sync_time: datetime | None = None
        self._next_run_at: datetime | None = None

    @property
    def phase_start(self) -> datetime:
        return self._phase_start

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def is_phase_ended(self) -> bool:
        return is_phase_ended(self._phase_start, self._phase_end_after, self._clock())

    # -- lifecycle -------------------------------------------------------------

    def start(self) -> None:
        if self.is_running:
            logger.warning("scheduler_already_running")
            return
        self._timer = asyncio.get_running_loop().create_task(self._timer_loop())
        logger.info(
            "scheduler_started",
            interval_sec=self._interval,
            initial_delay_sec=self._initial_delay,
            phase_start=self._phase_start.isoformat(),
        )

    def stop(self) -> None:
        """Cancel the timer. In-flight runs are left to finish."""
        if not self.is_running:
            logger.warning("scheduler_not_running")
            return
        self._timer.cancel()
        self._timer = None
        self._next_run_at = None
        logger.info("scheduler_stopped", in_flight_runs=len(self._runs))

    async def shutdown(self) -> None:
        """stop(), then wait for runs already started."""
        if self.is_running:
            self.stop()
        if self._runs:
            await asyncio.gather(*self._runs, return_exceptions=True)

    async def _timer_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time() + self._initial_delay
        while True:
            self._next_run_at = self._clock() + timedelta(seconds=max(0.0, next_at - loop.time()))
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            self._tick()
            next_at += self._interval
            # Ticks missed while the loop was blocked are dropped, not replayed.
            now = loop.time()
            while next_at <= now:
                next_at += self._interval

    def _tick(self) -> None:
        task = asyncio.get_running_loop().create_task(self.run_scheduled())
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)

    # -- runs --------------------------------------------------------------------

    async def run_scheduled(self) -> list[WalletDetails] | None:
        """
        One scheduled run with the phase start as cutoff. Gated by the phase
        window; failures are logged, never raised.
        """
        if self.is_phase_ended():
            logger.debug("scheduled_sync_skipped_phase_ended")
            return None
        try:
            result = await self._orchestrator.run(self._phase_start)
        except ReconciliationError as e:
            logger.error("scheduled_sync_failed", error=str(e), cause=type(e.__cause__).__name__)
            return None
        if result is None:
            logger.info("scheduled_sync_skipped_busy")
            return None
        self._last_sync_time = self._clock()
        return result

    async def force_run(self, as_of: datetime | None = None) -> list[WalletDetails]:
        """
        Manual run, never phase-gated. Cutoff defaults to the phase start.

        Raises SyncBusyError while a run is in flight, ReconciliationError when
        the run fails.
        """
        if self._orchestrator.is_running:
            logger.warning("force_sync_rejected_busy")
            raise SyncBusyError("A reconciliation run is already in progress")
        cutoff = as_of or self._phase_start
        result = await self._orchestrator.run(cutoff)
        if result is None:
            raise SyncBusyError("A reconciliation run is already in progress")
        self._last_sync_time = self._clock()
        return result

    # -- status ------------------------------------------------------------------

    def _seconds_until_next(self) -> float:
        now = self._clock()
        if self._next_run_at is not None:
            target = self._next_run_at
        elif self._last_sync_time is not None:
            target = self._last_sync_time + timedelta(seconds=self._interval)
        else:
            return 0.0
        return max(0.0, (target - now).total_seconds())

    def get_status(self) -> SchedulerStatus:
        phase_ended = self.is_phase_ended()
        next_sync_in = None
        if self.is_running and not phase_ended:
            next_sync_in = self._seconds_until_next()
        return SchedulerStatus(
            is_running=self.is_running,
            last_sync_time=self._last_sync_time,
            next_sync_in=next_sync_in,
            last_sync_formatted=self._last_sync_time.isoformat() if self._last_sync_time else None,
            onchain=self._orchestrator.get_status(),
            is_phase_ended=phase_ended,
        )

    def time_until_next_run(self) -> NextRun:
        if self.is_phase_ended():
            return NextRun(minutes=-1, formatted=PHASE_ENDED_MESSAGE)
        minutes = math.ceil(self._seconds_until_next() / 60)
        return NextRun(minutes=minutes, formatted=format_minutes(minutes))
