"""
Clocks and Tickers

Periodic work (the SLA scan) is scheduled through an injected Ticker and reads
time through an injected Clock, so tests can advance time deterministically.

Production uses APScheduler's AsyncIOScheduler; tests and the CLI simulation
use ManualClock + ManualTicker.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .utils.time import ensure_aware, utcnow

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return utcnow()


class ManualClock:
    """
    Clock that only moves when told to.

    Example:
        clock = ManualClock()
        clock.advance(seconds=0.8)
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_aware(start)

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: Optional[timedelta] = None, **kwargs) -> datetime:
        """Move forward by a timedelta or timedelta keyword arguments."""
        step = delta if delta is not None else timedelta(**kwargs)
        if step < timedelta(0):
            raise ValueError("ManualClock cannot move backwards")
        self._now = self._now + step
        return self._now

    def set(self, when: datetime) -> None:
        self._now = ensure_aware(when)


class ScheduledJob:
    """Handle to a periodic job; cancel() is idempotent."""

    def __init__(self, name: str, on_cancel: Callable[[], None]):
        self.name = name
        self._on_cancel = on_cancel
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._on_cancel()


class Ticker(Protocol):
    def schedule(self, callback: Callable[[], None], interval_seconds: float, name: str) -> ScheduledJob:
        ...


class APSchedulerTicker:
    """
    Ticker backed by APScheduler's AsyncIOScheduler.

    Callbacks run on the event loop, never in a worker thread, so agent state
    is only touched from the loop. Must be used from inside a running loop.
    """

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self._scheduler = scheduler

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def schedule(self, callback: Callable[[], None], interval_seconds: float, name: str) -> ScheduledJob:
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler()

        async def run_on_loop():
            callback()

        job_id = f"{name}-{uuid.uuid4().hex[:8]}"
        self._scheduler.add_job(
            run_on_loop,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=job_id,
            name=name,
            replace_existing=True,
        )

        if not self._scheduler.running:
            self._scheduler.start()
            logger.info(f"Ticker started (first job {name}, interval={interval_seconds}s)")

        return ScheduledJob(name, lambda: self._remove(job_id))

    def _remove(self, job_id: str) -> None:
        if self._scheduler is None:
            return
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            logger.debug(f"Job {job_id} already removed")

    def shutdown(self) -> None:
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Ticker stopped")
        self._scheduler = None


class ManualTicker:
    """Ticker whose jobs run only when fire() is called."""

    def __init__(self):
        self._jobs: List[ScheduledJob] = []
        self._callbacks = {}

    def schedule(self, callback: Callable[[], None], interval_seconds: float, name: str) -> ScheduledJob:
        job = ScheduledJob(name, lambda: self._callbacks.pop(id(job), None))
        self._jobs.append(job)
        self._callbacks[id(job)] = callback
        return job

    @property
    def active_jobs(self) -> List[ScheduledJob]:
        return [job for job in self._jobs if not job.cancelled]

    def fire(self) -> int:
        """Run every active job once. Returns the number of jobs run."""
        ran = 0
        for job in self.active_jobs:
            callback = self._callbacks.get(id(job))
            if callback is not None:
                callback()
                ran += 1
        return ran
