"""
One-shot, timestamp-triggered message jobs on top of APScheduler.

MessageScheduler keeps its own registry (job id -> ScheduledJob) next to the
APScheduler job store so it can:
- replace a job when the same id is scheduled again (never stack),
- leave a delivery that is already running alone when its id comes back,
- fire jobs whose send time already passed immediately,
- evict entries the timer never delivered (stale sweep every 60s),
- refuse new work and cancel everything on shutdown.

Usage:
    from snoozeplus.core.job_scheduler import MessageScheduler

    message_scheduler = MessageScheduler(scheduler)
    message_scheduler.start()
    message_scheduler.schedule_message(message.id, message.send_date, deliver)
    ...
    await message_scheduler.shutdown()
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import structlog
from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from snoozeplus.core.errors import SchedulerShuttingDownError
from snoozeplus.core.typing import utc_now

logger = structlog.get_logger(__name__)

JobCallback = Callable[[], Awaitable[Any]]

CLEANUP_INTERVAL_SECONDS = 60
# Registered jobs still present after this long were lost by the timer
STALE_JOB_AGE = timedelta(hours=24)
CLEANUP_JOB_ID = "message_scheduler_cleanup"
JOB_ID_PREFIX = "message:"

__all__ = [
    "MessageScheduler",
    "ScheduledJob",
    "CLEANUP_INTERVAL_SECONDS",
    "STALE_JOB_AGE",
]


@dataclass
class ScheduledJob:
    job_id: str
    fire_at: datetime  # requested send time
    run_at: datetime  # fire_at clamped to registration time
    callback: JobCallback
    registered_at: datetime
    task: Optional["asyncio.Task[Any]"] = None  # set while the callback runs


class MessageScheduler:
    def __init__(
        self,
        scheduler: Optional[AsyncIOScheduler] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self._clock = clock
        self._jobs: Dict[str, ScheduledJob] = {}
        self._shutting_down = False
        # job id -> entry whose callback is running
        self._in_flight: Dict[str, ScheduledJob] = {}
        self._tasks: Set["asyncio.Task[Any]"] = set()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def is_running(self) -> bool:
        return self._scheduler.running and not self._shutting_down

    def start(self) -> None:
        """Register the cleanup sweep and start APScheduler if needed."""
        self._scheduler.add_job(
            self._run_cleanup,
            IntervalTrigger(seconds=CLEANUP_INTERVAL_SECONDS),
            id=CLEANUP_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("message scheduler started", cleanup_interval_seconds=CLEANUP_INTERVAL_SECONDS)

    def schedule_message(self, job_id: str, fire_at: datetime, callback: JobCallback) -> ScheduledJob:
        """
        Run `callback` once at `fire_at`.

        An existing job with the same id is cancelled first. A `fire_at` at or
        before now fires immediately. While a job's callback is running, only
        that callback may schedule its id again; other callers get the running
        entry back and nothing is registered.

        Raises:
            SchedulerShuttingDownError: shutdown() has been called
        """
        if self._shutting_down:
            raise SchedulerShuttingDownError(job_id)

        running = self._in_flight.get(job_id)
        if running is not None and running.task is not _current_task():
            logger.warning("delivery in progress, not rescheduling", job_id=job_id)
            return running

        if job_id in self._jobs:
            logger.info("replacing scheduled job", job_id=job_id)
            self.cancel_job(job_id)

        now = self._clock()
        run_at = now if fire_at <= now else fire_at
        entry = ScheduledJob(
            job_id=job_id,
            fire_at=fire_at,
            run_at=run_at,
            callback=callback,
            registered_at=now,
        )

        self._scheduler.add_job(
            self._fire,
            DateTrigger(run_date=run_at),
            args=[job_id, entry],
            id=self._job_key(job_id),
            # One-shot deliveries must never be dropped as misfires
            misfire_grace_time=None,
            # A running callback may reschedule its own id
            max_instances=2,
            replace_existing=True,
        )
        self._jobs[job_id] = entry

        logger.debug(
            "job scheduled",
            job_id=job_id,
            fire_at=fire_at.isoformat(),
            run_at=run_at.isoformat(),
            immediate=run_at == now,
        )
        return entry

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a registered job. Returns False if no job had that id."""
        entry = self._jobs.pop(job_id, None)
        if entry is None:
            return False

        self._remove_timer(job_id)
        logger.debug("job cancelled", job_id=job_id)
        return True

    def get_job_info(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Next invocation details for a live job, or None."""
        entry = self._jobs.get(job_id)
        if entry is None:
            return None

        return {
            "job_id": job_id,
            "fire_at": entry.fire_at,
            "registered_at": entry.registered_at,
            "next_invocation": self._next_invocation(entry),
        }

    def get_active_job_count(self) -> int:
        return len(self._jobs)

    def cleanup_stale_jobs(self) -> int:
        """
        Evict registry entries the timer will never deliver.

        An entry is evicted when its APScheduler job is gone although its run
        time passed more than one sweep interval ago, or when it was
        registered more than STALE_JOB_AGE ago.

        Returns:
            Number of evicted jobs
        """
        now = self._clock()
        evicted = 0

        for job_id, entry in list(self._jobs.items()):
            next_invocation = self._next_invocation(entry)
            lost = next_invocation is None and now - entry.run_at >= timedelta(seconds=CLEANUP_INTERVAL_SECONDS)
            stale = now - entry.registered_at > STALE_JOB_AGE

            if lost or stale:
                logger.warning(
                    "evicting scheduled job",
                    job_id=job_id,
                    reason="no_next_invocation" if lost else "stale",
                    registered_at=entry.registered_at.isoformat(),
                    fire_at=entry.fire_at.isoformat(),
                )
                self.cancel_job(job_id)
                evicted += 1

        if evicted:
            logger.warning("stale job sweep complete", evicted=evicted, active_jobs=len(self._jobs))
        return evicted

    async def shutdown(self, wait: bool = True) -> None:
        """
        Refuse new jobs, cancel every registered job, and stop APScheduler.

        With `wait`, deliveries that already started are awaited first;
        their chains are never interrupted.
        """
        self._shutting_down = True
        cancelled = 0
        for job_id in list(self._jobs):
            if self.cancel_job(job_id):
                cancelled += 1

        if wait and self._tasks:
            logger.info("waiting for in-flight deliveries", in_flight=len(self._tasks))
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            # AsyncIOScheduler.shutdown is dispatched onto the event loop
            await asyncio.sleep(0)

        logger.info("message scheduler shut down", cancelled_jobs=cancelled)

    async def _fire(self, job_id: str, entry: ScheduledJob) -> None:
        # Replaced or cancelled entries must not run
        if self._jobs.get(job_id) is not entry:
            return
        del self._jobs[job_id]

        logger.debug(
            "job firing",
            job_id=job_id,
            scheduled=entry.run_at.isoformat(),
            actual=self._clock().isoformat(),
        )
        entry.task = asyncio.current_task()
        self._in_flight[job_id] = entry
        if entry.task is not None:
            self._tasks.add(entry.task)
        try:
            await entry.callback()
        except Exception:
            logger.exception("scheduled job failed", job_id=job_id)
        finally:
            if self._in_flight.get(job_id) is entry:
                del self._in_flight[job_id]
            self._tasks.discard(entry.task)  # type: ignore[arg-type]

    async def _run_cleanup(self) -> None:
        self.cleanup_stale_jobs()

    def _next_invocation(self, entry: ScheduledJob) -> Optional[datetime]:
        job: Optional[Job] = self._scheduler.get_job(self._job_key(entry.job_id))
        if job is None:
            return None
        # Jobs added before the scheduler starts have no next_run_time yet
        return getattr(job, "next_run_time", entry.run_at)

    def _remove_timer(self, job_id: str) -> None:
        try:
            self._scheduler.remove_job(self._job_key(job_id))
        except JobLookupError:
            # Already fired or never reached the job store
            pass

    @staticmethod
    def _job_key(job_id: str) -> str:
        return f"{JOB_ID_PREFIX}{job_id}"


def _current_task() -> Optional["asyncio.Task[Any]"]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        # No running event loop
        return None
