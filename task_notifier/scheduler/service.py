"""Shared APScheduler wrapper for the pipeline's periodic work."""

import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..logging import get_logger

logger = get_logger(__name__, component="scheduler")


class SchedulerService:
    """
    One BackgroundScheduler hosting every interval job of the process.

    The queue dispatch tick, the health check and the polling change feed
    each register a job here. Jobs never overlap with themselves
    (``max_instances=1``) and late runs are collapsed (``coalesce``), so a
    slow tick is simply skipped rather than queued up.
    """

    def __init__(self, shutdown_event: Optional[threading.Event] = None):
        """
        Args:
            shutdown_event: Optional event set once the scheduler has stopped
        """
        self.shutdown_event = shutdown_event
        self._lock = threading.Lock()
        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
            },
            timezone=timezone.utc,
        )

    def add_interval_job(
        self,
        job_id: str,
        func: Callable[[], None],
        interval_seconds: float,
        name: Optional[str] = None,
        run_immediately: bool = False,
    ) -> None:
        """
        Register (or replace) an interval job and make sure the scheduler runs.

        Args:
            job_id: Unique job identifier
            func: Callable invoked on every tick
            interval_seconds: Seconds between ticks
            name: Human-readable job name
            run_immediately: Fire the first tick now instead of after one interval
        """
        trigger = IntervalTrigger(seconds=interval_seconds, timezone=timezone.utc)
        job_kwargs = {}
        if run_immediately:
            job_kwargs["next_run_time"] = datetime.now(timezone.utc)

        with self._lock:
            self.scheduler.add_job(
                func=func,
                trigger=trigger,
                id=job_id,
                name=name or job_id,
                replace_existing=True,
                misfire_grace_time=max(1, int(interval_seconds)),
                **job_kwargs,
            )
            if not self.scheduler.running:
                self.scheduler.start()

        logger.info(
            f"Scheduled '{job_id}' every {interval_seconds} seconds",
            extra={
                "event": "scheduler.job_added",
                "job_id": job_id,
                "interval_seconds": interval_seconds,
            },
        )

    def remove_job(self, job_id: str) -> bool:
        """
        Unregister a job.

        Returns:
            True if the job existed
        """
        with self._lock:
            try:
                self.scheduler.remove_job(job_id)
            except JobLookupError:
                return False

        logger.info(
            f"Unscheduled '{job_id}'",
            extra={"event": "scheduler.job_removed", "job_id": job_id},
        )
        return True

    def has_job(self, job_id: str) -> bool:
        return self.scheduler.get_job(job_id) is not None

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop the scheduler and every job it hosts.

        Args:
            wait: If True, wait for running jobs to complete before returning
        """
        with self._lock:
            if self.scheduler.running:
                self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info(
            "Scheduler shutdown complete",
            extra={"event": "scheduler.stopped", "wait_for_jobs": wait},
        )

    def is_running(self) -> bool:
        return self.scheduler.running

    def trigger_now(self, job_id: str) -> bool:
        """
        Run a registered job's callable synchronously in the current thread.

        Returns:
            False if no such job is registered
        """
        job = self.scheduler.get_job(job_id)
        if job is None:
            return False

        logger.info(
            f"Triggering '{job_id}' immediately",
            extra={"event": "scheduler.trigger_now", "job_id": job_id},
        )
        job.func()
        return True

    def get_next_run_time(self, job_id: str) -> Optional[datetime]:
        """
        Get the next scheduled run time of a job.

        Returns:
            Next run time, or None if the job is unknown or paused
        """
        job = self.scheduler.get_job(job_id)
        return getattr(job, "next_run_time", None) if job else None
