"""In-memory priority queue with retrying, fan-out delivery.

Jobs are dispatched one per tick, highest priority first. A job's message is
rendered once and sent to all of its recipients in parallel; the attempt
succeeds when at least half of the recipients (rounded down, minimum one)
accepted it. Failed attempts are retried after ``2**retry_count`` backoff
units until ``max_retries`` attempts have been made.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Union

from ..logging import EventLogger, get_logger
from ..logging.context import log_context
from ..scheduler import SchedulerService
from ..utils.timestamps import hours_before, utc_now
from .models import (
    DeliveryJob,
    JobPriority,
    JobStatus,
    NotificationTemplateError,
    QueueStats,
    RecipientResult,
    RenderedMessage,
    TemplateInput,
    TemplateKind,
)
from .templates import TemplateRenderer
from .transport import Transport

logger = get_logger(__name__, component="queue")

DISPATCH_JOB_ID = "queue-dispatch"


def is_majority_success(successes: int, total: int) -> bool:
    """``successes > 0 and successes >= total // 2``."""
    return successes > 0 and successes >= total // 2


def _dedupe_recipients(recipients: Iterable[Optional[str]]) -> List[str]:
    seen: List[str] = []
    for recipient in recipients or []:
        if recipient is None:
            continue
        cleaned = recipient.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


class DeliveryQueue:
    """Owns every DeliveryJob and is the only place their status changes."""

    def __init__(
        self,
        renderer: TemplateRenderer,
        transport: Transport,
        event_log: EventLogger,
        scheduler: Optional[SchedulerService] = None,
        clock: Callable[[], datetime] = utc_now,
        max_retries: int = 3,
        backoff_unit_seconds: float = 60,
        dispatch_interval_seconds: float = 5,
        max_concurrent_sends: int = 5,
        send_timeout_seconds: float = 30,
        default_priority: Union[JobPriority, str] = JobPriority.NORMAL,
    ):
        self.renderer = renderer
        self.transport = transport
        self.event_log = event_log
        self.scheduler = scheduler
        self.clock = clock
        self.max_retries = max(1, max_retries)
        self.backoff_unit = timedelta(seconds=backoff_unit_seconds)
        self.dispatch_interval_seconds = dispatch_interval_seconds
        self.max_concurrent_sends = max(1, max_concurrent_sends)
        self.send_timeout_seconds = send_timeout_seconds
        self.default_priority = JobPriority(default_priority)

        self._jobs: Dict[str, DeliveryJob] = {}
        self._sequence: Dict[str, int] = {}
        self._next_sequence = 0
        self._lock = threading.Lock()
        self._dispatch_lock = threading.Lock()
        self._running = False

    # ------------------------------------------------------------------
    # Job management
    # ------------------------------------------------------------------

    def enqueue(
        self,
        kind: Union[TemplateKind, str],
        template_input: TemplateInput,
        recipients: Iterable[Optional[str]],
        priority: Optional[Union[JobPriority, str]] = None,
        max_retries: Optional[int] = None,
        not_before: Optional[datetime] = None,
    ) -> Optional[str]:
        """Add a job.

        Args:
            kind: Template kind to render
            template_input: Render data
            recipients: Addresses; blanks and repeats are dropped
            priority: Defaults to the queue's default priority
            max_retries: Total attempts allowed (at least 1)
            not_before: Earliest dispatch time

        Returns:
            The new job id, or None when no recipient remains or the kind
            or priority is unknown
        """
        try:
            kind = TemplateKind(kind)
            priority = JobPriority(priority) if priority is not None else self.default_priority
        except ValueError as e:
            self.event_log.warn(
                "Job not queued: invalid job options",
                error_detail=str(e),
                metadata={"task_id": template_input.task_id},
            )
            return None

        cleaned = _dedupe_recipients(recipients)
        if not cleaned:
            self.event_log.warn(
                "Job not queued: no recipients",
                template_kind=kind.value,
                metadata={"task_id": template_input.task_id},
            )
            return None

        job = DeliveryJob(
            template_kind=kind,
            template_input=template_input,
            recipients=cleaned,
            priority=priority,
            max_retries=max(1, max_retries) if max_retries is not None else self.max_retries,
            created_at=self.clock(),
            not_before=not_before,
        )

        with self._lock:
            self._jobs[job.id] = job
            self._sequence[job.id] = self._next_sequence
            self._next_sequence += 1

        self.event_log.info(
            f"Job queued for {len(cleaned)} recipient(s)",
            job_id=job.id,
            template_kind=kind.value,
            metadata={"priority": job.priority.value, "task_id": template_input.task_id},
        )
        return job.id

    def status(self, job_id: str) -> Optional[DeliveryJob]:
        """Return a copy of the job, or None if unknown (or swept)."""
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def cancel(self, job_id: str) -> bool:
        """Cancel a job that has not been dispatched yet.

        Returns:
            True if the job was pending and is now cancelled
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status is not JobStatus.PENDING:
                return False
            job.status = JobStatus.CANCELLED

        self.event_log.info("Job cancelled", job_id=job_id, template_kind=job.template_kind.value)
        return True

    def jobs(self, status: Optional[Union[JobStatus, str]] = None) -> List[DeliveryJob]:
        """Copies of all jobs (optionally of one status) in dispatch order."""
        wanted = JobStatus(status) if status is not None else None
        with self._lock:
            return [
                job.model_copy(deep=True)
                for job in self._ordered()
                if wanted is None or job.status is wanted
            ]

    def stats(self) -> QueueStats:
        counts = {status: 0 for status in JobStatus}
        with self._lock:
            for job in self._jobs.values():
                counts[job.status] += 1
            total = len(self._jobs)

        return QueueStats(
            total_jobs=total,
            pending_jobs=counts[JobStatus.PENDING],
            processing_jobs=counts[JobStatus.PROCESSING],
            sent_jobs=counts[JobStatus.SENT],
            failed_jobs=counts[JobStatus.FAILED],
            cancelled_jobs=counts[JobStatus.CANCELLED],
        )

    def sweep(self, older_than_hours: float) -> int:
        """Remove finished jobs created at or before the cutoff.

        Pending and processing jobs are never removed.

        Returns:
            Number of jobs removed
        """
        cutoff = hours_before(self.clock(), older_than_hours)
        with self._lock:
            doomed = [
                job_id
                for job_id, job in self._jobs.items()
                if job.status.is_terminal and job.created_at <= cutoff
            ]
            for job_id in doomed:
                del self._jobs[job_id]
                del self._sequence[job_id]

        if doomed:
            logger.info(
                f"Swept {len(doomed)} finished job(s)",
                extra={
                    "event": "queue.swept",
                    "removed": len(doomed),
                    "older_than_hours": older_than_hours,
                },
            )
        return len(doomed)

    def test_transport(self) -> bool:
        """Probe the transport; any exception counts as unreachable."""
        try:
            return bool(self.transport.probe())
        except Exception as e:
            logger.error(
                f"Transport probe raised: {e}",
                extra={"event": "queue.transport_probe_failed"},
            )
            return False

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic dispatch tick. Calling it twice is harmless."""
        if self._running:
            return
        if self.scheduler is None:
            self.scheduler = SchedulerService()
        self.scheduler.add_interval_job(
            DISPATCH_JOB_ID,
            self._tick,
            self.dispatch_interval_seconds,
            name="Notification queue dispatch",
        )
        self._running = True
        logger.info("Queue dispatch started", extra={"event": "queue.started"})

    def stop(self) -> None:
        if not self._running:
            return
        if self.scheduler is not None:
            self.scheduler.remove_job(DISPATCH_JOB_ID)
        self._running = False
        logger.info("Queue dispatch stopped", extra={"event": "queue.stopped"})

    @property
    def is_running(self) -> bool:
        return self._running

    def _tick(self) -> None:
        try:
            self.process_next()
        except Exception as e:
            logger.error(
                f"Dispatch tick failed: {e}",
                extra={"event": "queue.tick_failed"},
                exc_info=True,
            )

    def drain(self) -> int:
        """Dispatch every currently due job synchronously.

        Jobs that are rescheduled for a retry are not attempted again.

        Returns:
            Number of dispatch attempts made
        """
        attempted = set()
        while True:
            job_id = self.process_next(exclude=attempted)
            if job_id is None:
                return len(attempted)
            attempted.add(job_id)

    def process_next(self, exclude: Iterable[str] = ()) -> Optional[str]:
        """Dispatch the highest-priority due job, if any.

        Returns immediately when another dispatch is in progress.

        Returns:
            Id of the dispatched job, or None if nothing was dispatched
        """
        if not self._dispatch_lock.acquire(blocking=False):
            logger.debug("Dispatch already in progress, skipping tick", extra={"event": "queue.tick_skipped"})
            return None

        try:
            job = self._claim_next(set(exclude))
            if job is None:
                return None
            with log_context(job_id=job.id, task_id=job.template_input.task_id):
                try:
                    self._dispatch(job)
                except Exception as e:
                    logger.exception(
                        "Unexpected error while dispatching job",
                        extra={"event": "queue.dispatch.crashed", "error_type": type(e).__name__},
                    )
                    error = f"dispatch error: {e}" if str(e) else f"dispatch error: {type(e).__name__}"
                    self._record_failure(job, 0, [RecipientResult(r, False, error) for r in job.recipients])
            return job.id
        finally:
            self._dispatch_lock.release()

    def _ordered(self) -> List[DeliveryJob]:
        return sorted(
            self._jobs.values(),
            key=lambda job: (-job.priority.rank, job.created_at, self._sequence[job.id]),
        )

    def _claim_next(self, exclude) -> Optional[DeliveryJob]:
        now = self.clock()
        with self._lock:
            for job in self._ordered():
                if job.id in exclude or not job.is_due(now):
                    continue
                job.status = JobStatus.PROCESSING
                job.last_attempt_at = now
                return job.model_copy(deep=True)
        return None

    def _dispatch(self, job: DeliveryJob) -> None:
        attempt = job.retry_count + 1
        logger.info(
            f"Dispatching job (attempt {attempt}/{job.max_retries})",
            extra={
                "event": "queue.dispatch.started",
                "template_kind": job.template_kind.value,
                "recipient_count": len(job.recipients),
            },
        )

        try:
            message = self.renderer.render(job.template_kind, job.template_input)
        except NotificationTemplateError as e:
            results = [RecipientResult(r, False, f"render failed: {e}") for r in job.recipients]
        else:
            results = self._send_all(job.recipients, message)

        successes = sum(1 for result in results if result.success)
        failures = [result for result in results if not result.success]

        if is_majority_success(successes, len(results)):
            self._record_success(job, successes, failures)
        else:
            self._record_failure(job, successes, failures)

    def _send_one(self, recipient: str, message: RenderedMessage) -> RecipientResult:
        try:
            self.transport.send(recipient, message.subject, message.html, message.text)
        except Exception as e:
            return RecipientResult(recipient, False, str(e) or type(e).__name__)
        return RecipientResult(recipient, True)

    def _send_all(self, recipients: List[str], message: RenderedMessage) -> List[RecipientResult]:
        executor = ThreadPoolExecutor(
            max_workers=min(self.max_concurrent_sends, len(recipients)),
            thread_name_prefix="notify-send",
        )
        try:
            futures = {
                executor.submit(self._send_one, recipient, message): recipient
                for recipient in recipients
            }
            done, _ = wait(futures, timeout=self.send_timeout_seconds)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        results = []
        for future, recipient in futures.items():
            if future in done:
                results.append(future.result())
            else:
                results.append(
                    RecipientResult(recipient, False, f"timed out after {self.send_timeout_seconds}s")
                )
        return results

    @staticmethod
    def _describe(failures: List[RecipientResult]) -> str:
        return "; ".join(f"{result.recipient}: {result.error}" for result in failures)

    def _record_success(self, job: DeliveryJob, successes: int, failures: List[RecipientResult]) -> None:
        summary = self._describe(failures) if failures else None
        with self._lock:
            stored = self._jobs.get(job.id)
            if stored is not None:
                stored.status = JobStatus.SENT
                stored.error_message = summary

        kind = job.template_kind.value
        if failures:
            self.event_log.warn(
                f"Job sent to {successes}/{successes + len(failures)} recipients; failed: {summary}",
                job_id=job.id,
                template_kind=kind,
                error_detail=summary,
            )
        else:
            self.event_log.info(
                f"Job sent to all {successes} recipient(s)",
                job_id=job.id,
                template_kind=kind,
            )

    def _record_failure(self, job: DeliveryJob, successes: int, failures: List[RecipientResult]) -> None:
        summary = self._describe(failures)
        now = self.clock()
        with self._lock:
            stored = self._jobs.get(job.id)
            if stored is None:
                return
            stored.retry_count += 1
            stored.error_message = summary
            if stored.retry_count >= stored.max_retries:
                stored.status = JobStatus.FAILED
                retry_at = None
            else:
                stored.status = JobStatus.PENDING
                retry_at = now + self.backoff_unit * (2 ** stored.retry_count)
                stored.not_before = retry_at
            retry_count, max_retries = stored.retry_count, stored.max_retries

        kind = job.template_kind.value
        if retry_at is None:
            self.event_log.error(
                f"Job failed after {retry_count} attempt(s): {summary}",
                job_id=job.id,
                template_kind=kind,
                error_detail=summary,
                metadata={"successes": successes},
            )
        else:
            self.event_log.warn(
                f"Attempt {retry_count}/{max_retries} failed, retrying at {retry_at.isoformat()}: {summary}",
                job_id=job.id,
                template_kind=kind,
                error_detail=summary,
                metadata={"successes": successes, "not_before": retry_at.isoformat()},
            )
