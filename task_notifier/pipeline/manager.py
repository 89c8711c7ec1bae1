"""Lifecycle and health supervision of the notification pipeline."""

import threading
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Union

from ..events.listener import ChangeEventListener
from ..logging import EventLogger, get_logger
from ..notifications.models import DeliveryJob, JobPriority, TemplateInput, TemplateKind
from ..notifications.queue import DeliveryQueue
from ..scheduler import SchedulerService
from ..utils.timestamps import utc_now
from .models import HealthIssue, HealthTier, ManagerState, PipelineStatus

logger = get_logger(__name__, component="manager")

HEALTH_JOB_ID = "pipeline-health-check"


class PipelineManager:
    """Starts, stops and watches the listener and the delivery queue.

    Problems found by ``initialize`` or ``run_health_check`` accumulate as
    issues until ``clear_errors``. The reported health tier is ``error`` when
    any error issue is recorded, ``warning`` when any warning issue is
    recorded or the live queue numbers cross the warning thresholds, and
    ``healthy`` otherwise.
    """

    def __init__(
        self,
        queue: DeliveryQueue,
        listener: ChangeEventListener,
        event_log: EventLogger,
        scheduler: Optional[SchedulerService] = None,
        check_interval_seconds: float = 300,
        failed_ratio_error: float = 0.2,
        pending_error: int = 200,
        failed_ratio_warning: float = 0.1,
        pending_warning: int = 100,
        sweep_after_hours: float = 1,
        log_retention_hours: float = 24,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.queue = queue
        self.listener = listener
        self.event_log = event_log
        self.scheduler = scheduler
        self.check_interval_seconds = check_interval_seconds
        self.failed_ratio_error = failed_ratio_error
        self.pending_error = pending_error
        self.failed_ratio_warning = failed_ratio_warning
        self.pending_warning = pending_warning
        self.sweep_after_hours = sweep_after_hours
        self.log_retention_hours = log_retention_hours
        self.clock = clock

        self._state = ManagerState.UNINITIALIZED
        self._issues: List[HealthIssue] = []
        self._last_health_check: Optional[datetime] = None
        self._lock = threading.RLock()

    @property
    def state(self) -> ManagerState:
        return self._state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> bool:
        """Probe the transport and start every component.

        Returns:
            True when running (including when already running), False if the
            transport probe failed. Never raises.
        """
        with self._lock:
            if self._state is ManagerState.RUNNING:
                self.event_log.warn("Pipeline is already initialized")
                return True
            self._state = ManagerState.INITIALIZING

        self.event_log.info("Initializing notification pipeline")

        if not self.queue.test_transport():
            self._record(HealthTier.ERROR, "Initialization failed: mail transport unreachable")
            with self._lock:
                self._state = ManagerState.UNINITIALIZED
            return False

        with self._lock:
            self._issues.clear()

        try:
            self.listener.start()
        except Exception as e:
            self._record(HealthTier.ERROR, f"Change listener failed to start: {e}")

        self.queue.start()
        self._start_health_timer()
        self.queue.sweep(self.sweep_after_hours)

        with self._lock:
            self._state = ManagerState.RUNNING
        self.event_log.info("Notification pipeline initialized")
        return True

    def shutdown(self) -> None:
        """Stop timers, listener and dispatch, then sweep all finished jobs. Never raises."""
        with self._lock:
            if self._state is not ManagerState.RUNNING:
                return
            self._state = ManagerState.SHUTTING_DOWN

        self.event_log.info("Shutting down notification pipeline")

        for step, action in (
            ("health timer", self._stop_health_timer),
            ("change listener", self.listener.stop),
            ("queue dispatch", self.queue.stop),
        ):
            try:
                action()
            except Exception as e:
                logger.error(
                    f"Error stopping {step}: {e}",
                    extra={"event": "manager.shutdown_step_failed", "step": step},
                    exc_info=True,
                )

        try:
            removed = self.queue.sweep(0)
            if removed:
                self.event_log.info(f"Removed {removed} finished job(s) at shutdown")
        except Exception as e:
            logger.error(
                f"Final sweep failed: {e}",
                extra={"event": "manager.shutdown_step_failed", "step": "sweep"},
            )

        with self._lock:
            self._state = ManagerState.UNINITIALIZED
        self.event_log.info("Notification pipeline stopped")

    def _start_health_timer(self) -> None:
        if self.scheduler is None:
            self.scheduler = SchedulerService()
        self.scheduler.add_interval_job(
            HEALTH_JOB_ID,
            self._health_tick,
            self.check_interval_seconds,
            name="Pipeline health check",
        )

    def _stop_health_timer(self) -> None:
        if self.scheduler is not None:
            self.scheduler.remove_job(HEALTH_JOB_ID)

    def _health_tick(self) -> None:
        try:
            self.run_health_check()
        except Exception as e:
            self._record(HealthTier.ERROR, f"Health check failed: {e}")

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def _record(self, severity: HealthTier, message: str) -> None:
        issue = HealthIssue(severity=severity, message=message, recorded_at=self.clock())
        with self._lock:
            self._issues.append(issue)
        if severity is HealthTier.ERROR:
            self.event_log.error(message)
        else:
            self.event_log.warn(message)

    def run_health_check(self) -> PipelineStatus:
        """Probe the transport, check queue thresholds, then do housekeeping.

        Returns:
            The pipeline status after the check
        """
        with self._lock:
            self._last_health_check = self.clock()
        self.event_log.debug("Running health check")

        if not self.queue.test_transport():
            self._record(HealthTier.ERROR, "Health check: mail transport unreachable")

        stats = self.queue.stats()
        if stats.failed_jobs > stats.total_jobs * self.failed_ratio_error:
            self._record(
                HealthTier.WARNING,
                f"Health check: too many failed jobs ({stats.failed_jobs}/{stats.total_jobs})",
            )
        if stats.pending_jobs > self.pending_error:
            self._record(
                HealthTier.WARNING,
                f"Health check: too many pending jobs ({stats.pending_jobs})",
            )

        removed_jobs = self.queue.sweep(self.sweep_after_hours)
        removed_logs = self.event_log.clear(self.log_retention_hours)
        if removed_jobs or removed_logs:
            self.event_log.info(
                f"Health check housekeeping removed {removed_jobs} job(s) and {removed_logs} log entries"
            )

        self.event_log.debug("Health check complete", metadata=stats.as_dict())
        return self.status()

    def status(self) -> PipelineStatus:
        stats = self.queue.stats()
        with self._lock:
            issues = list(self._issues)
            state = self._state
            last_check = self._last_health_check

        if any(issue.severity is HealthTier.ERROR for issue in issues):
            health = HealthTier.ERROR
        elif (
            issues
            or stats.failed_jobs > stats.total_jobs * self.failed_ratio_warning
            or stats.pending_jobs > self.pending_warning
        ):
            health = HealthTier.WARNING
        else:
            health = HealthTier.HEALTHY

        return PipelineStatus(
            initialized=state is ManagerState.RUNNING,
            listener_active=self.listener.is_active,
            queue_stats=stats,
            last_health_check=last_check,
            health=health,
            errors=[issue.message for issue in issues],
            state=state,
        )

    def clear_errors(self) -> None:
        with self._lock:
            self._issues.clear()
        self.event_log.info("Recorded pipeline problems cleared")

    # ------------------------------------------------------------------
    # Facade
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
        return self.queue.enqueue(
            kind,
            template_input,
            recipients,
            priority=priority,
            max_retries=max_retries,
            not_before=not_before,
        )

    def job_status(self, job_id: str) -> Optional[DeliveryJob]:
        return self.queue.status(job_id)

    def pipeline_status(self) -> PipelineStatus:
        return self.status()

    def run_manual_transition(
        self, task_id: str, old_status: str, new_status: str, actor: str = "Manual"
    ) -> Optional[str]:
        return self.listener.run_manual_transition(task_id, old_status, new_status, actor=actor)
