"""Turns task status changes into queued notifications."""

import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from ..config.models import DEFAULT_APP_URL, DEFAULT_NOTIFY_STATUSES
from ..logging import EventLogger, get_logger
from ..logging.context import log_context
from ..notifications.models import JobPriority, TemplateInput, TemplateKind
from ..notifications.queue import DeliveryQueue
from ..notifications.smtp_client import normalize_recipients
from ..notifications.templates import validate_template_input
from ..utils.timestamps import utc_now
from .models import ChangeEvent, Profile, TaskRecord
from .sources import ChangeFeed, EntityStore

logger = get_logger(__name__, component="listener")

_KIND_BY_STATUS = {
    "ASSIGNED": TemplateKind.TASK_ASSIGNED,
    "APPROVED": TemplateKind.TASK_APPROVED,
    "REJECTED": TemplateKind.TASK_REJECTED,
    "WAITING_CONFIRM": TemplateKind.TASK_WAITING_CONFIRM,
}

_PRIORITY_BY_STATUS = {
    "APPROVED": JobPriority.HIGH,
    "REJECTED": JobPriority.HIGH,
    "WAITING_CONFIRM": JobPriority.NORMAL,
    "ASSIGNED": JobPriority.NORMAL,
}


def template_kind_for(new_status: Optional[str]) -> TemplateKind:
    return _KIND_BY_STATUS.get(new_status or "", TemplateKind.TASK_STATUS_CHANGE)


def priority_for(new_status: Optional[str]) -> JobPriority:
    return _PRIORITY_BY_STATUS.get(new_status or "", JobPriority.LOW)


class ChangeEventListener:
    """Subscribes to a change feed and enqueues one notification per real transition.

    For each event: ignore no-op changes, load the task and its two parties,
    require both states to be notifiable, drop repeats inside the dedup
    window, build and validate the render data, then enqueue it for the
    parties' addresses. Every abandoned event is logged with the reason.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        store: EntityStore,
        queue: DeliveryQueue,
        event_log: EventLogger,
        notify_statuses: Iterable[str] = DEFAULT_NOTIFY_STATUSES,
        dedup_window_seconds: float = 300,
        dedup_retention_seconds: float = 3600,
        app_url: str = DEFAULT_APP_URL,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.feed = feed
        self.store = store
        self.queue = queue
        self.event_log = event_log
        self.notify_statuses = frozenset(notify_statuses)
        self.dedup_window = timedelta(seconds=dedup_window_seconds)
        self.dedup_retention = timedelta(seconds=max(dedup_retention_seconds, dedup_window_seconds))
        self.app_url = str(app_url).rstrip("/")
        self.clock = clock

        self._recent: Dict[str, datetime] = {}
        self._recent_lock = threading.Lock()
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._active:
            self.event_log.warn("Change listener is already running")
            return
        self.feed.subscribe(self.handle_change)
        self._active = True
        self.event_log.info("Change listener started")

    def stop(self) -> None:
        if not self._active:
            return
        self.feed.unsubscribe()
        self._active = False
        self.event_log.info("Change listener stopped")

    def handle_change(self, event: ChangeEvent) -> None:
        """Feed callback. Never raises."""
        try:
            if event.old_value == event.new_value:
                return

            self.event_log.info(
                f"Status change detected: {event.old_value} -> {event.new_value}",
                template_kind=TemplateKind.TASK_STATUS_CHANGE.value,
                metadata={"task_id": event.entity_id},
            )
            self._process(
                event.entity_id,
                event.old_value,
                event.new_value,
                event.actor or "System",
                event.occurred_at or self.clock(),
            )
        except Exception as e:
            logger.exception(
                "Unexpected error while handling change event",
                extra={"event": "listener.handle_failed", "task_id": event.entity_id},
            )
            self.event_log.error(
                f"Failed to handle status change for task {event.entity_id}",
                error_detail=str(e),
                metadata={"task_id": event.entity_id},
            )

    def run_manual_transition(
        self,
        task_id: str,
        old_status: str,
        new_status: str,
        actor: str = "Manual",
    ) -> Optional[str]:
        """Process a transition as if it came from the feed.

        Returns:
            The queued job id, or None if the transition was abandoned
        """
        self.event_log.info(
            f"Manual status change: {old_status} -> {new_status}",
            metadata={"task_id": task_id, "actor": actor},
        )
        try:
            return self._process(task_id, old_status, new_status, actor, self.clock())
        except Exception as e:
            logger.exception(
                "Manual transition failed",
                extra={"event": "listener.manual_failed", "task_id": task_id},
            )
            self.event_log.error(
                f"Manual status change failed for task {task_id}",
                error_detail=str(e),
                metadata={"task_id": task_id},
            )
            return None

    def _process(
        self,
        task_id: str,
        old_status: Optional[str],
        new_status: Optional[str],
        actor: str,
        changed_at: datetime,
    ) -> Optional[str]:
        with log_context(task_id=task_id):
            task = self._fetch_task(task_id)
            if task is None:
                return None

            profiles = self._fetch_profiles(task)
            if not profiles:
                self.event_log.warn(
                    f"No related users found for task {task_id}",
                    metadata={"task_id": task_id},
                )
                return None

            if old_status not in self.notify_statuses or new_status not in self.notify_statuses:
                self.event_log.debug(
                    f"Transition {old_status} -> {new_status} does not warrant a notification",
                    metadata={"task_id": task_id},
                )
                return None

            key = f"{task_id}:{old_status}:{new_status}"
            claimed_at = self._claim_transition(key)
            if claimed_at is None:
                self.event_log.warn(
                    f"Duplicate notification suppressed for task {task_id}",
                    metadata={"task_id": task_id, "old_status": old_status, "new_status": new_status},
                )
                return None

            job_id = None
            try:
                job_id = self._queue_notification(task, profiles, old_status, new_status, actor, changed_at)
            finally:
                # an abandoned transition must not block a corrected repeat
                if job_id is None:
                    self._release_transition(key, claimed_at)
            return job_id

    def _queue_notification(
        self,
        task: TaskRecord,
        profiles: List[Profile],
        old_status: Optional[str],
        new_status: Optional[str],
        actor: str,
        changed_at: datetime,
    ) -> Optional[str]:
        task_id = task.id
        template_input = self._build_input(task, profiles, old_status, new_status, actor, changed_at)
        problems = validate_template_input(template_input)
        if problems:
            self.event_log.warn(
                f"Invalid notification data for task {task_id}: {', '.join(problems)}",
                metadata={"task_id": task_id, "problems": problems},
            )
            return None

        kind = template_kind_for(new_status)
        priority = priority_for(new_status)
        recipients = normalize_recipients(profile.email for profile in profiles)
        job_id = self.queue.enqueue(kind, template_input, recipients, priority=priority)
        if job_id is None:
            return None

        self.event_log.info(
            f"Notification queued for {old_status} -> {new_status}",
            job_id=job_id,
            template_kind=kind.value,
            metadata={
                "task_id": task_id,
                "recipients": len(recipients),
                "priority": priority.value,
            },
        )
        return job_id

    def _fetch_task(self, task_id: str) -> Optional[TaskRecord]:
        try:
            task = self.store.get_entity(task_id)
        except Exception as e:
            self.event_log.warn(
                f"Could not load task {task_id}",
                error_detail=str(e),
                metadata={"task_id": task_id},
            )
            return None

        if task is None:
            self.event_log.warn(f"Task not found: {task_id}", metadata={"task_id": task_id})
        return task

    def _fetch_profiles(self, task: TaskRecord) -> List[Profile]:
        ids = [user_id for user_id in (task.assigner_id, task.assignee_id) if user_id]
        if not ids:
            return []
        try:
            return list(self.store.get_profiles(ids))
        except Exception as e:
            self.event_log.warn(
                f"Could not load users for task {task.id}",
                error_detail=str(e),
                metadata={"task_id": task.id, "user_ids": ids},
            )
            return []

    def _claim_transition(self, key: str) -> Optional[datetime]:
        """Record the transition as seen.

        Returns:
            The claim time, or None if the same transition was seen inside
            the dedup window
        """
        now = self.clock()
        with self._recent_lock:
            cutoff = now - self.dedup_retention
            for stale in [k for k, seen in self._recent.items() if seen < cutoff]:
                del self._recent[stale]

            last_seen = self._recent.get(key)
            if last_seen is not None and now - last_seen < self.dedup_window:
                return None

            self._recent[key] = now
            return now

    def _release_transition(self, key: str, claimed_at: datetime) -> None:
        with self._recent_lock:
            if self._recent.get(key) == claimed_at:
                del self._recent[key]

    def _build_input(
        self,
        task: TaskRecord,
        profiles: List[Profile],
        old_status: Optional[str],
        new_status: Optional[str],
        actor: str,
        changed_at: datetime,
    ) -> TemplateInput:
        by_id = {profile.id: profile for profile in profiles}
        assigner = by_id.get(task.assigner_id) if task.assigner_id else None
        assignee = by_id.get(task.assignee_id) if task.assignee_id else None

        return TemplateInput(
            task_id=task.id,
            task_title=task.title,
            task_description=task.description,
            project_title=task.project_title or "Project",
            old_status=old_status,
            new_status=new_status,
            changed_by=actor,
            changed_at=changed_at,
            task_url=f"{self.app_url}/tasks/{task.id}",
            assigner_name=assigner.full_name if assigner else None,
            assignee_name=assignee.full_name if assignee else None,
        )
