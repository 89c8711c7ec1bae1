"""Change feed that polls the tasks table and diffs status snapshots."""

import threading
from typing import Dict, Optional

from ..events.models import ChangeEvent
from ..events.sources import ChangeCallback, ChangeFeed
from ..logging import get_logger
from ..scheduler import SchedulerService
from ..utils.timestamps import utc_now
from .exceptions import PersistenceError
from .repositories import SQLEntityStore

logger = get_logger(__name__, component="feed")

POLL_JOB_ID = "change-feed-poll"


class PollingChangeFeed(ChangeFeed):
    """Emits a ChangeEvent for every task whose status differs from the last poll.

    The first snapshot is taken on subscribe and only establishes a baseline.
    Tasks that appear or disappear between polls produce no events. The actor
    of a polled change is unknown and left unset.
    """

    def __init__(
        self,
        store: SQLEntityStore,
        scheduler: Optional[SchedulerService] = None,
        interval_seconds: float = 10,
    ):
        self.store = store
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self._callback: Optional[ChangeCallback] = None
        self._snapshot: Dict[str, Optional[str]] = {}
        self._lock = threading.Lock()

    def subscribe(self, callback: ChangeCallback) -> None:
        with self._lock:
            self._callback = callback
            self._snapshot = self.store.task_status_snapshot()

        if self.scheduler is None:
            self.scheduler = SchedulerService()
        self.scheduler.add_interval_job(
            POLL_JOB_ID, self.poll, self.interval_seconds, name="Task status polling"
        )
        logger.info(
            f"Polling {len(self._snapshot)} task(s) for status changes",
            extra={"event": "feed.subscribed", "interval_seconds": self.interval_seconds},
        )

    def unsubscribe(self) -> None:
        if self.scheduler is not None:
            self.scheduler.remove_job(POLL_JOB_ID)
        with self._lock:
            self._callback = None
        logger.info("Stopped polling for status changes", extra={"event": "feed.unsubscribed"})

    def poll(self) -> int:
        """Take a snapshot, emit events for changed tasks.

        A failed read is logged and the previous snapshot kept.

        Returns:
            Number of events emitted
        """
        with self._lock:
            callback = self._callback
            if callback is None:
                return 0
            try:
                current = self.store.task_status_snapshot()
            except PersistenceError as e:
                logger.error(
                    f"Polling tasks failed: {e}",
                    extra={"event": "feed.poll_failed"},
                )
                return 0
            previous, self._snapshot = self._snapshot, current

        now = utc_now()
        changes = [
            ChangeEvent(entity_id=task_id, old_value=previous[task_id], new_value=status, occurred_at=now)
            for task_id, status in current.items()
            if task_id in previous and previous[task_id] != status
        ]
        for change in changes:
            callback(change)

        if changes:
            logger.debug(
                f"Emitted {len(changes)} status change(s)",
                extra={"event": "feed.polled", "changes": len(changes)},
            )
        return len(changes)
