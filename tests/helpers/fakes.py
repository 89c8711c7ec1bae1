"""In-memory fakes for the clock, transport, data store, feed and scheduler."""

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from task_notifier.events.models import ChangeEvent, Profile, TaskRecord
from task_notifier.events.sources import ChangeFeed, EntityStore
from task_notifier.notifications.models import TransportError
from task_notifier.notifications.transport import Transport


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeTransport(Transport):
    """Records sends; fails for chosen recipients or for everyone."""

    def __init__(
        self,
        probe_result: bool = True,
        fail_for: Iterable[str] = (),
        fail_all: bool = False,
        delay_for: Optional[Dict[str, float]] = None,
    ):
        self.probe_result = probe_result
        self.fail_for = set(fail_for)
        self.fail_all = fail_all
        self.delay_for = delay_for or {}
        self.probe_calls = 0
        self.attempts: List[str] = []
        self.sent: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def probe(self) -> bool:
        self.probe_calls += 1
        if isinstance(self.probe_result, Exception):
            raise self.probe_result
        return self.probe_result

    def send(self, recipient: str, subject: str, html: str, text: str) -> None:
        with self._lock:
            self.attempts.append(recipient)
        if recipient in self.delay_for:
            time.sleep(self.delay_for[recipient])
        if self.fail_all or recipient in self.fail_for:
            raise TransportError("550 mailbox unavailable", recipient=recipient)
        with self._lock:
            self.sent.append((recipient, subject))


class StaticEntityStore(EntityStore):
    def __init__(
        self,
        tasks: Iterable[TaskRecord] = (),
        profiles: Iterable[Profile] = (),
        error: Optional[Exception] = None,
    ):
        self.tasks = {task.id: task for task in tasks}
        self.profiles = {profile.id: profile for profile in profiles}
        self.error = error

    def get_entity(self, entity_id: str) -> Optional[TaskRecord]:
        if self.error:
            raise self.error
        return self.tasks.get(entity_id)

    def get_profiles(self, ids: Sequence[str]) -> List[Profile]:
        if self.error:
            raise self.error
        return [self.profiles[i] for i in ids if i in self.profiles]


class ManualChangeFeed(ChangeFeed):
    """Feed whose events are pushed by the test."""

    def __init__(self):
        self.callback: Optional[Callable[[ChangeEvent], None]] = None
        self.subscribe_calls = 0
        self.unsubscribe_calls = 0

    def subscribe(self, callback) -> None:
        self.subscribe_calls += 1
        self.callback = callback

    def unsubscribe(self) -> None:
        self.unsubscribe_calls += 1
        self.callback = None

    def emit(self, task_id: str, old: Optional[str], new: Optional[str], actor: Optional[str] = None) -> None:
        assert self.callback is not None, "feed has no subscriber"
        self.callback(ChangeEvent(entity_id=task_id, old_value=old, new_value=new, actor=actor))


class FakeScheduler:
    """Stands in for SchedulerService without starting any threads."""

    def __init__(self):
        self.jobs: Dict[str, Tuple[Callable[[], None], float]] = {}
        self.running = False

    def add_interval_job(self, job_id, func, interval_seconds, name=None, run_immediately=False):
        self.jobs[job_id] = (func, interval_seconds)
        self.running = True

    def remove_job(self, job_id) -> bool:
        return self.jobs.pop(job_id, None) is not None

    def has_job(self, job_id) -> bool:
        return job_id in self.jobs

    def trigger_now(self, job_id) -> bool:
        if job_id not in self.jobs:
            return False
        self.jobs[job_id][0]()
        return True

    def is_running(self) -> bool:
        return self.running

    def shutdown(self, wait: bool = False) -> None:
        self.running = False
