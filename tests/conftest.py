"""Shared fixtures for the notifier test suite."""

import pytest

from task_notifier.events.listener import ChangeEventListener
from task_notifier.events.models import Profile, TaskRecord
from task_notifier.logging import EventLogger
from task_notifier.logging.context import clear_log_context
from task_notifier.notifications.models import TemplateInput
from task_notifier.notifications.queue import DeliveryQueue
from task_notifier.notifications.templates import TemplateRenderer
from task_notifier.pipeline.manager import PipelineManager
from tests.helpers import FakeClock, FakeScheduler, FakeTransport, ManualChangeFeed, StaticEntityStore

ENV_VARS = (
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USER",
    "SMTP_PASS",
    "SMTP_SENDER_NAME",
    "SMTP_SENDER_EMAIL",
    "DATABASE_URL",
    "APP_URL",
    "LOG_LEVEL",
    "ENVIRONMENT",
)


@pytest.fixture(autouse=True)
def clean_log_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every notifier environment variable."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def mock_env_vars(clean_env):
    """A complete, valid SMTP environment."""
    clean_env.setenv("SMTP_HOST", "smtp.example.com")
    clean_env.setenv("SMTP_PORT", "587")
    clean_env.setenv("SMTP_USER", "notifier@example.com")
    clean_env.setenv("SMTP_PASS", "secret")
    clean_env.setenv("SMTP_SENDER_NAME", "Tasko")
    return clean_env


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def event_log(clock):
    return EventLogger(capacity=500, level="debug", clock=clock)


@pytest.fixture(scope="session")
def renderer():
    return TemplateRenderer()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def queue(renderer, transport, event_log, scheduler, clock):
    return DeliveryQueue(
        renderer=renderer,
        transport=transport,
        event_log=event_log,
        scheduler=scheduler,
        clock=clock,
        max_retries=3,
        backoff_unit_seconds=60,
        send_timeout_seconds=5,
    )


@pytest.fixture
def template_input(clock):
    return TemplateInput(
        task_id="task-1",
        task_title="Write release notes",
        project_title="Website relaunch",
        old_status="IN_PROGRESS",
        new_status="WAITING_CONFIRM",
        changed_by="Alex Kim",
        changed_at=clock(),
        task_url="http://localhost:5173/tasks/task-1",
        assigner_name="Sam Lee",
        assignee_name="Alex Kim",
    )


@pytest.fixture
def store():
    return StaticEntityStore(
        tasks=[
            TaskRecord(
                id="task-1",
                title="Write release notes",
                description="Summarize the changes in 2.0",
                project_id="proj-1",
                project_title="Website relaunch",
                assigner_id="user-sam",
                assignee_id="user-alex",
                task_status="IN_PROGRESS",
            ),
        ],
        profiles=[
            Profile(id="user-sam", email="sam@example.com", full_name="Sam Lee", role="manager"),
            Profile(id="user-alex", email="alex@example.com", full_name="Alex Kim", role="member"),
        ],
    )


@pytest.fixture
def feed():
    return ManualChangeFeed()


@pytest.fixture
def listener(feed, store, queue, event_log, clock):
    return ChangeEventListener(
        feed=feed,
        store=store,
        queue=queue,
        event_log=event_log,
        app_url="https://tasks.example.com/",
        clock=clock,
    )


@pytest.fixture
def manager(queue, listener, event_log, scheduler, clock):
    return PipelineManager(
        queue=queue,
        listener=listener,
        event_log=event_log,
        scheduler=scheduler,
        clock=clock,
    )
