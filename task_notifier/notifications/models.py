"""Data models and exceptions for notification rendering and delivery.

``TemplateInput`` is the data a message is rendered from; ``DeliveryJob`` is
the queue's unit of work. Jobs are only ever mutated by ``DeliveryQueue``;
everything handed to callers is a copy.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..utils.ids import new_id
from ..utils.timestamps import utc_now


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when a message cannot be rendered from its template."""

    pass


class TransportError(NotificationError):
    """Raised by a transport when a message could not be handed off."""

    def __init__(self, message: str, recipient: Optional[str] = None):
        super().__init__(message)
        self.recipient = recipient


class TemplateKind(str, Enum):
    """Which message a job renders."""

    TASK_STATUS_CHANGE = "task_status_change"
    TASK_ASSIGNED = "task_assigned"
    TASK_APPROVED = "task_approved"
    TASK_REJECTED = "task_rejected"
    TASK_WAITING_CONFIRM = "task_waiting_confirm"


class JobPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 1, "normal": 2, "high": 3}[self.value]


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SENT, JobStatus.FAILED, JobStatus.CANCELLED)


class TemplateInput(BaseModel):
    """Render data for one task-status message.

    Every field may be omitted at construction so that
    ``validate_template_input`` can name all missing ones at once.
    """

    model_config = ConfigDict(frozen=True)

    task_id: Optional[str] = None
    task_title: Optional[str] = None
    project_title: Optional[str] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    changed_by: Optional[str] = None
    changed_at: Optional[datetime] = None
    task_url: Optional[str] = None
    assigner_name: Optional[str] = None
    assignee_name: Optional[str] = None
    task_description: Optional[str] = None


class DeliveryJob(BaseModel):
    """A queued message to one or more recipients."""

    id: str = Field(default_factory=lambda: new_id("job"))
    template_kind: TemplateKind
    template_input: TemplateInput
    recipients: List[str]
    priority: JobPriority = JobPriority.NORMAL
    retry_count: int = 0
    max_retries: int = 3
    created_at: datetime = Field(default_factory=utc_now)
    last_attempt_at: Optional[datetime] = None
    not_before: Optional[datetime] = None
    status: JobStatus = JobStatus.PENDING
    error_message: Optional[str] = None

    def is_due(self, now: datetime) -> bool:
        """Pending and past its earliest dispatch time."""
        return self.status is JobStatus.PENDING and (
            self.not_before is None or self.not_before <= now
        )


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class RecipientResult:
    """Outcome of sending one job to one recipient."""

    recipient: str
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class QueueStats:
    """Job counts per status."""

    total_jobs: int = 0
    pending_jobs: int = 0
    processing_jobs: int = 0
    sent_jobs: int = 0
    failed_jobs: int = 0
    cancelled_jobs: int = 0

    @property
    def failed_ratio(self) -> float:
        return self.failed_jobs / self.total_jobs if self.total_jobs else 0.0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)
