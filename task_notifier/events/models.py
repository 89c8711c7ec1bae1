"""Records the listener reads from the host application's data store."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


@dataclass(frozen=True)
class ChangeEvent:
    """A task's status moved from ``old_value`` to ``new_value``."""

    entity_id: str
    old_value: Optional[str]
    new_value: Optional[str]
    actor: Optional[str] = None
    occurred_at: Optional[datetime] = None


class TaskRecord(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    project_id: Optional[str] = None
    project_title: Optional[str] = None
    assigner_id: Optional[str] = None
    assignee_id: Optional[str] = None
    task_status: Optional[str] = None


class Profile(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None
