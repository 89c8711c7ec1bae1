"""Task status change events: sources and the notification listener."""

from .listener import ChangeEventListener, priority_for, template_kind_for
from .models import ChangeEvent, Profile, TaskRecord
from .sources import ChangeCallback, ChangeFeed, EntityStore

__all__ = [
    "ChangeCallback",
    "ChangeEvent",
    "ChangeEventListener",
    "ChangeFeed",
    "EntityStore",
    "Profile",
    "TaskRecord",
    "priority_for",
    "template_kind_for",
]
