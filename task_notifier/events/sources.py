"""Interfaces to the host application's data store."""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from .models import ChangeEvent, Profile, TaskRecord

ChangeCallback = Callable[[ChangeEvent], None]


class ChangeFeed(ABC):
    """Push source of task status changes."""

    @abstractmethod
    def subscribe(self, callback: ChangeCallback) -> None:
        """Start delivering events to ``callback``."""

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop delivering events."""


class EntityStore(ABC):
    """Read access to tasks and user profiles."""

    @abstractmethod
    def get_entity(self, entity_id: str) -> Optional[TaskRecord]:
        """Fetch a task with its project title, or None if it does not exist."""

    @abstractmethod
    def get_profiles(self, ids: Sequence[str]) -> List[Profile]:
        """Fetch the profiles with the given ids; unknown ids are skipped."""
