"""Test doubles for the notifier's collaborators."""

from .fakes import FakeClock, FakeScheduler, FakeTransport, ManualChangeFeed, StaticEntityStore

__all__ = [
    "FakeClock",
    "FakeScheduler",
    "FakeTransport",
    "ManualChangeFeed",
    "StaticEntityStore",
]
