"""In-memory ring buffer of pipeline events.

The buffer is the operator-facing record of what the queue, listener and
manager did: it can be filtered by level or job, summarized and exported.
Every accepted entry is also mirrored onto the stdlib logging stack so the
console output and the buffer never disagree.
"""

import json
import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Union

from ..utils.ids import new_id
from ..utils.timestamps import format_timestamp, hours_before, utc_now
from . import get_logger

logger = get_logger(__name__, component="event_log")


class EventLevel(str, Enum):
    """Event severity, ordered debug < info < warn < error."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _LEVEL_RANKS[self]

    @classmethod
    def coerce(cls, value: Union["EventLevel", str]) -> "EventLevel":
        """Accept an EventLevel or its name in any case (``warning`` allowed)."""
        if isinstance(value, EventLevel):
            return value
        normalized = str(value).strip().lower()
        if normalized == "warning":
            normalized = "warn"
        return cls(normalized)


_LEVEL_RANKS = {
    EventLevel.DEBUG: 0,
    EventLevel.INFO: 1,
    EventLevel.WARN: 2,
    EventLevel.ERROR: 3,
}

_STDLIB_LEVELS = {
    EventLevel.DEBUG: logging.DEBUG,
    EventLevel.INFO: logging.INFO,
    EventLevel.WARN: logging.WARNING,
    EventLevel.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class LogEntry:
    """A single pipeline event."""

    id: str
    timestamp: datetime
    level: EventLevel
    message: str
    job_id: Optional[str] = None
    recipient: Optional[str] = None
    template_kind: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error_detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = format_timestamp(self.timestamp)
        data["level"] = self.level.value
        return data


class EventLogger:
    """Bounded, thread-safe event buffer with a runtime-adjustable level.

    Args:
        capacity: Maximum number of retained entries; the oldest are evicted
        level: Minimum level accepted into the buffer
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        capacity: int = 1000,
        level: Union[EventLevel, str] = EventLevel.INFO,
        clock: Callable[[], datetime] = utc_now,
    ):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._level = EventLevel.coerce(level)
        self._clock = clock
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def level(self) -> EventLevel:
        return self._level

    def set_level(self, level: Union[EventLevel, str]) -> None:
        """Change the minimum accepted level."""
        new_level = EventLevel.coerce(level)
        with self._lock:
            previous = self._level
            self._level = new_level
        logger.info(
            "Event log level changed",
            extra={
                "event": "event_log.level_changed",
                "previous_level": previous.value,
                "new_level": new_level.value,
            },
        )

    def log(
        self,
        level: Union[EventLevel, str],
        message: str,
        *,
        job_id: Optional[str] = None,
        recipient: Optional[str] = None,
        template_kind: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        error_detail: Optional[str] = None,
    ) -> Optional[LogEntry]:
        """Record an event.

        Args:
            level: Event severity
            message: Human-readable description
            job_id: Delivery job the event belongs to
            recipient: Recipient address the event concerns
            template_kind: Template kind of the job
            metadata: Free-form structured details
            error_detail: Error text or exception description

        Returns:
            The stored entry, or None when the level is below the minimum
        """
        event_level = EventLevel.coerce(level)

        with self._lock:
            if event_level.rank < self._level.rank:
                return None
            entry = LogEntry(
                id=new_id("log"),
                timestamp=self._clock(),
                level=event_level,
                message=message,
                job_id=job_id,
                recipient=recipient,
                template_kind=template_kind,
                metadata=dict(metadata or {}),
                error_detail=error_detail,
            )
            self._entries.append(entry)

        self._mirror(entry)
        return entry

    def debug(self, message: str, **kwargs) -> Optional[LogEntry]:
        return self.log(EventLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> Optional[LogEntry]:
        return self.log(EventLevel.INFO, message, **kwargs)

    def warn(self, message: str, **kwargs) -> Optional[LogEntry]:
        return self.log(EventLevel.WARN, message, **kwargs)

    def error(self, message: str, **kwargs) -> Optional[LogEntry]:
        return self.log(EventLevel.ERROR, message, **kwargs)

    def query(
        self,
        level: Optional[Union[EventLevel, str]] = None,
        limit: Optional[int] = None,
        job_id: Optional[str] = None,
    ) -> List[LogEntry]:
        """Return matching entries, newest first.

        Args:
            level: Only entries of exactly this level
            limit: Maximum number of entries returned
            job_id: Only entries for this job
        """
        wanted = EventLevel.coerce(level) if level is not None else None

        with self._lock:
            snapshot = list(self._entries)

        results = []
        for entry in reversed(snapshot):
            if wanted is not None and entry.level != wanted:
                continue
            if job_id is not None and entry.job_id != job_id:
                continue
            results.append(entry)
            if limit is not None and len(results) >= limit:
                break
        return results

    def stats(self) -> Dict[str, int]:
        """Count retained entries per level."""
        counts = {level.value: 0 for level in EventLevel}
        with self._lock:
            for entry in self._entries:
                counts[entry.level.value] += 1
            counts["total"] = len(self._entries)
        return counts

    def clear(self, older_than_hours: Optional[float] = None) -> int:
        """Remove entries, optionally only those older than a cutoff.

        Args:
            older_than_hours: Age threshold; None removes everything

        Returns:
            Number of entries removed
        """
        with self._lock:
            before = len(self._entries)
            if older_than_hours is None:
                self._entries.clear()
            else:
                cutoff = hours_before(self._clock(), older_than_hours)
                kept = [entry for entry in self._entries if entry.timestamp >= cutoff]
                self._entries = deque(kept, maxlen=self.capacity)
            removed = before - len(self._entries)

        if removed:
            logger.info(
                "Event log entries cleared",
                extra={
                    "event": "event_log.cleared",
                    "removed": removed,
                    "older_than_hours": older_than_hours,
                },
            )
        return removed

    def job_history(self, job_id: str) -> List[LogEntry]:
        """All retained entries for a job, oldest first."""
        return list(reversed(self.query(job_id=job_id)))

    def recent_activity(self, minutes: int = 30) -> Dict[str, Any]:
        """Summarize the last ``minutes`` of activity.

        Returns:
            Dict with ``total``, per-level counts, ``jobs`` (distinct job ids)
            and ``errors`` (messages of error entries, newest first)
        """
        cutoff = self._clock() - timedelta(minutes=minutes)
        with self._lock:
            recent = [entry for entry in self._entries if entry.timestamp >= cutoff]

        summary: Dict[str, Any] = {level.value: 0 for level in EventLevel}
        for entry in recent:
            summary[entry.level.value] += 1
        summary["total"] = len(recent)
        summary["jobs"] = len({entry.job_id for entry in recent if entry.job_id})
        summary["errors"] = [
            entry.message for entry in reversed(recent) if entry.level is EventLevel.ERROR
        ]
        return summary

    def export(self) -> str:
        """Serialize the retained entries, oldest first, as a JSON array."""
        with self._lock:
            snapshot = [entry.to_dict() for entry in self._entries]
        return json.dumps(snapshot, ensure_ascii=False, default=str)

    def _mirror(self, entry: LogEntry) -> None:
        extra: Dict[str, Any] = {"event": "event_log.entry", "event_level": entry.level.value}
        for key in ("job_id", "recipient", "template_kind", "error_detail"):
            value = getattr(entry, key)
            if value is not None:
                extra[key] = value
        logger.log(_STDLIB_LEVELS[entry.level], entry.message, extra=extra)
