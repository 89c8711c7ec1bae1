"""Timestamp utilities.

Every timestamp the pipeline stores is a timezone-aware UTC datetime. These
helpers produce, normalize and format them so that comparisons between job
times, log entry times and cutoffs never mix naive and aware values.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    This is the default clock for every component; tests inject their own.

    Returns:
        Current UTC time with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Coerce a datetime to timezone-aware UTC.

    Naive values are assumed to already be UTC; aware values are converted.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def hours_before(reference: datetime, hours: float) -> datetime:
    """Compute the cutoff lying ``hours`` before ``reference``.

    Used by the queue sweep and the event log retention prune.

    Args:
        reference: Point in time to count back from
        hours: Number of hours (fractions allowed, 0 returns reference)

    Returns:
        UTC datetime of the cutoff
    """
    return ensure_utc(reference) - timedelta(hours=hours)


def parse_iso_datetime(iso_string: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string (``Z`` suffix allowed) into a UTC datetime.

    Args:
        iso_string: ISO 8601 formatted string

    Returns:
        Timezone-aware datetime in UTC, or None if empty or unparseable
    """
    if not iso_string or not iso_string.strip():
        return None

    cleaned = iso_string.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        return None


def format_timestamp(dt: Optional[datetime]) -> str:
    """Format a datetime as ``YYYY-MM-DDTHH:MM:SSZ``.

    Args:
        dt: Datetime to format

    Returns:
        ISO 8601 string in UTC, or an empty string for None
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return ""
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%SZ")
