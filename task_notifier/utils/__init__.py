"""Small shared helpers for time handling and identifiers."""

from .ids import new_id
from .timestamps import (
    ensure_utc,
    format_timestamp,
    hours_before,
    parse_iso_datetime,
    utc_now,
)

__all__ = [
    "new_id",
    "utc_now",
    "ensure_utc",
    "hours_before",
    "parse_iso_datetime",
    "format_timestamp",
]
