"""Duration strings used by timer settings.

Both short forms (``"5s"``, ``"5m"``, ``"1h30m"``, ``"2d"``) and ISO-8601
durations (``"PT5S"``, ``"PT5M"``, ``"P1D"``) are accepted.
"""

import re

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

_ISO_PATTERN = re.compile(
    r"^P(?:(?P<d>\d+)D)?(?:T(?:(?P<h>\d+)H)?(?:(?P<m>\d+)M)?(?:(?P<s>\d+(?:\.\d+)?)S)?)?$"
)
_SHORT_TOKEN = re.compile(r"(\d+)([smhd])")


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""


def parse_duration(value: str) -> int:
    """
    Convert a duration string to whole seconds.

    Args:
        value: Duration string

    Returns:
        Duration in seconds (always positive)

    Raises:
        DurationParseError: If the string is malformed or zero

    Examples:
        >>> parse_duration("5s")
        5
        >>> parse_duration("PT5M")
        300
        >>> parse_duration("1h30m")
        5400
    """
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise DurationParseError("Duration string cannot be empty")

    if text[0] in "Pp":
        seconds = _parse_iso(text.upper())
    else:
        seconds = _parse_short(text.lower())

    if seconds <= 0:
        raise DurationParseError(f"Duration cannot be zero: '{value}'")
    return seconds


def _parse_iso(text: str) -> int:
    match = _ISO_PATTERN.match(text)
    if not match or text in ("P", "PT"):
        raise DurationParseError(
            f"Invalid ISO-8601 duration: '{text}'. Expected e.g. 'PT5S', 'PT5M', 'PT1H', 'P1D'"
        )
    parts = match.groupdict()
    total = 0.0
    for unit in ("d", "h", "m", "s"):
        if parts[unit]:
            total += float(parts[unit]) * _UNIT_SECONDS[unit]
    return int(total)


def _parse_short(text: str) -> int:
    compact = re.sub(r"\s+", "", text)
    tokens = _SHORT_TOKEN.findall(compact)
    if not tokens or "".join(num + unit for num, unit in tokens) != compact:
        raise DurationParseError(
            f"Invalid duration: '{text}'. Use digits with s, m, h or d, e.g. '5s', '5m', '1h30m'"
        )
    return sum(int(num) * _UNIT_SECONDS[unit] for num, unit in tokens)


def validate_duration_range(
    seconds: int, min_seconds: int, max_seconds: int, label: str = "Duration"
) -> None:
    """
    Check that a parsed duration lies within bounds.

    Raises:
        DurationParseError: If outside ``[min_seconds, max_seconds]``
    """
    if seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {humanize_seconds(seconds)}. Minimum is {humanize_seconds(min_seconds)}."
        )
    if seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {humanize_seconds(seconds)}. Maximum is {humanize_seconds(max_seconds)}."
        )


def humanize_seconds(seconds: int) -> str:
    """Render seconds in the largest whole unit, e.g. ``"5 minutes"``."""
    for unit_seconds, name in ((86400, "day"), (3600, "hour"), (60, "minute")):
        if seconds >= unit_seconds:
            count = seconds // unit_seconds
            return f"{count} {name}{'s' if count != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"
