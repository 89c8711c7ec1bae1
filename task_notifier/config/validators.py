"""Non-fatal configuration checks."""

import warnings
from typing import Any, Dict, List

from .duration import DurationParseError, parse_duration


def _seconds_or_none(value: Any):
    if not isinstance(value, str):
        return None
    try:
        return parse_duration(value)
    except DurationParseError:
        return None


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Look for settings that are valid but probably unintended.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    messages = []

    queue = config_dict.get("queue") or {}
    if isinstance(queue, dict):
        dispatch = _seconds_or_none(queue.get("dispatch_interval"))
        timeout = _seconds_or_none(queue.get("send_timeout"))
        if dispatch is not None and dispatch > 60:
            messages.append(
                f"Long queue.dispatch_interval ({queue['dispatch_interval']}) delays every notification"
            )
        if timeout is not None and timeout > 120:
            messages.append(
                f"Long queue.send_timeout ({queue['send_timeout']}) can stall dispatch on a slow server"
            )

    listener = config_dict.get("listener") or {}
    if isinstance(listener, dict):
        statuses = listener.get("notify_statuses")
        if isinstance(statuses, list) and len(statuses) < 2:
            messages.append(
                "listener.notify_statuses has fewer than two states; "
                "both sides of a transition must be listed, so nothing will be sent"
            )
        window = _seconds_or_none(listener.get("dedup_window"))
        if window is not None and window < 30:
            messages.append(
                f"Short listener.dedup_window ({listener['dedup_window']}) may let duplicate events through"
            )

    transport = config_dict.get("transport") or {}
    if isinstance(transport, dict):
        if transport.get("use_tls") is False:
            messages.append("transport.use_tls is disabled; credentials will be sent in clear text")
        if transport.get("dry_run") is True:
            messages.append("transport.dry_run is enabled; no email will be delivered")

    return messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit each message as a UserWarning."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
