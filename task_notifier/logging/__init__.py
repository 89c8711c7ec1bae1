"""Structured logging for the notification pipeline.

Two layers live here:
- stdlib ``logging`` wiring (formatters, context filter, component loggers)
- ``EventLogger``, the queryable in-memory ring buffer of pipeline events
  that mirrors every accepted entry onto the stdlib layer
"""

import logging
from typing import Optional, Union


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that stamps a ``component`` field on every record.

    Fields passed through ``extra=`` on the individual call win over the
    adapter's own fields.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(
    name: str, component: Optional[str] = None
) -> Union[logging.Logger, ComponentLoggerAdapter]:
    """Get a logger, optionally bound to a component name.

    Args:
        name: Logger name (typically __name__)
        component: Component identifier injected into all records

    Returns:
        Logger or ComponentLoggerAdapter instance

    Example:
        >>> logger = get_logger(__name__, component="queue")
        >>> logger.info("Job dispatched", extra={"event": "queue.dispatch.sent"})
    """
    logger = logging.getLogger(name)

    if component:
        return ComponentLoggerAdapter(logger, {"component": component})

    return logger


from .event_log import EventLevel, EventLogger, LogEntry  # noqa: E402

__all__ = [
    "ComponentLoggerAdapter",
    "get_logger",
    "EventLevel",
    "EventLogger",
    "LogEntry",
]
