"""Identifier generation for jobs and log entries."""

from uuid import uuid4


def new_id(prefix: str) -> str:
    """Return an opaque unique identifier such as ``job_3f2a...``.

    Args:
        prefix: Short label identifying the kind of object

    Returns:
        Prefix joined to a random 32-character hex string
    """
    return f"{prefix}_{uuid4().hex}"
