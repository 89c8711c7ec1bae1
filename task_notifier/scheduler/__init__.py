"""Scheduling of the pipeline's periodic work (dispatch, health, polling)."""

from .service import SchedulerService

__all__ = [
    "SchedulerService",
]
