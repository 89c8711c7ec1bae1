"""Task status notification pipeline.

Watches task status changes, renders notification emails and delivers them
through a prioritized, retrying in-memory queue.
"""

__version__ = "0.1.0"
