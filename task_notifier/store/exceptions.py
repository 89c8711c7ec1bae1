"""Store layer exceptions.

All of them inherit from PersistenceError so callers can catch the whole
family with one except clause.
"""


class PersistenceError(Exception):
    """Base exception for all data store errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when the database cannot be reached or was never initialized."""

    pass
