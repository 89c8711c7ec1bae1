"""SQL adapters for the host application's task data."""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import DatabaseConnectionError, PersistenceError
from .feed import PollingChangeFeed
from .repositories import SQLEntityStore

__all__ = [
    "init_database",
    "get_session",
    "get_engine",
    "close_database",
    "SQLEntityStore",
    "PollingChangeFeed",
    "PersistenceError",
    "DatabaseConnectionError",
]
