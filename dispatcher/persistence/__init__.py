"""Persistence layer for the notification queue.

Public API:
    - init_database(database_url) / get_session() / close_database() / get_engine()
    - NotificationQueueRepository: pending reads, lease, outcomes, sweep, admin queries
    - DirectoryRepository: profile and network rows joined during dispatch
    - PersistenceError and its subclasses

Example:
    >>> from dispatcher.persistence import init_database, get_session, NotificationQueueRepository
    >>> init_database("sqlite:///./data/notifications.db")
    >>> with get_session() as session:
    ...     stats = NotificationQueueRepository(session).get_stats()
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import DirectoryRepository, HistoryPage, NotificationQueueRepository

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "NotificationQueueRepository",
    "DirectoryRepository",
    "HistoryPage",
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
