"""Time entry persistence."""

from .base import EntityNotFoundError, StorageError, TimeEntryStore
from .sqlite import SQLiteTimeEntryStore

__all__ = [
    "EntityNotFoundError",
    "SQLiteTimeEntryStore",
    "StorageError",
    "TimeEntryStore",
]
