"""Storage abstractions for timelog."""

from .backends import KeyValueBackend, MemoryBackend, PersistenceError, SqliteBackend
from .models import Activity, SessionRecord, TrackerSettings
from .store import STORAGE_KEYS, InvalidArgumentError, TimelogStore

__all__ = [
    "Activity",
    "InvalidArgumentError",
    "KeyValueBackend",
    "MemoryBackend",
    "PersistenceError",
    "STORAGE_KEYS",
    "SessionRecord",
    "SqliteBackend",
    "TimelogStore",
    "TrackerSettings",
]
