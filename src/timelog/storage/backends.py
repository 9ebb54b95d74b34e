"""Key-value backends for the timelog store."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol


class PersistenceError(RuntimeError):
    """Raised when the persisted state cannot be read or written."""


class KeyValueBackend(Protocol):
    """Protocol for the string key-value API used by the store."""

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryBackend:
    """Process-local backend, used for tests and throwaway runs."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    @property
    def data(self) -> dict[str, str]:
        return self._data


class SqliteBackend:
    """Backend persisting each key as one row of a SQLite table."""

    def __init__(self, db_file: Path) -> None:
        self._db_file = Path(db_file)
        self._lock = threading.Lock()
        try:
            self._db_file.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceError(f"Cannot open store at {self._db_file}: {exc}") from exc

    @property
    def path(self) -> Path:
        return self._db_file

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_file, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self._connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            conn.commit()

    def get(self, key: str) -> str | None:
        try:
            with self._lock, self._connection() as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?",
                    (key,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read '{key}': {exc}") from exc
        if row is None:
            return None
        return str(row["value"])

    def set(self, key: str, value: str) -> None:
        try:
            with self._lock, self._connection() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store(key, value)
                    VALUES(?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (key, value),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to write '{key}': {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            with self._lock, self._connection() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to delete '{key}': {exc}") from exc


__all__ = ["KeyValueBackend", "MemoryBackend", "PersistenceError", "SqliteBackend"]
