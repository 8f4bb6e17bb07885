"""
Durable Key-Value Store.

The decision core persists every aggregate as one JSON document under a fixed key.
Backends store the encoded text and enforce an optional byte quota; exceeding it
raises StoreCapacityError so callers can retry with a smaller payload.
"""

from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from typing import Protocol

from ..core.config import get_settings
from ..core.logging import get_logger

logger = get_logger(__name__)


class StoreError(Exception):
    """Base error for key-value store failures."""


class StoreCapacityError(StoreError):
    """Raised when a write would exceed the store's capacity."""

    def __init__(self, key: str, required: int, capacity: int):
        self.key = key
        self.required = required
        self.capacity = capacity
        super().__init__(f"Writing {key!r} needs {required} bytes, capacity is {capacity}")


class KeyValueStore(Protocol):
    """Key-addressed durable store holding encoded JSON documents."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


def _size(value: str) -> int:
    return len(value.encode("utf-8"))


class MemoryStore:
    """
    In-process store.

    Args:
        max_bytes: Total byte quota across all keys (None for unlimited)
    """

    def __init__(self, max_bytes: int | None = None) -> None:
        self.max_bytes = max_bytes
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.max_bytes is not None:
            others = sum(_size(v) for k, v in self._data.items() if k != key)
            required = others + _size(value)
            if required > self.max_bytes:
                raise StoreCapacityError(key, required, self.max_bytes)
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class SqliteStore:
    """
    SQLite-backed store using a single `kv` table.

    Args:
        db_path: Path to SQLite database. Defaults to settings.db_path
        max_bytes: Total byte quota across all keys (None for unlimited)
    """

    def __init__(self, db_path: Path | str | None = None, max_bytes: int | None = None):
        if db_path is None:
            db_path = get_settings().db_path
        self.db_path = Path(db_path)
        self.max_bytes = max_bytes

        # Ensure directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at INTEGER NOT NULL
                )
                """
            )
            self._conn.commit()
        return self._conn

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def get(self, key: str) -> str | None:
        try:
            row = self._get_connection().execute(
                "SELECT value FROM kv WHERE key = ?",
                (key,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read {key!r}: {e}") from e
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        try:
            conn = self._get_connection()
            if self.max_bytes is not None:
                row = conn.execute(
                    "SELECT COALESCE(SUM(LENGTH(CAST(value AS BLOB))), 0) AS used "
                    "FROM kv WHERE key != ?",
                    (key,),
                ).fetchone()
                required = int(row["used"]) + _size(value)
                if required > self.max_bytes:
                    raise StoreCapacityError(key, required, self.max_bytes)

            conn.execute(
                """
                INSERT OR REPLACE INTO kv (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                (key, value, int(time.time())),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to write {key!r}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            conn = self._get_connection()
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete {key!r}: {e}") from e


def create_store(backend: str | None = None, db_path: Path | str | None = None) -> KeyValueStore:
    """
    Build the configured store backend.

    Args:
        backend: "sqlite" or "memory" (defaults to settings.store_backend)
        db_path: SQLite path override
    """
    backend = backend or get_settings().store_backend
    if backend == "memory":
        return MemoryStore()
    return SqliteStore(db_path)
