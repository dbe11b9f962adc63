# =============================================================================
# cpd_core/offline/key_value_store.py
# Async Key-Value Store backed by SQLite
# =============================================================================
"""
KeyValueStore - the local persistence boundary.

The rest of the offline layer only needs four async operations:
``get``, ``set``, ``remove`` and ``get_all_keys``. ``SQLiteKeyValueStore``
provides them on top of a single SQLite table, running each blocking call
in a worker thread so the event loop is never stalled.

Features:
- Automatic schema creation
- Thread-local connections
- Transaction support
- sqlite3 errors surfaced as StorageWriteError / StorageReadError
"""

from __future__ import annotations
import asyncio
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union
import logging

from cpd_core.errors import StorageReadError, StorageWriteError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Generic async key-value interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value or None."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Insert or replace a value."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete a key; absent keys are ignored."""

    @abstractmethod
    async def get_all_keys(self) -> List[str]:
        """Return every stored key."""

    def close(self) -> None:
        """Release any held resources."""


class SQLiteKeyValueStore(KeyValueStore):
    """
    SQLite-backed key-value store.

    Usage:
        store = SQLiteKeyValueStore(Path("local_data/cpd.db"))
        await store.set("@cpd_entry:abc", payload)
        payload = await store.get("@cpd_entry:abc")
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """

    def __init__(self, db_path: Union[str, Path]):
        """
        Initialize the store.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._init_lock = threading.Lock()
        self._initialized = False
        self._conn_lock = threading.Lock()
        self._connections: List[sqlite3.Connection] = []

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            self._local.connection = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                timeout=30,
            )
            self._local.connection.row_factory = sqlite3.Row
            with self._conn_lock:
                self._connections.append(self._local.connection)
        return self._local.connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _ensure_schema(self) -> None:
        if self._initialized:
            return
        with self._init_lock:
            if self._initialized:
                return
            with self.transaction() as conn:
                conn.execute(self.SCHEMA)
            self._initialized = True
            logger.info(f"Local key-value store initialized at: {self.db_path}")

    # =========================================================================
    # BLOCKING OPERATIONS (run in worker threads)
    # =========================================================================

    def _get_sync(self, key: str) -> Optional[str]:
        try:
            self._ensure_schema()
            row = self._get_connection().execute(
                "SELECT value FROM kv_store WHERE key = ?", [key]
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(f"Failed to read key: {e}", key=key) from e
        return row["value"] if row else None

    def _set_sync(self, key: str, value: str) -> None:
        try:
            self._ensure_schema()
            with self.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    [key, value, datetime.now(timezone.utc).isoformat()],
                )
        except sqlite3.Error as e:
            raise StorageWriteError(f"Failed to write key: {e}", key=key) from e

    def _remove_sync(self, key: str) -> None:
        try:
            self._ensure_schema()
            with self.transaction() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", [key])
        except sqlite3.Error as e:
            raise StorageWriteError(f"Failed to remove key: {e}", key=key) from e

    def _get_all_keys_sync(self) -> List[str]:
        try:
            self._ensure_schema()
            rows = self._get_connection().execute(
                "SELECT key FROM kv_store ORDER BY key"
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(f"Failed to list keys: {e}") from e
        return [row["key"] for row in rows]

    # =========================================================================
    # ASYNC INTERFACE
    # =========================================================================

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set_sync, key, value)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove_sync, key)

    async def get_all_keys(self) -> List[str]:
        return await asyncio.to_thread(self._get_all_keys_sync)

    def close(self) -> None:
        """Close every connection opened by worker threads."""
        with self._conn_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local = threading.local()
