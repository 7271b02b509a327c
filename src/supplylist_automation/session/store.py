"""Durable key/value storage for session records (JSON values)."""

from __future__ import annotations

import json
import os
import sqlite3
import threading
from typing import Any, Dict, Optional, Protocol

from ..logging import get_logger
from ..paths import var_dir

LOG = get_logger("session-store")

DB_FILENAME = "session.sqlite3"
DB_FOLDERNAME = "session_db"
TABLE_NAME = "session_records"


class StoreError(Exception):
    """The backing store could not be read or written."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """In-process store; values are JSON round-tripped so callers never share objects."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)
        with self._lock:
            self._data[key] = encoded

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class SqliteKeyValueStore:
    """One row per key in var/session_db/session.sqlite3 under the project root."""

    def __init__(self, root_dir: Optional[str] = None, *, db_path: Optional[str] = None) -> None:
        if db_path is None:
            folder = os.path.join(var_dir(root_dir or "."), DB_FOLDERNAME)
            os.makedirs(folder, exist_ok=True)
            db_path = os.path.join(folder, DB_FILENAME)
        self.db_path = db_path
        self._ensure_schema()
        LOG.info(f"Session store ready at {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _ensure_schema(self) -> None:
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open session store {self.db_path}: {e}") from e
        try:
            cur = conn.cursor()
            try:
                cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA synchronous=NORMAL;")
            except sqlite3.Error:
                pass
            cur.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT DEFAULT (datetime('now'))
                );
                """
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot initialise session store {self.db_path}: {e}") from e
        finally:
            conn.close()

    def get(self, key: str) -> Optional[Any]:
        try:
            conn = self._connect()
            try:
                row = conn.execute(f"SELECT value FROM {TABLE_NAME} WHERE key=?", (key,)).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"read {key!r} failed: {e}") from e
        if not row:
            return None
        try:
            return json.loads(row[0])
        except ValueError as e:
            raise StoreError(f"stored value for {key!r} is not valid JSON: {e}") from e

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)
        try:
            conn = self._connect()
            try:
                conn.execute(
                    f"""
                    INSERT INTO {TABLE_NAME}(key, value, updated_at) VALUES (?, ?, datetime('now'))
                    ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=datetime('now')
                    """,
                    (key, encoded),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"write {key!r} failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute(f"DELETE FROM {TABLE_NAME} WHERE key=?", (key,))
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"delete {key!r} failed: {e}") from e
