# Private Bookmarks - Persistent Store
#
# Async key/value storage behind the vault. Values are JSON-compatible.
# Two implementations:
#   - MemoryStore: process-local, used by tests and throwaway sessions
#   - SqliteStore: durable, one row per (scope, key), via core.db.connect
#
# The scope ("sync" or "local") partitions keys the way the host separates
# its synced and device-local storage areas, so both can live in one file.

import asyncio
import copy
import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from ..config import DEFAULT_STORAGE_SCOPE, STORAGE_SCOPES
from .errors import StorageError

logger = logging.getLogger(__name__)


class PersistentStore(ABC):
    """Async key/value store. Failures surface as StorageError."""

    def __init__(self, scope: str = DEFAULT_STORAGE_SCOPE):
        if scope not in STORAGE_SCOPES:
            raise ValueError(f"scope must be one of {STORAGE_SCOPES}, got {scope!r}")
        self.scope = scope

    @abstractmethod
    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Return the stored values for ``keys``. Missing keys are omitted."""

    @abstractmethod
    async def set(self, values: Dict[str, Any]) -> None:
        """Write all ``values`` at once. Either every key is written or none."""


class MemoryStore(PersistentStore):
    """In-process store. Values are deep-copied in and out."""

    def __init__(self, scope: str = DEFAULT_STORAGE_SCOPE, initial: Optional[Dict[str, Any]] = None):
        super().__init__(scope)
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        return {k: copy.deepcopy(self._data[k]) for k in keys if k in self._data}

    async def set(self, values: Dict[str, Any]) -> None:
        self._data.update(copy.deepcopy(values))

    def snapshot(self) -> Dict[str, Any]:
        """Copy of everything stored (for inspection)."""
        return copy.deepcopy(self._data)


class SqliteStore(PersistentStore):
    """SQLite-backed store. Blocking I/O runs in a worker thread.

    Args:
        db_path: Path to SQLite file (parent directories are created)
        scope: Storage area, "sync" or "local"
    """

    def __init__(self, db_path: Union[str, Path], scope: str = DEFAULT_STORAGE_SCOPE):
        super().__init__(scope)
        self.db_path = Path(db_path)
        try:
            self._init_database()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open bookmark store at {self.db_path}: {e}") from e

    def _init_database(self):
        from ..core.db import connect as db_connect

        with db_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS storage (
                    scope TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (scope, key)
                )
            """)
            conn.commit()
        conn.close()

    def _connect(self) -> sqlite3.Connection:
        from ..core.db import connect as db_connect

        return db_connect(self.db_path, row_factory=True)

    def _get_sync(self, keys: list) -> Dict[str, Any]:
        if not keys:
            return {}
        placeholders = ", ".join("?" for _ in keys)
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT key, value FROM storage WHERE scope = ? AND key IN ({placeholders})",
                (self.scope, *keys),
            ).fetchall()
        finally:
            conn.close()
        return {row["key"]: json.loads(row["value"]) for row in rows}

    def _set_sync(self, values: Dict[str, Any]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        rows = [(self.scope, key, json.dumps(value), now) for key, value in values.items()]
        conn = self._connect()
        try:
            # One transaction: all keys land or none do
            with conn:
                conn.executemany(
                    """INSERT INTO storage (scope, key, value, updated_at)
                       VALUES (?, ?, ?, ?)
                       ON CONFLICT(scope, key) DO UPDATE SET
                           value = excluded.value,
                           updated_at = excluded.updated_at""",
                    rows,
                )
        finally:
            conn.close()

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        keys = list(keys)
        try:
            return await asyncio.to_thread(self._get_sync, keys)
        except (sqlite3.Error, ValueError) as e:
            logger.error(f"Storage read failed ({self.db_path}, scope={self.scope}): {e}")
            raise StorageError(f"Failed to read {keys}: {e}") from e

    async def set(self, values: Dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._set_sync, dict(values))
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error(f"Storage write failed ({self.db_path}, scope={self.scope}): {e}")
            raise StorageError(f"Failed to write {sorted(values)}: {e}") from e
