"""SQLite-backed durable key-value store.

This module handles database connection, initialization, and schema
management for the durable substrate shared by StorageCache, the
offline queue and the offline-mode flag.
"""

import logging
import os
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import aiosqlite

from network.errors import StorageError

logger = logging.getLogger(__name__)

# Default data directory
DEFAULT_DATA_DIR = Path("data")
DEFAULT_DB_NAME = "resilient.db"

# Database schema version for migrations
SCHEMA_VERSION = 1

CORE_SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Namespaced string values
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


class KeyValueStore(ABC):
    """Durable string store contract used by the cache and offline layers."""

    @abstractmethod
    async def read_string(self, key: str) -> Optional[str]:
        """Return the stored text, or None if absent."""

    @abstractmethod
    async def write_string(self, key: str, value: str) -> None:
        """Store text under key, replacing any previous value."""

    @abstractmethod
    async def remove_key(self, key: str) -> None:
        """Delete key. Removing a missing key is not an error."""

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> List[str]:
        """List keys starting with prefix, in sorted order."""


class SQLiteKeyValueStore(KeyValueStore):
    """aiosqlite implementation of KeyValueStore.

    Every operation opens its own connection and commits before
    returning, so data survives process restarts. Driver errors are
    raised as StorageError.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize key-value store.

        Args:
            db_path: Path to SQLite database file. Defaults to data/resilient.db
        """
        if db_path is None:
            data_dir = Path(os.getenv("RESILIENT_DATA_DIR", DEFAULT_DATA_DIR))
            db_path = data_dir / DEFAULT_DB_NAME

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False

    async def init_schema_async(self) -> None:
        """Initialize database schema (asynchronous)."""
        if self._initialized:
            return

        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.executescript(CORE_SCHEMA_SQL)
                cursor = await db.execute("SELECT MAX(version) FROM schema_version")
                row = await cursor.fetchone()
                current_version = row[0] if row and row[0] is not None else 0
                if current_version < SCHEMA_VERSION:
                    await db.execute(
                        "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
                        (SCHEMA_VERSION,)
                    )
                    logger.info(f"Initialized key-value store at {self.db_path}")
                await db.commit()
        except (aiosqlite.Error, sqlite3.Error) as e:
            raise StorageError(f"Failed to initialize {self.db_path}: {e}") from e

        self._initialized = True

    async def read_string(self, key: str) -> Optional[str]:
        await self.init_schema_async()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
                row = await cursor.fetchone()
        except (aiosqlite.Error, sqlite3.Error) as e:
            raise StorageError(f"Read failed for {key}: {e}") from e
        return row[0] if row else None

    async def write_string(self, key: str, value: str) -> None:
        await self.init_schema_async()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, value)
                )
                await db.commit()
        except (aiosqlite.Error, sqlite3.Error) as e:
            raise StorageError(f"Write failed for {key}: {e}") from e

    async def remove_key(self, key: str) -> None:
        await self.init_schema_async()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                await db.commit()
        except (aiosqlite.Error, sqlite3.Error) as e:
            raise StorageError(f"Remove failed for {key}: {e}") from e

    async def list_keys(self, prefix: str = "") -> List[str]:
        await self.init_schema_async()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    "SELECT key FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
                    (len(prefix), prefix)
                )
                rows = await cursor.fetchall()
        except (aiosqlite.Error, sqlite3.Error) as e:
            raise StorageError(f"Listing keys with prefix '{prefix}' failed: {e}") from e
        return [row[0] for row in rows]

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a synchronous database connection.

        Yields:
            SQLite connection with row factory
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics (synchronous).

        Returns:
            Dictionary with key count, payload size and file size
        """
        stats: Dict[str, Any] = {"db_path": str(self.db_path)}
        if not self.db_path.exists():
            stats.update({"key_count": 0, "value_bytes": 0, "db_size_mb": 0.0})
            return stats

        with self.get_connection() as conn:
            conn.executescript(CORE_SCHEMA_SQL)
            row = conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(LENGTH(CAST(value AS BLOB))), 0) FROM kv_store"
            ).fetchone()
            stats["key_count"] = row[0]
            stats["value_bytes"] = row[1]

        stats["db_size_mb"] = round(self.db_path.stat().st_size / (1024 * 1024), 2)
        return stats

    def vacuum(self) -> None:
        """Optimize database by running VACUUM."""
        with self.get_connection() as conn:
            conn.execute("VACUUM")
            logger.info("Database vacuumed successfully")


# Export
__all__ = [
    "KeyValueStore",
    "SQLiteKeyValueStore",
    "DEFAULT_DATA_DIR",
    "DEFAULT_DB_NAME",
]
