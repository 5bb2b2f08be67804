"""Persistent key/value stores for engine state."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)


class PersistentStore(ABC):
    """Async key/value store holding all engine state.

    Keys follow a ``<record>:<principal>:...`` scheme so every record type
    and every principal gets its own namespace.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value, or None."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Insert or replace a value."""


class MemoryStore(PersistentStore):
    """In-process store, used in tests and when no database is configured."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value


class SqliteStore(PersistentStore):
    """SQLite-backed store."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open database connection."""
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        logger.info(f"Connected to database at {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Database connection closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection."""
        if self._db is None:
            raise RuntimeError("Database not connected")
        return self._db

    async def get(self, key: str) -> str | None:
        async with self.db.execute(
            "SELECT value FROM kv_store WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
            return row["value"] if row else None

    async def set(self, key: str, value: str) -> None:
        await self.db.execute(
            """
            INSERT INTO kv_store (key, value, updated_at)
            VALUES (?, ?, datetime('now'))
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value),
        )
        await self.db.commit()

