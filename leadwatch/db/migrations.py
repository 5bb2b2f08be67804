"""Database migration runner."""

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


async def init_database(db: aiosqlite.Connection) -> None:
    """Create the key/value table from schema.sql."""
    schema_path = Path(__file__).parent / "schema.sql"
    with open(schema_path) as f:
        await db.executescript(f.read())


async def run_migrations(db_path: Path) -> None:
    """Bring the state database up to SCHEMA_VERSION.

    The version lives in SQLite's user_version pragma. Engine state is plain
    key/value rows, so later versions only need to add steps here.
    """
    async with aiosqlite.connect(db_path) as db:
        async with db.execute("PRAGMA user_version") as cursor:
            row = await cursor.fetchone()
            version = row[0] if row else 0

        if version >= SCHEMA_VERSION:
            logger.debug(f"Database at {db_path} is current (v{version})")
            return

        await init_database(db)
        await db.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        await db.commit()

        logger.info(f"Database at {db_path} migrated v{version} -> v{SCHEMA_VERSION}")
