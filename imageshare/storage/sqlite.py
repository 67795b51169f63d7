"""SQLite image store for local development and the test-suite."""

import asyncio
import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from imageshare.exceptions import DatabaseUnavailable
from imageshare.storage.base import ImageStore

logger = logging.getLogger(__name__)

# Fixed-width UTC text so that string comparison orders like time
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def sqlite_path_from_url(url: str) -> str:
    """``sqlite:///data/images.db`` -> ``data/images.db``."""
    return url[len("sqlite:///"):] or ":memory:"


class SqliteImageStore(ImageStore):
    dialect = "sqlite"

    def __init__(self, path: str | Path):
        self.path = str(path)
        self._db: aiosqlite.Connection | None = None
        # One connection; statements take turns on it
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    async def connect(self) -> None:
        if self._db is not None:
            return

        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.path)
        # Enable WAL mode for better read concurrency
        await self._db.execute("PRAGMA journal_mode=WAL")
        # Reasonable busy timeout for concurrent access
        await self._db.execute("PRAGMA busy_timeout=5000")
        await self._db.commit()
        logger.info("SQLite database opened at %s", self.path)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.info("SQLite database closed")

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        if self._db is None:
            raise DatabaseUnavailable("Database not initialized. Call connect() first.")
        async with self._lock:
            yield self._db

    async def ping(self) -> None:
        async with self.acquire() as db:
            await db.execute("SELECT 1")

    async def insert_image(
        self,
        *,
        share_id: str,
        original_name: str,
        mimetype: str,
        size: int,
        image_data: bytes,
        expiry_date: datetime,
    ) -> int | None:
        async with self.acquire() as db:
            cursor = await db.execute(
                """INSERT INTO images (share_id, original_name, mimetype, size, image_data, expiry_date)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (share_id, original_name, mimetype, size, image_data,
                 format_timestamp(expiry_date)),
            )
            await db.commit()
            return cursor.lastrowid

    async def get_active_image(self, share_id: str, now: datetime) -> dict | None:
        async with self.acquire() as db:
            cursor = await db.execute(
                """SELECT image_data, mimetype, expiry_date
                   FROM images
                   WHERE share_id = ? AND expiry_date > ?""",
                (share_id, format_timestamp(now)),
            )
            columns = [desc[0] for desc in cursor.description]
            row = await cursor.fetchone()
        if row is None:
            return None
        image = dict(zip(columns, row))
        image["expiry_date"] = parse_timestamp(image["expiry_date"])
        return image

    async def delete_image(self, share_id: str) -> bool:
        async with self.acquire() as db:
            cursor = await db.execute(
                "DELETE FROM images WHERE share_id = ?", (share_id,)
            )
            await db.commit()
            return cursor.rowcount > 0

    async def purge_expired(self, now: datetime) -> int:
        async with self.acquire() as db:
            cursor = await db.execute(
                "DELETE FROM images WHERE expiry_date <= ?", (format_timestamp(now),)
            )
            await db.commit()
            return cursor.rowcount

    async def applied_migrations(self) -> set[str]:
        async with self.acquire() as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS _migrations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
            """)
            await db.commit()
            cursor = await db.execute("SELECT name FROM _migrations")
            return {row[0] for row in await cursor.fetchall()}

    async def apply_migration(self, name: str, statements: Sequence[str]) -> None:
        async with self.acquire() as db:
            try:
                for statement in statements:
                    await db.execute(statement)
                await db.execute("INSERT INTO _migrations (name) VALUES (?)", (name,))
            except aiosqlite.Error:
                await db.rollback()
                raise
            await db.commit()
