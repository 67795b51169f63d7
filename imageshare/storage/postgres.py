"""PostgreSQL image store backed by an asyncpg connection pool."""

import logging
import ssl
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from imageshare.config import INSECURE_SSL_MODES, dsn_sslmode
from imageshare.exceptions import DatabaseUnavailable
from imageshare.storage.base import ImageStore

logger = logging.getLogger(__name__)


def prepare_dsn(url: str) -> str:
    """Append ``sslmode=require`` unless the URL already names an sslmode."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    if dsn_sslmode(url) is None:
        query.append(("sslmode", "require"))
    return urlunsplit(parts._replace(query=urlencode(query)))


def mask_dsn(dsn: str) -> str:
    """Hide the password in a DSN so it can be logged."""
    parts = urlsplit(dsn)
    if parts.password is None:
        return dsn
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit(parts._replace(netloc=netloc))


def create_ssl_context(
    sslmode: str | None,
    verify_cert: bool = True,
    ca_file: Path | None = None,
) -> ssl.SSLContext | None:
    """Build the TLS context for the pool.

    Returns None for modes that do not require TLS, in which case asyncpg
    follows the sslmode in the DSN.
    """
    if sslmode in INSECURE_SSL_MODES:
        return None

    ctx = ssl.create_default_context(cafile=str(ca_file) if ca_file else None)
    if not verify_cert:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    elif sslmode == "verify-ca":
        # Chain is verified, host name is not
        ctx.check_hostname = False
    return ctx


class PostgresImageStore(ImageStore):
    dialect = "postgresql"

    def __init__(
        self,
        dsn: str,
        verify_cert: bool = True,
        ca_file: Path | None = None,
    ):
        self.dsn = prepare_dsn(dsn)
        self.verify_cert = verify_cert
        self.ca_file = ca_file
        self._pool: asyncpg.Pool | None = None

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        if self._pool is not None:
            return

        ssl_context = create_ssl_context(
            dsn_sslmode(self.dsn),
            verify_cert=self.verify_cert,
            ca_file=self.ca_file,
        )
        try:
            # Pool sizing is left at the driver defaults
            self._pool = await asyncpg.create_pool(dsn=self.dsn, ssl=ssl_context)
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            logger.error("Database connection error for %s: %s", mask_dsn(self.dsn), e)
            raise DatabaseUnavailable(str(e)) from e
        logger.info("Database pool created for %s", mask_dsn(self.dsn))

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[asyncpg.Connection, None]:
        """Borrow a pooled connection for one statement."""
        if self._pool is None:
            raise DatabaseUnavailable("Connection pool not initialized")
        async with self._pool.acquire() as conn:
            yield conn

    async def ping(self) -> None:
        async with self.acquire() as conn:
            await conn.fetchval("SELECT NOW()")

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
        async with self.acquire() as conn:
            return await conn.fetchval(
                """INSERT INTO images (share_id, original_name, mimetype, size, image_data, expiry_date)
                   VALUES ($1, $2, $3, $4, $5, $6)
                   RETURNING id""",
                share_id, original_name, mimetype, size, image_data, expiry_date,
            )

    async def get_active_image(self, share_id: str, now: datetime) -> dict | None:
        async with self.acquire() as conn:
            row = await conn.fetchrow(
                """SELECT image_data, mimetype, expiry_date
                   FROM images
                   WHERE share_id = $1 AND expiry_date > $2""",
                share_id, now,
            )
        return dict(row) if row is not None else None

    async def delete_image(self, share_id: str) -> bool:
        async with self.acquire() as conn:
            deleted_id = await conn.fetchval(
                "DELETE FROM images WHERE share_id = $1 RETURNING id", share_id
            )
        return deleted_id is not None

    async def purge_expired(self, now: datetime) -> int:
        async with self.acquire() as conn:
            status = await conn.execute(
                "DELETE FROM images WHERE expiry_date <= $1", now
            )
        # Command tag looks like "DELETE 3"
        return int(status.split()[-1])

    async def applied_migrations(self) -> set[str]:
        async with self.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS _migrations (
                    id         SERIAL PRIMARY KEY,
                    name       TEXT NOT NULL UNIQUE,
                    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
            """)
            rows = await conn.fetch("SELECT name FROM _migrations")
        return {row["name"] for row in rows}

    async def apply_migration(self, name: str, statements: Sequence[str]) -> None:
        async with self.acquire() as conn:
            async with conn.transaction():
                for statement in statements:
                    await conn.execute(statement)
                await conn.execute("INSERT INTO _migrations (name) VALUES ($1)", name)
