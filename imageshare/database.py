"""Datastore construction and startup initialization."""

import logging

from imageshare.config import Settings
from imageshare.migrations.runner import run_migrations
from imageshare.storage.base import ImageStore
from imageshare.storage.postgres import PostgresImageStore
from imageshare.storage.sqlite import SqliteImageStore, sqlite_path_from_url

logger = logging.getLogger(__name__)


def create_store(settings: Settings) -> ImageStore:
    """Build the image store named by ``settings.database_url``."""
    if settings.database_backend == "sqlite":
        return SqliteImageStore(sqlite_path_from_url(settings.database_url))
    return PostgresImageStore(
        settings.database_url,
        verify_cert=settings.ssl_verify_cert,
        ca_file=settings.ssl_ca_file,
    )


async def init_db(store: ImageStore) -> None:
    """Open the store, probe it once and bring the schema up to date.

    The store is closed again if the ping or a migration fails.
    """
    await store.connect()
    try:
        try:
            await store.ping()
        except Exception as e:
            logger.error("Database connection failed: %s", e)
            raise
        logger.info("Database connection verified")
        await run_migrations(store)
    except Exception:
        await store.close()
        raise
