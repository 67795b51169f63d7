"""Database migration runner.

Uses a simple version tracking table to run migrations in order.
Each migration is a Python module with a ``STATEMENTS`` dict mapping a store
dialect (``postgresql`` or ``sqlite``) to the SQL to execute.
"""

import importlib
import logging

from imageshare.storage.base import ImageStore

logger = logging.getLogger(__name__)

# List of migration modules in order
MIGRATIONS = [
    "imageshare.migrations.m001_initial",
    "imageshare.migrations.m002_expiry_index",
]


async def run_migrations(store: ImageStore) -> list[str]:
    """Run any pending migrations. Returns the names that were applied."""
    applied = await store.applied_migrations()

    newly_applied = []
    for migration_name in MIGRATIONS:
        if migration_name in applied:
            continue

        module = importlib.import_module(migration_name)
        await store.apply_migration(migration_name, module.STATEMENTS[store.dialect])
        logger.info("Applied migration %s", migration_name)
        newly_applied.append(migration_name)

    return newly_applied
