"""Datastore interface shared by the PostgreSQL and SQLite backends."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime


class ImageStore(ABC):
    """Access to the ``images`` table.

    Every method runs at most one data statement on a connection that is
    acquired for the duration of that statement and released on every exit
    path. Values are always bound as parameters.
    """

    #: Key into each migration module's ``STATEMENTS`` mapping.
    dialect: str

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying pool or connection."""

    @abstractmethod
    async def close(self) -> None:
        """Release the pool or connection. Safe to call twice."""

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    async def ping(self) -> None:
        """Run a trivial query; raises if the database is unreachable."""

    @abstractmethod
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
        """Insert one record and return its id."""

    @abstractmethod
    async def get_active_image(self, share_id: str, now: datetime) -> dict | None:
        """Return ``image_data``, ``mimetype`` and ``expiry_date`` of an unexpired record."""

    @abstractmethod
    async def delete_image(self, share_id: str) -> bool:
        """Delete regardless of expiry. True when a row was removed."""

    @abstractmethod
    async def purge_expired(self, now: datetime) -> int:
        """Delete every record with ``expiry_date <= now``; returns the count."""

    @abstractmethod
    async def applied_migrations(self) -> set[str]:
        """Names of migrations already applied (creates the tracking table)."""

    @abstractmethod
    async def apply_migration(self, name: str, statements: Sequence[str]) -> None:
        """Run ``statements`` and record ``name`` atomically."""
