"""Tests for the SQLite image store, migrations and the image service."""

import re
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from conftest import JPEG_BYTES, count_images, image_exists
from imageshare.database import init_db
from imageshare.exceptions import DatabaseUnavailable, ImageSaveFailed, ImageTooLarge, InvalidImageType
from imageshare.migrations.runner import MIGRATIONS, run_migrations
from imageshare.services import image_service
from imageshare.storage.sqlite import (
    SqliteImageStore,
    format_timestamp,
    parse_timestamp,
    sqlite_path_from_url,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ── Migrations ───────────────────────────────────────────────────────────────


class TestMigrations:
    @pytest.mark.asyncio
    async def test_all_migrations_applied(self, store):
        assert await store.applied_migrations() == set(MIGRATIONS)

    @pytest.mark.asyncio
    async def test_rerun_is_noop(self, store):
        assert await run_migrations(store) == []

    @pytest.mark.asyncio
    async def test_images_table_and_index_exist(self, store):
        async with store.acquire() as db:
            cursor = await db.execute(
                "SELECT type, name FROM sqlite_master WHERE name IN ('images', 'idx_images_expiry_date')"
            )
            found = {row[1] for row in await cursor.fetchall()}
        assert found == {"images", "idx_images_expiry_date"}

    @pytest.mark.asyncio
    async def test_existing_images_table_is_adopted(self, tmp_path):
        image_store = SqliteImageStore(tmp_path / "legacy.db")
        await image_store.connect()
        try:
            async with image_store.acquire() as db:
                await db.execute(
                    """CREATE TABLE images (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        share_id TEXT NOT NULL UNIQUE,
                        original_name TEXT,
                        mimetype TEXT NOT NULL,
                        size INTEGER NOT NULL,
                        image_data BLOB NOT NULL,
                        expiry_date TEXT NOT NULL
                    )"""
                )
                await db.commit()
            assert await run_migrations(image_store) == MIGRATIONS
        finally:
            await image_store.close()


# ── Store ────────────────────────────────────────────────────────────────────


class TestSqliteImageStore:
    @pytest.mark.asyncio
    async def test_insert_and_fetch(self, store):
        image_id = await store.insert_image(
            share_id="a" * 32,
            original_name="cat.jpg",
            mimetype="image/jpeg",
            size=len(JPEG_BYTES),
            image_data=JPEG_BYTES,
            expiry_date=NOW + timedelta(days=30),
        )
        assert image_id is not None

        image = await store.get_active_image("a" * 32, NOW)
        assert image["image_data"] == JPEG_BYTES
        assert image["mimetype"] == "image/jpeg"
        assert image["expiry_date"] == NOW + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_expiry_is_strict(self, store):
        await store.insert_image(
            share_id="b" * 32, original_name="x.png", mimetype="image/png",
            size=1, image_data=b"x", expiry_date=NOW,
        )
        assert await store.get_active_image("b" * 32, NOW - timedelta(microseconds=1)) is not None
        assert await store.get_active_image("b" * 32, NOW) is None

    @pytest.mark.asyncio
    async def test_unknown_share_id(self, store):
        assert await store.get_active_image("0" * 32, NOW) is None

    @pytest.mark.asyncio
    async def test_duplicate_share_id_rejected(self, store):
        values = dict(
            share_id="c" * 32, original_name="x.png", mimetype="image/png",
            size=1, image_data=b"x", expiry_date=NOW,
        )
        await store.insert_image(**values)
        with pytest.raises(sqlite3.IntegrityError):
            await store.insert_image(**values)

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.insert_image(
            share_id="d" * 32, original_name="x.png", mimetype="image/png",
            size=1, image_data=b"x", expiry_date=NOW + timedelta(days=1),
        )
        assert await store.delete_image("d" * 32) is True
        assert await store.delete_image("d" * 32) is False

    @pytest.mark.asyncio
    async def test_purge_expired_keeps_live_rows(self, store):
        for share_id, expiry in [("e" * 32, NOW - timedelta(days=1)),
                                 ("f" * 32, NOW),
                                 ("1" * 32, NOW + timedelta(days=1))]:
            await store.insert_image(
                share_id=share_id, original_name="x.png", mimetype="image/png",
                size=1, image_data=b"x", expiry_date=expiry,
            )
        assert await store.purge_expired(NOW) == 2
        assert await count_images(store) == 1
        assert await image_exists(store, "1" * 32)

    @pytest.mark.asyncio
    async def test_not_connected_raises(self, tmp_path):
        image_store = SqliteImageStore(tmp_path / "closed.db")
        assert not image_store.is_connected
        with pytest.raises(DatabaseUnavailable):
            await image_store.ping()

    @pytest.mark.asyncio
    async def test_close_twice(self, tmp_path):
        image_store = SqliteImageStore(tmp_path / "twice.db")
        await image_store.connect()
        await image_store.close()
        await image_store.close()
        assert not image_store.is_connected


def test_timestamp_format_orders_lexicographically():
    earlier = format_timestamp(datetime(2026, 1, 1, 0, 0, 0, tzinfo=timezone.utc))
    later = format_timestamp(datetime(2026, 1, 1, 0, 0, 0, 1, tzinfo=timezone.utc))
    assert earlier < later
    assert len(earlier) == len(later)


def test_timestamp_converted_to_utc():
    plus_two = timezone(timedelta(hours=2))
    value = datetime(2026, 1, 1, 14, 0, 0, tzinfo=plus_two)
    assert parse_timestamp(format_timestamp(value)) == datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("url, path", [
    ("sqlite:///data/images.db", "data/images.db"),
    ("sqlite:////var/lib/images.db", "/var/lib/images.db"),
    ("sqlite:///", ":memory:"),
])
def test_sqlite_path_from_url(url, path):
    assert sqlite_path_from_url(url) == path


# ── Service ──────────────────────────────────────────────────────────────────


class TestImageService:
    def test_share_id_format(self):
        share_id = image_service.generate_share_id()
        assert re.fullmatch(r"[0-9a-f]{32}", share_id)

    def test_share_ids_do_not_collide(self):
        ids = {image_service.generate_share_id() for _ in range(1000)}
        assert len(ids) == 1000

    @pytest.mark.parametrize("content_type", ["image/jpeg", "image/png", "image/svg+xml"])
    def test_image_types_accepted(self, content_type):
        assert image_service.check_content_type(content_type) == content_type

    @pytest.mark.parametrize("content_type", [None, "", "text/plain", "application/pdf", "IMAGE/PNG"])
    def test_non_image_types_rejected(self, content_type):
        with pytest.raises(InvalidImageType):
            image_service.check_content_type(content_type)

    def test_size_limit_is_inclusive(self):
        image_service.check_size(100, 100)
        with pytest.raises(ImageTooLarge):
            image_service.check_size(101, 100)

    @pytest.mark.asyncio
    async def test_create_sets_expiry_thirty_days_out(self, store):
        share_id = await image_service.create_image(
            store, filename="cat.jpg", mimetype="image/jpeg", data=JPEG_BYTES, now=NOW,
        )
        image = await image_service.get_shared_image(store, share_id, now=NOW)
        assert image["expiry_date"] == NOW + timedelta(days=30)
        assert image["image_data"] == JPEG_BYTES

        # Still there one microsecond before expiry, gone at expiry
        almost = NOW + timedelta(days=30) - timedelta(microseconds=1)
        assert await image_service.get_shared_image(store, share_id, now=almost) is not None
        assert await image_service.get_shared_image(store, share_id, now=NOW + timedelta(days=30)) is None
        assert await image_exists(store, share_id)

    @pytest.mark.asyncio
    async def test_create_raises_when_no_id_returned(self, store, monkeypatch):
        async def no_id(**kwargs):
            return None

        monkeypatch.setattr(store, "insert_image", no_id)
        with pytest.raises(ImageSaveFailed):
            await image_service.create_image(
                store, filename="cat.jpg", mimetype="image/jpeg", data=JPEG_BYTES,
            )

    @pytest.mark.asyncio
    async def test_delete_ignores_expiry(self, store):
        share_id = await image_service.create_image(
            store, filename="old.png", mimetype="image/png", data=b"png",
            now=NOW - timedelta(days=60),
        )
        assert await image_service.get_shared_image(store, share_id, now=NOW) is None
        assert await image_service.delete_image(store, share_id) is True
        assert await image_service.delete_image(store, share_id) is False

    @pytest.mark.asyncio
    async def test_purge_expired_images(self, store):
        await image_service.create_image(
            store, filename="old.png", mimetype="image/png", data=b"png",
            now=NOW - timedelta(days=31),
        )
        fresh = await image_service.create_image(
            store, filename="new.png", mimetype="image/png", data=b"png", now=NOW,
        )
        assert await image_service.purge_expired_images(store, now=NOW) == 1
        assert await count_images(store) == 1
        assert await image_exists(store, fresh)


# ── Startup ──────────────────────────────────────────────────────────────────


class TestInitDb:
    @pytest.mark.asyncio
    async def test_failed_ping_closes_store(self, tmp_path, monkeypatch):
        image_store = SqliteImageStore(tmp_path / "ping.db")

        async def unreachable():
            raise DatabaseUnavailable("server went away")

        monkeypatch.setattr(image_store, "ping", unreachable)
        with pytest.raises(DatabaseUnavailable):
            await init_db(image_store)
        assert not image_store.is_connected

    @pytest.mark.asyncio
    async def test_failed_migration_closes_store(self, tmp_path, monkeypatch):
        image_store = SqliteImageStore(tmp_path / "migrate.db")

        async def broken(name, statements):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(image_store, "apply_migration", broken)
        with pytest.raises(sqlite3.OperationalError):
            await init_db(image_store)
        assert not image_store.is_connected

    @pytest.mark.asyncio
    async def test_success_leaves_store_open(self, tmp_path):
        image_store = SqliteImageStore(tmp_path / "ok.db")
        await init_db(image_store)
        try:
            assert image_store.is_connected
            assert await image_store.applied_migrations() == set(MIGRATIONS)
        finally:
            await image_store.close()
