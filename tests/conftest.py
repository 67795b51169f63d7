"""Shared test fixtures for all test modules."""

import os
import tempfile

import httpx
import pytest

# ── Environment overrides (must be set before importing imageshare modules) ──
_tmp = tempfile.mkdtemp(prefix="imageshare_pytest_")
os.environ["IMAGESHARE_DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp, 'default.db')}"
os.environ.pop("IMAGESHARE_ENVIRONMENT", None)
os.environ.pop("IMAGESHARE_FRONTEND_URL", None)
os.environ.pop("IMAGESHARE_API_PREFIX", None)

from imageshare.config import Settings  # noqa: E402
from imageshare.database import init_db  # noqa: E402
from imageshare.main import create_app  # noqa: E402
from imageshare.storage.sqlite import SqliteImageStore  # noqa: E402

FRONTEND_URL = "https://share.example.com"

# Smallest buffer that claims to be a JPEG (SOI marker + padding)
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 6


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "database_url": f"sqlite:///{tmp_path / 'images.db'}",
        "environment": "development",
        "frontend_url": FRONTEND_URL,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
async def store(settings):
    """A migrated SQLite store in a per-test temporary directory."""
    image_store = SqliteImageStore(str(tmp_db_path(settings)))
    await init_db(image_store)
    yield image_store
    await image_store.close()


@pytest.fixture
def app(settings, store):
    return create_app(settings, store=store)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


def tmp_db_path(settings: Settings) -> str:
    return settings.database_url[len("sqlite:///"):]


async def count_images(image_store: SqliteImageStore) -> int:
    async with image_store.acquire() as db:
        cursor = await db.execute("SELECT COUNT(*) FROM images")
        return (await cursor.fetchone())[0]


async def image_exists(image_store: SqliteImageStore, share_id: str) -> bool:
    async with image_store.acquire() as db:
        cursor = await db.execute("SELECT 1 FROM images WHERE share_id = ?", (share_id,))
        return await cursor.fetchone() is not None
