"""Image share service: store, look up and delete shared images."""

import logging
import secrets
from datetime import datetime, timedelta, timezone

from imageshare.exceptions import ImageSaveFailed, ImageTooLarge, InvalidImageType
from imageshare.storage.base import ImageStore

logger = logging.getLogger(__name__)

# 16 random bytes -> 32 hex characters
SHARE_ID_BYTES = 16
DEFAULT_TTL_DAYS = 30


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_share_id() -> str:
    """Unguessable public lookup key for a shared image."""
    return secrets.token_hex(SHARE_ID_BYTES)


def check_content_type(content_type: str | None) -> str:
    """Reject anything whose declared MIME type is not ``image/*``."""
    if not content_type or not content_type.startswith("image/"):
        raise InvalidImageType()
    return content_type


def check_size(size: int, max_bytes: int) -> None:
    if size > max_bytes:
        raise ImageTooLarge()


async def create_image(
    store: ImageStore,
    *,
    filename: str,
    mimetype: str,
    data: bytes,
    ttl_days: int = DEFAULT_TTL_DAYS,
    now: datetime | None = None,
) -> str:
    """Persist an uploaded image and return its share id.

    The record expires ``ttl_days`` after ``now``.
    """
    share_id = generate_share_id()
    expiry_date = (now or utcnow()) + timedelta(days=ttl_days)

    image_id = await store.insert_image(
        share_id=share_id,
        original_name=filename,
        mimetype=mimetype,
        size=len(data),
        image_data=data,
        expiry_date=expiry_date,
    )
    if image_id is None:
        raise ImageSaveFailed()

    logger.info(
        "Stored image %s (%d bytes, %s), expires %s",
        share_id, len(data), mimetype, expiry_date.isoformat(),
    )
    return share_id


async def get_shared_image(
    store: ImageStore,
    share_id: str,
    now: datetime | None = None,
) -> dict | None:
    """Get an image by share id. Returns None if unknown or expired."""
    return await store.get_active_image(share_id, now or utcnow())


async def delete_image(store: ImageStore, share_id: str) -> bool:
    """Delete an image by share id, whether or not it has expired."""
    deleted = await store.delete_image(share_id)
    if deleted:
        logger.info("Deleted image %s", share_id)
    return deleted


async def purge_expired_images(store: ImageStore, now: datetime | None = None) -> int:
    """Remove every expired row. Reads already exclude them; this reclaims space."""
    removed = await store.purge_expired(now or utcnow())
    logger.info("Purged %d expired image(s)", removed)
    return removed
