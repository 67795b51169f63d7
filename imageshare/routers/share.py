"""Share routes: public image view by share id, and delete by share id."""

import logging

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from imageshare.config import Settings
from imageshare.dependencies import get_app_settings, get_store
from imageshare.exceptions import ImageNotFound
from imageshare.models.image import ErrorResponse, SuccessResponse
from imageshare.services import image_service
from imageshare.storage.base import ImageStore

logger = logging.getLogger(__name__)

# Public image view; always mounted at the root
router = APIRouter(tags=["share"])

# Management routes; mounted under the configured API prefix
api_router = APIRouter(tags=["share"])


@router.get("/share/{share_id}")
async def view_shared_image(
    share_id: str,
    store: ImageStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    """Serve the raw image bytes while the share is unexpired."""
    try:
        image = await image_service.get_shared_image(store, share_id)
    except Exception:
        logger.exception("Share error for %s", share_id)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(message="Server error").model_dump(),
        )

    if image is None:
        raise ImageNotFound("Image not found or expired")

    return Response(
        content=image["image_data"],
        media_type=image["mimetype"],
        headers={"Cache-Control": f"public, max-age={settings.share_cache_max_age}"},
    )


@api_router.delete("/delete/{share_id}", response_model=SuccessResponse)
async def delete_shared_image(
    share_id: str,
    store: ImageStore = Depends(get_store),
):
    """Delete an image by share id. Expired images can still be deleted."""
    try:
        deleted = await image_service.delete_image(store, share_id)
    except Exception:
        logger.exception("Delete error for %s", share_id)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(message="Delete failed").model_dump(),
        )

    if not deleted:
        raise ImageNotFound("Image not found")
    return SuccessResponse()
