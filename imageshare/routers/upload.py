"""Upload route: accept one image and hand back its share id."""

import logging

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse

from imageshare.config import Settings
from imageshare.dependencies import get_app_settings, get_store
from imageshare.exceptions import ImageShareError, NoImageUploaded
from imageshare.models.image import ErrorResponse, UploadResponse
from imageshare.services import image_service
from imageshare.storage.base import ImageStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["upload"])


@router.post("/upload", response_model=UploadResponse)
async def upload_image(
    image: UploadFile | None = File(default=None),
    store: ImageStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    """Store one image from multipart field ``image``.

    Returns ``{"success": true, "shareId": ...}``.
    """
    if image is None:
        raise NoImageUploaded()

    mimetype = image_service.check_content_type(image.content_type)

    # Read at most one byte past the limit; that is enough to reject it
    max_bytes = settings.max_upload_size_bytes
    if image.size is not None:
        image_service.check_size(image.size, max_bytes)
    data = await image.read(max_bytes + 1)
    image_service.check_size(len(data), max_bytes)

    try:
        share_id = await image_service.create_image(
            store,
            filename=image.filename or "unnamed",
            mimetype=mimetype,
            data=data,
            ttl_days=settings.share_ttl_days,
        )
    except ImageShareError:
        raise
    except Exception as e:
        logger.exception("Upload error")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(message=str(e) or "Upload failed").model_dump(),
        )

    return UploadResponse(share_id=share_id)
