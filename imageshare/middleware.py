"""Origin allow-list enforcement.

Starlette's ``CORSMiddleware`` only decides which CORS headers to send; a
request from a foreign origin still reaches the route. This middleware runs
in front of it and refuses such requests outright.
"""

import logging

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from imageshare.exceptions import ImageTooLarge, OriginNotAllowed
from imageshare.models.image import ErrorResponse

logger = logging.getLogger(__name__)


class OriginPolicyMiddleware:
    def __init__(self, app: ASGIApp, allowed_origins: list[str]) -> None:
        self.app = app
        self.allowed_origins = set(allowed_origins)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        origin = Headers(scope=scope).get("origin")
        # Requests without an Origin (curl, mobile apps, same-origin GETs) pass
        if origin is None or origin in self.allowed_origins:
            await self.app(scope, receive, send)
            return

        logger.warning("Rejected %s %s from origin %s", scope["method"], scope["path"], origin)
        error = OriginNotAllowed(origin)
        response = JSONResponse(
            status_code=error.status_code,
            content=ErrorResponse(message=error.message).model_dump(),
        )
        await response(scope, receive, send)


# Room for the multipart boundaries and part headers around the file itself
MULTIPART_OVERHEAD = 64 * 1024


class UploadSizeLimitMiddleware:
    """Refuse upload requests whose declared body is over the limit.

    The check uses ``Content-Length`` so the body is never read; requests
    without one fall through to the size check in the upload route.
    """

    def __init__(self, app: ASGIApp, upload_path: str, max_upload_bytes: int) -> None:
        self.app = app
        self.upload_path = upload_path
        self.max_body_bytes = max_upload_bytes + MULTIPART_OVERHEAD

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] != "POST" or scope["path"] != self.upload_path:
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length", "")
        if not content_length.isdigit() or int(content_length) <= self.max_body_bytes:
            await self.app(scope, receive, send)
            return

        logger.warning("Rejected upload of %s bytes before reading it", content_length)
        error = ImageTooLarge()
        response = JSONResponse(
            status_code=error.status_code,
            content=ErrorResponse(message=error.message).model_dump(),
        )
        await response(scope, receive, send)
