"""ImageShare FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from imageshare.config import Settings, get_settings
from imageshare.database import create_store, init_db
from imageshare.exceptions import ImageShareError, NoImageUploaded
from imageshare.logging_config import configure_logging
from imageshare.middleware import OriginPolicyMiddleware, UploadSizeLimitMiddleware
from imageshare.models.image import ErrorResponse, HealthResponse
from imageshare.routers import share, upload
from imageshare.storage.base import ImageStore

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(
    settings: Settings | None = None,
    store: ImageStore | None = None,
) -> FastAPI:
    """Build the application around an explicitly constructed image store.

    Settings are resolved from the environment when not given. The store is
    opened during startup and closed on shutdown.
    """
    settings = settings or get_settings()
    store = store or create_store(settings)
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown lifecycle."""
        # Startup
        await init_db(store)
        if not settings.is_production:
            logger.warning(
                "Running in development mode (IMAGESHARE_ENVIRONMENT=development); "
                "do not expose this instance publicly."
            )
        logger.info("ImageShare %s ready, allowed origins: %s",
                    VERSION, ", ".join(settings.allowed_origins))
        yield
        # Shutdown
        await store.close()

    app = FastAPI(
        title="ImageShare",
        description="Upload an image, share it by link until it expires",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store

    # Oversized uploads are refused from Content-Length before the body is read
    app.add_middleware(
        UploadSizeLimitMiddleware,
        upload_path=f"{settings.api_prefix}/upload",
        max_upload_bytes=settings.max_upload_size_bytes,
    )
    # CORS headers for the allow-listed origins, credentials included
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Added last so it runs first: foreign origins never reach a route
    app.add_middleware(OriginPolicyMiddleware, allowed_origins=settings.allowed_origins)

    _register_exception_handlers(app)

    app.include_router(upload.router, prefix=settings.api_prefix)
    app.include_router(share.api_router, prefix=settings.api_prefix)
    app.include_router(share.router)

    # Health check (stateless, no database round-trip)
    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse()

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ImageShareError)
    async def image_share_error_handler(request: Request, exc: ImageShareError) -> JSONResponse:
        logger.info("%s %s -> %d %s", request.method, request.url.path,
                    exc.status_code, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(message=exc.message).model_dump(),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        # A plain form value under "image" carries no file
        if any(tuple(error.get("loc", ()))[-1:] == ("image",) for error in errors):
            return await image_share_error_handler(request, NoImageUploaded())
        field = ".".join(str(part) for part in errors[0].get("loc", ())[1:]) if errors else ""
        message = f"Invalid value for {field}" if field else "Invalid request"
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(message=message).model_dump(),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path,
                     exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(message="Internal server error").model_dump(),
        )
