"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order

For local development:
    uvicorn kbvideo.main:app --reload

For production:
    gunicorn kbvideo.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .api.dependencies import get_storage_backend
from .api.middleware import RequestLoggingMiddleware, UploadSizeLimitMiddleware
from .api.routes import health, videos
from .config.settings import get_settings
from .core.videos.errors import VideoServiceError
from .core.videos.urls import LOCAL_UPLOADS_PREFIX

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Resolves the storage backend once, makes sure the upload directory
    exists and reports missing configuration.
    """
    # Startup
    settings = get_settings()
    backend = get_storage_backend()
    backend.upload_dir.mkdir(parents=True, exist_ok=True)

    logger.info(
        "Knowledge base video API starting",
        extra={
            "version": __version__,
            "storage_backend": backend.kind.value,
            "upload_dir": str(backend.upload_dir),
            "mock_mode": {"snowflake": settings.snowflake_mock_mode},
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    # Shutdown
    logger.info("Knowledge base video API shutting down")


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as {"error": message}."""

    @app.exception_handler(VideoServiceError)
    async def video_error_handler(request: Request, exc: VideoServiceError):
        if exc.status_code >= 500:
            logger.error(
                "Video request failed",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "error": exc.message,
                    "cause": str(exc.__cause__) if exc.__cause__ else None,
                }
            )
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        response = error_response(exc.status_code, message)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return error_response(400, message)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all exception handler.

        We log the full error server-side but return a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )
        return error_response(500, "Unexpected server error")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        description="""
        Video storage for the knowledge base.

        Videos are attached to subtopics (category -> topic -> subtopic) and
        stored either on the local filesystem or in Cloudflare R2, depending
        on configuration.

        ## Authentication

        Upload, list, reassign and delete require `Authorization: Bearer <token>`.
        Fetching a video by id or by subtopic is public.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Innermost, so oversized bodies are cut off before form parsing
    app.add_middleware(
        UploadSizeLimitMiddleware,
        max_upload_size_bytes=settings.max_upload_size_bytes,
    )
    app.add_middleware(RequestLoggingMiddleware)

    # CORS middleware
    # Configure allowed origins via CORS_ORIGINS environment variable
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.cors_origins_list != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        videos.router,
        prefix="/api/videos",
        tags=["Videos"],
    )

    # Locally stored videos
    app.mount(
        LOCAL_UPLOADS_PREFIX,
        StaticFiles(directory=Path(settings.upload_dir), check_dir=False),
        name="uploads",
    )

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "Knowledge Base Video API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": __version__,
        }
    )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "kbvideo.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
