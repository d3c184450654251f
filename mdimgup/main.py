"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because
tests create the app with their own settings and service overrides.

For local development:
    uvicorn mdimgup.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import health, history, profiles, uploads
from .config.settings import get_settings

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Logs startup configuration problems; services themselves are built
    lazily on the first request that needs them.
    """
    # Startup
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info(
        "mdimgup API starting",
        extra={
            "version": settings.api_version,
            "data_dir": str(settings.data_dir),
            "mock_mode": {"storage": settings.storage_mock_mode},
        }
    )

    # Validate configuration
    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    # Shutdown
    logger.info("mdimgup API shutting down")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Upload the images of Markdown documents to object storage.

        ## Features

        - Named storage profiles for Cloudflare R2, AWS S3 and S3-compatible services
        - Per-workspace or global active profile
        - Image width clamping, content-hash caching and configurable object naming
        - Upload history with undo (optionally deleting the remote object)

        ## Authentication

        All endpoints except health checks require an API key provided
        in the `X-API-Key` header.

        ## Workflow

        1. **Create a profile**: `POST /api/v1/profiles` (with credentials)
        2. **Activate it**: `POST /api/v1/profiles/{profile_id}/activate`
        3. **Upload a document's images**: `POST /api/v1/uploads/document`
        4. **Review or undo**: `GET /api/v1/history`, `POST /api/v1/history/{record_id}/undo`
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    # Configure allowed origins via MDIMGUP_CORS_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        profiles.router,
        prefix="/api/v1/profiles",
        tags=["Profiles"],
    )

    app.include_router(
        uploads.router,
        prefix="/api/v1/uploads",
        tags=["Uploads"],
    )

    app.include_router(
        history.router,
        prefix="/api/v1/history",
        tags=["History"],
    )

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - points at the docs."""
        return {
            "message": "mdimgup API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
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

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# Create the application instance
# This is what uvicorn will import
app = create_app()


# For debugging/development
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "mdimgup.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
