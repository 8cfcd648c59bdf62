"""FastAPI application for the prwatch API.

This module creates and configures the main FastAPI application,
including routers, middleware, and lifecycle events.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from core.logging import configure_logging

from .config import get_settings
from .dependencies import init_dependencies, shutdown_dependencies
from .middleware import RequestLoggingMiddleware, TimingMiddleware
from .routers import health_router, reviews_router, webhook_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Configures logging and builds the webhook pipeline on startup,
    and closes HTTP clients on shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup is complete.
    """
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("api_starting", version=settings.app_version)

    try:
        await init_dependencies(settings)
        logger.info("dependencies_initialized")
    except Exception as e:
        logger.error("dependency_initialization_failed", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("api_shutting_down")
    await shutdown_dependencies()
    logger.info("shutdown_complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="prwatch API",
        description=(
            "Pull request change detection and automated review. Receives "
            "GitHub webhooks and exposes the reviews they produce."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Add custom middleware
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(TimingMiddleware)

    # Include routers
    # Health routes are at root level (/health)
    app.include_router(health_router)

    # API routes are prefixed with /api
    app.include_router(webhook_router, prefix=settings.api_prefix)
    app.include_router(reviews_router, prefix=settings.api_prefix)

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Root endpoint returning API information."""
        return JSONResponse(
            content={
                "name": settings.app_name,
                "version": settings.app_version,
                "docs": "/docs",
                "health": "/health",
            }
        )

    return app


# Create the application instance
app = create_app()
