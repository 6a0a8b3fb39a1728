"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.router import api_router
from app.config import settings
from app.core.logging import setup_logging
from app.services.optimizer.service import OptimizerService

logger = logging.getLogger(__name__)


def configure_optimizer(app: FastAPI, service: OptimizerService) -> None:
    """Attach the optimizer service the routes operate on."""
    app.state.optimizer_service = service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging()

    logger.info(
        "Starting WP Optimizer",
        extra={
            "environment": settings.environment,
            "version": settings.app_version,
            "ai_provider": settings.ai_provider,
            "ai_model": settings.get_ai_model(),
            "wordpress_configured": bool(settings.wordpress_url),
        },
    )
    if getattr(app.state, "optimizer_service", None) is None:
        logger.warning("No optimizer service configured; optimizer routes will return 503")

    yield

    service = getattr(app.state, "optimizer_service", None)
    if service is not None:
        service.request_cancellation("Server shutting down")
        service.abort_bulk()
    logger.info("Shutting down WP Optimizer")


def create_app(service: OptimizerService | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "WordPress content optimization service: single-item phase "
            "orchestration with live progress and bounded bulk batches"
        ),
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.optimizer_service = None
    if service is not None:
        configure_optimizer(app, service)

    # CORS middleware
    app.add_middleware(
        cast(Any, CORSMiddleware),
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API router
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get(
        "/health",
        summary="Health check",
        description="Return service health status and backend version information.",
    )
    async def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        optimizer = app.state.optimizer_service
        return {
            "status": "healthy",
            "version": settings.app_version,
            "optimizer_configured": optimizer is not None,
            "job_running": bool(optimizer and optimizer.is_job_running),
            "bulk_running": bool(optimizer and optimizer.bulk.is_running),
        }

    return app


app = create_app()
