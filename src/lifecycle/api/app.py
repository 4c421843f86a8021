"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from lifecycle.api.dependencies.services import ServiceContainer
from lifecycle.api.middleware.correlation import CorrelationIdMiddleware
from lifecycle.api.routes import attempt_routes, health_routes
from lifecycle.config import get_settings, Settings


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    container = ServiceContainer.get_instance()
    settings = container.settings
    logger.info(
        "application_starting",
        environment=settings.environment.value,
        runtime_backend=settings.runtime.backend.value,
        container=settings.runtime.container_name,
    )

    yield

    logger.info(
        "application_shutting_down",
        active_attempts=container.coordinator.active_attempt_count,
    )
    # In-flight attempts finish (or time out) before the process exits.
    await container.shutdown()
    logger.info("application_shutdown_complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="Deployment Lifecycle Coordinator",
        description="Drives container deployments through ordered lifecycle phases "
        "with health validation and automatic rollback",
        version="1.0.0",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(CorrelationIdMiddleware)

    # Routes
    app.include_router(health_routes.router)
    app.include_router(attempt_routes.router, prefix=settings.api_prefix)

    return app
