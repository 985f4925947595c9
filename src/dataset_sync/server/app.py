"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from dataset_sync import __version__
from dataset_sync.server.models import HealthResponse
from dataset_sync.server.routes import hub_router
from dataset_sync.storage.remote_memory import RemoteHub

logger = logging.getLogger(__name__)


def create_app(
    hub: RemoteHub | None = None,
    title: str = "dataset-sync hub",
    description: str = "Authoritative store for synchronized key/value datasets",
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        hub: Hub to serve (default: a fresh in-memory hub per app)
        title: API title
        description: API description

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        app.state.hub = hub if hub is not None else RemoteHub()
        logger.info("Hub server started")
        yield
        logger.info("Hub server stopped")

    app = FastAPI(
        title=title,
        description=description,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.include_router(hub_router)

    # Health check endpoint, also the default connectivity probe
    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", version=__version__)

    @app.get("/", tags=["health"])
    async def root() -> dict[str, str]:
        """Root endpoint with API info."""
        return {
            "name": title,
            "description": description,
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app
