"""API routes."""

from dataset_sync.server.routes.hub import router as hub_router

__all__ = ["hub_router"]
