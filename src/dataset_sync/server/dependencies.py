"""Shared dependencies for API routes."""

from __future__ import annotations

from fastapi import HTTPException, Request

from dataset_sync.storage.remote_memory import RemoteHub


async def get_hub(request: Request) -> RemoteHub:
    """Get the hub held by the running application."""
    hub: RemoteHub | None = getattr(request.app.state, "hub", None)
    if hub is None:
        raise HTTPException(status_code=503, detail="Hub not initialized")
    return hub
