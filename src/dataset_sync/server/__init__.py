"""HTTP hub server for dataset-sync."""

from dataset_sync.server.app import create_app

__all__ = ["create_app"]
