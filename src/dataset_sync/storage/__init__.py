"""Local and remote storage backends for dataset-sync."""

from dataset_sync.storage.base import LocalStorage
from dataset_sync.storage.memory_store import InMemoryLocalStorage
from dataset_sync.storage.remote_base import RemoteDataStorage
from dataset_sync.storage.remote_http import HttpRemoteStorage
from dataset_sync.storage.remote_memory import InMemoryRemoteStorage
from dataset_sync.storage.sqlite_store import SQLiteLocalStorage

__all__ = [
    "HttpRemoteStorage",
    "InMemoryLocalStorage",
    "InMemoryRemoteStorage",
    "LocalStorage",
    "RemoteDataStorage",
    "SQLiteLocalStorage",
]
