"""dataset-sync - key/value datasets kept in sync with a remote hub.

Each identity owns named datasets of string records. Reads and writes go to
a local store; ``Dataset.synchronize`` reconciles the local copy with the
remote store in the background and reports the outcome through a callback.
"""

from dataset_sync.core.dataset_metadata import DatasetMetadata
from dataset_sync.core.record import Record
from dataset_sync.storage import (
    HttpRemoteStorage,
    InMemoryLocalStorage,
    InMemoryRemoteStorage,
    LocalStorage,
    RemoteDataStorage,
    SQLiteLocalStorage,
)
from dataset_sync.sync import (
    CancellationToken,
    ConnectivityMonitor,
    DataConflictError,
    Dataset,
    DatasetClient,
    DatasetSyncError,
    DataStorageError,
    NetworkUnavailableError,
    RetriesExhaustedError,
    StaticConnectivityMonitor,
    SyncCallback,
    SyncCancelledError,
    SyncConflict,
    SyncResult,
)

__version__ = "0.3.0"

__all__ = [
    "CancellationToken",
    "ConnectivityMonitor",
    "DataConflictError",
    "DataStorageError",
    "Dataset",
    "DatasetClient",
    "DatasetMetadata",
    "DatasetSyncError",
    "HttpRemoteStorage",
    "InMemoryLocalStorage",
    "InMemoryRemoteStorage",
    "LocalStorage",
    "NetworkUnavailableError",
    "Record",
    "RemoteDataStorage",
    "RetriesExhaustedError",
    "SQLiteLocalStorage",
    "StaticConnectivityMonitor",
    "SyncCallback",
    "SyncCancelledError",
    "SyncConflict",
    "SyncResult",
    "__version__",
]
