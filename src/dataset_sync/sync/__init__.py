"""Synchronization of local datasets with the remote store."""

from dataset_sync.sync.callback import CallbackDispatcher, SyncCallback
from dataset_sync.sync.client import DatasetClient
from dataset_sync.sync.connectivity import (
    CancellationToken,
    ConnectivityMonitor,
    HttpConnectivityMonitor,
    PendingSync,
    StaticConnectivityMonitor,
    Subscription,
)
from dataset_sync.sync.dataset import Dataset
from dataset_sync.sync.errors import (
    DataConflictError,
    DatasetSyncError,
    DataStorageError,
    NetworkUnavailableError,
    RetriesExhaustedError,
    SyncCancelledError,
)
from dataset_sync.sync.protocol import DatasetUpdates, SyncConflict
from dataset_sync.sync.sync_engine import DEFAULT_MAX_RETRY, SyncEngine, SyncResult

__all__ = [
    "DEFAULT_MAX_RETRY",
    "CallbackDispatcher",
    "CancellationToken",
    "ConnectivityMonitor",
    "DataConflictError",
    "DataStorageError",
    "Dataset",
    "DatasetClient",
    "DatasetSyncError",
    "DatasetUpdates",
    "HttpConnectivityMonitor",
    "NetworkUnavailableError",
    "PendingSync",
    "RetriesExhaustedError",
    "StaticConnectivityMonitor",
    "Subscription",
    "SyncCallback",
    "SyncCancelledError",
    "SyncConflict",
    "SyncEngine",
    "SyncResult",
]
