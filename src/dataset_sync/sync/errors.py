"""Error kinds surfaced by synchronization."""

from __future__ import annotations


class DatasetSyncError(Exception):
    """Base class for every error reported through a sync callback."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def cause(self) -> BaseException | None:
        """The underlying exception, if this error wraps one."""
        return self.__cause__


class NetworkUnavailableError(DatasetSyncError):
    """Connectivity was unavailable; no attempt was made."""


class DataStorageError(DatasetSyncError):
    """A local or remote storage operation failed."""


class DataConflictError(DataStorageError):
    """The remote rejected a push because another writer updated the dataset."""


class SyncCancelledError(DatasetSyncError):
    """A callback declined to continue the synchronization."""


class RetriesExhaustedError(DatasetSyncError):
    """The retry budget ran out before the dataset reconciled."""
