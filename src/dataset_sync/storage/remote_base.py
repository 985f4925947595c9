"""Abstract base class for the remote (authoritative) dataset store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dataset_sync.core.dataset_metadata import DatasetMetadata
    from dataset_sync.core.record import Record
    from dataset_sync.sync.protocol import DatasetUpdates


class RemoteDataStorage(ABC):
    """
    Abstract interface for the remote store of one identity.

    Every failure is raised as ``DataStorageError``; a push rejected
    because another writer updated the dataset first is raised as its
    subclass ``DataConflictError``.
    """

    @property
    @abstractmethod
    def identity_id(self) -> str:
        """Identity whose datasets this client reads and writes."""
        ...

    @abstractmethod
    async def list_updates(self, dataset_name: str, last_sync_count: int) -> DatasetUpdates:
        """
        List records changed remotely after ``last_sync_count``.

        Args:
            dataset_name: Dataset to read
            last_sync_count: Local sync marker (0 fetches everything)

        Returns:
            The changes, the current remote sync count and a session token
            for the push that follows

        Raises:
            DataStorageError: On transport or service failure
        """
        ...

    @abstractmethod
    async def put_records(
        self, dataset_name: str, records: list[Record], sync_session_token: str
    ) -> list[Record]:
        """
        Push locally modified records.

        Args:
            dataset_name: Dataset to write
            records: Modified records, tombstones included
            sync_session_token: Token from the preceding ``list_updates``

        Returns:
            The written records carrying their authoritative sync counts

        Raises:
            DataConflictError: If the dataset changed since the token was issued
            DataStorageError: On any other failure
        """
        ...

    @abstractmethod
    async def delete_dataset(self, dataset_name: str) -> None:
        """
        Delete a dataset remotely.

        Raises:
            DataStorageError: On transport or service failure
        """
        ...

    @abstractmethod
    async def get_datasets(self) -> list[DatasetMetadata]:
        """List metadata of the identity's remote datasets."""
        ...
