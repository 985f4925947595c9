"""Abstract base class for local record storage backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dataset_sync.core.dataset_metadata import DatasetMetadata
    from dataset_sync.core.record import Record


class LocalStorage(ABC):
    """
    Abstract interface for the local record store.

    Records are keyed by (identity_id, dataset_name, key). Implementations
    must be safe to use from reconciliation tasks of different datasets at
    the same time; writers of one dataset are serialized by its handle.
    """

    async def initialize(self) -> None:  # noqa: B027
        """Open connections or create schema. No-op by default."""

    async def close(self) -> None:  # noqa: B027
        """Release resources. No-op by default."""

    # ========== Value Operations ==========

    @abstractmethod
    async def get_value(self, identity_id: str, dataset_name: str, key: str) -> str | None:
        """
        Get the value of a record.

        Returns:
            The value, or None if the record is missing or a tombstone
        """
        ...

    @abstractmethod
    async def put_value(
        self, identity_id: str, dataset_name: str, key: str, value: str | None
    ) -> None:
        """
        Write a value locally and mark the record modified.

        Writing the value the record already holds changes nothing. A None
        value turns the record into a tombstone. The dataset is created on
        first write.
        """
        ...

    async def put_all_values(
        self, identity_id: str, dataset_name: str, values: dict[str, str | None]
    ) -> None:
        """Write several values. Default implementation calls put_value per key."""
        for key, value in values.items():
            await self.put_value(identity_id, dataset_name, key, value)

    # ========== Record Operations ==========

    @abstractmethod
    async def get_record(self, identity_id: str, dataset_name: str, key: str) -> Record | None:
        """Get a record (tombstones included) by key."""
        ...

    @abstractmethod
    async def get_records(self, identity_id: str, dataset_name: str) -> list[Record]:
        """Get all records of a dataset, tombstones included, ordered by key."""
        ...

    @abstractmethod
    async def get_modified_records(self, identity_id: str, dataset_name: str) -> list[Record]:
        """Get records changed locally since their last push, tombstones included."""
        ...

    @abstractmethod
    async def put_records(
        self, identity_id: str, dataset_name: str, records: list[Record]
    ) -> None:
        """Store whole records as given (e.g. pulled or confirmed by the remote)."""
        ...

    # ========== Dataset Operations ==========

    @abstractmethod
    async def get_last_sync_count(self, identity_id: str, dataset_name: str) -> int:
        """
        Get the local sync marker of a dataset.

        Returns:
            The marker; 0 if the dataset was never synced or is unknown,
            -1 if it was deleted locally and the deletion is not yet pushed
        """
        ...

    @abstractmethod
    async def update_last_sync_count(
        self, identity_id: str, dataset_name: str, last_sync_count: int
    ) -> None:
        """Set the local sync marker, creating the dataset if needed."""
        ...

    @abstractmethod
    async def delete_dataset(self, identity_id: str, dataset_name: str) -> None:
        """Mark a dataset deleted locally: drop its records, set the marker to -1."""
        ...

    @abstractmethod
    async def purge_dataset(self, identity_id: str, dataset_name: str) -> None:
        """Remove every trace of a dataset, metadata included."""
        ...

    @abstractmethod
    async def get_dataset_metadata(
        self, identity_id: str, dataset_name: str
    ) -> DatasetMetadata | None:
        """Get metadata of a dataset, or None if it does not exist locally."""
        ...

    @abstractmethod
    async def get_datasets(self, identity_id: str) -> list[DatasetMetadata]:
        """List metadata of every local dataset of an identity, ordered by name."""
        ...
