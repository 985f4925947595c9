"""Entry point for an identity's datasets."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from dataset_sync.core.record import validate_dataset_name
from dataset_sync.sync.connectivity import ConnectivityMonitor, StaticConnectivityMonitor
from dataset_sync.sync.dataset import Dataset
from dataset_sync.sync.sync_engine import DEFAULT_MAX_RETRY, SyncResult

if TYPE_CHECKING:
    from dataset_sync.core.dataset_metadata import DatasetMetadata
    from dataset_sync.storage.base import LocalStorage
    from dataset_sync.storage.remote_base import RemoteDataStorage
    from dataset_sync.sync.callback import SyncCallback

logger = logging.getLogger(__name__)


class DatasetClient:
    """
    Opens dataset handles of one identity and synchronizes them.

    Handles are cached by name, so every caller of the same dataset shares
    its single-flight lock and pending-sync slot.

    Usage:
        client = DatasetClient("user-1", local, remote)
        settings = client.open_or_create_dataset("settings")
        await settings.put("theme", "dark")
        await settings.synchronize(callback)
    """

    def __init__(
        self,
        identity_id: str,
        local: LocalStorage,
        remote: RemoteDataStorage,
        connectivity: ConnectivityMonitor | None = None,
        *,
        max_retry: int = DEFAULT_MAX_RETRY,
    ) -> None:
        if not identity_id:
            raise ValueError("identity_id must not be empty")
        self._identity_id = identity_id
        self._local = local
        self._remote = remote
        self._connectivity = connectivity or StaticConnectivityMonitor(reachable=True)
        self._max_retry = max_retry
        self._datasets: dict[str, Dataset] = {}

    @property
    def identity_id(self) -> str:
        return self._identity_id

    @property
    def connectivity(self) -> ConnectivityMonitor:
        return self._connectivity

    def open_or_create_dataset(self, name: str) -> Dataset:
        """Get the handle of a dataset; the dataset is created on first write."""
        validate_dataset_name(name)
        if name not in self._datasets:
            self._datasets[name] = Dataset(
                name,
                self._identity_id,
                self._local,
                self._remote,
                self._connectivity,
                max_retry=self._max_retry,
            )
        return self._datasets[name]

    async def list_datasets(self) -> list[DatasetMetadata]:
        """Metadata of every local dataset of this identity."""
        return await self._local.get_datasets(self._identity_id)

    async def list_remote_datasets(self) -> list[DatasetMetadata]:
        """Metadata of every remote dataset of this identity."""
        return await self._remote.get_datasets()

    async def synchronize_all(self, callback: SyncCallback) -> list[SyncResult]:
        """Synchronize every local dataset concurrently, merged copies excluded.

        Datasets named ``<name>.<suffix>`` next to an existing ``<name>`` are
        merge leftovers that the callback handles through the parent dataset.
        """
        names = [m.dataset_name for m in await self.list_datasets()]
        roots = [
            name
            for name in names
            if not any(name.startswith(f"{other}.") for other in names if other != name)
        ]
        tasks = [self.open_or_create_dataset(name).synchronize(callback) for name in roots]
        logger.info("Synchronizing %d datasets of %s", len(tasks), self._identity_id)
        return list(await asyncio.gather(*tasks))

    async def wipe_data(self) -> None:
        """Remove every local dataset of this identity, pending changes included."""
        for metadata in await self.list_datasets():
            await self._local.purge_dataset(self._identity_id, metadata.dataset_name)
        self._datasets.clear()

    async def close(self) -> None:
        """Wait for running synchronizations and drop pending ones."""
        for dataset in self._datasets.values():
            dataset.discard_pending_sync()
            await dataset.wait_idle()
