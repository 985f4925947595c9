"""Callback protocol used by the sync engine at decision points."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from dataset_sync.sync.errors import DatasetSyncError

if TYPE_CHECKING:
    from dataset_sync.core.record import Record
    from dataset_sync.sync.dataset import Dataset
    from dataset_sync.sync.protocol import SyncConflict

logger = logging.getLogger(__name__)


class SyncCallback:
    """
    Hooks a caller supplies to ``Dataset.synchronize``.

    Exactly one of ``on_success`` / ``on_failure`` fires per synchronization.
    The decision hooks return True to continue and False to abort; the
    defaults abort, so a caller must opt in to merges, deletions and
    conflict resolution. Every hook may also be a coroutine function.

    Usage:
        class MyCallback(SyncCallback):
            async def on_conflict(self, dataset, conflicts):
                await dataset.resolve([c.resolve_with_remote() for c in conflicts])
                return True
    """

    def on_success(self, dataset: Dataset, updated_records: list[Record]) -> Any:
        logger.info(
            "Synchronized %s: %d records pulled", dataset.name, len(updated_records)
        )

    def on_failure(self, error: DatasetSyncError) -> Any:
        logger.warning("Synchronization failed: %s", error)

    def on_conflict(self, dataset: Dataset, conflicts: list[SyncConflict]) -> Any:
        return False

    def on_dataset_deleted(self, dataset: Dataset, dataset_name: str) -> Any:
        return False

    def on_datasets_merged(self, dataset: Dataset, dataset_names: list[str]) -> Any:
        return False


async def _resolve(result: Any) -> Any:
    if asyncio.iscoroutine(result):
        return await result
    return result


class CallbackDispatcher:
    """Invokes a SyncCallback, awaiting coroutine hooks.

    Guards the terminal outcome: after the first ``success`` or ``failure``
    further terminal reports are dropped with a warning.
    """

    def __init__(self, callback: SyncCallback) -> None:
        self._callback = callback
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    async def success(self, dataset: Dataset, records: list[Record]) -> None:
        if self._check_terminal("success"):
            await _resolve(self._callback.on_success(dataset, records))

    async def failure(self, error: DatasetSyncError) -> None:
        if self._check_terminal("failure"):
            await _resolve(self._callback.on_failure(error))

    async def conflict(self, dataset: Dataset, conflicts: list[SyncConflict]) -> bool:
        return bool(await _resolve(self._callback.on_conflict(dataset, conflicts)))

    async def dataset_deleted(self, dataset: Dataset, dataset_name: str) -> bool:
        return bool(await _resolve(self._callback.on_dataset_deleted(dataset, dataset_name)))

    async def datasets_merged(self, dataset: Dataset, dataset_names: list[str]) -> bool:
        return bool(await _resolve(self._callback.on_datasets_merged(dataset, dataset_names)))

    def _check_terminal(self, outcome: str) -> bool:
        if self._finished:
            logger.warning("Dropping duplicate terminal outcome: %s", outcome)
            return False
        self._finished = True
        return True
