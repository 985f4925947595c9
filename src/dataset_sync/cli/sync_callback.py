"""Sync callback driving conflict decisions from a CLI strategy option."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from dataset_sync.sync.callback import SyncCallback

if TYPE_CHECKING:
    from dataset_sync.core.record import Record
    from dataset_sync.sync.client import DatasetClient
    from dataset_sync.sync.dataset import Dataset
    from dataset_sync.sync.errors import DatasetSyncError
    from dataset_sync.sync.protocol import SyncConflict

logger = logging.getLogger(__name__)


class ConflictStrategy(StrEnum):
    """How the CLI answers the engine's decision points."""

    REMOTE = "remote"
    LOCAL = "local"
    ABORT = "abort"


class StrategyCallback(SyncCallback):
    """
    Answers every decision with a fixed strategy and records the outcome.

    - remote: keep remote values, accept remote deletions
    - local: keep local values, decline remote deletions
    - abort: decline everything

    Merged datasets are folded into their parent unless aborting: each is
    pulled, its live values are written into the parent, and the merged
    dataset is deleted on the hub.
    """

    def __init__(self, client: DatasetClient, strategy: ConflictStrategy) -> None:
        self._client = client
        self.strategy = strategy
        self.succeeded: bool | None = None
        self.error: DatasetSyncError | None = None
        self.pulled: list[Record] = []
        self.conflicts_resolved = 0
        self.folded: list[str] = []

    def on_success(self, dataset: Dataset, updated_records: list[Record]) -> None:
        self.succeeded = True
        self.pulled = list(updated_records)

    def on_failure(self, error: DatasetSyncError) -> None:
        self.succeeded = False
        self.error = error

    async def on_conflict(self, dataset: Dataset, conflicts: list[SyncConflict]) -> bool:
        if self.strategy is ConflictStrategy.ABORT:
            return False
        if self.strategy is ConflictStrategy.REMOTE:
            resolved = [c.resolve_with_remote() for c in conflicts]
        else:
            resolved = [c.resolve_with_local() for c in conflicts]
        await dataset.resolve(resolved)
        self.conflicts_resolved += len(resolved)
        return True

    def on_dataset_deleted(self, dataset: Dataset, dataset_name: str) -> bool:
        return self.strategy is ConflictStrategy.REMOTE

    async def on_datasets_merged(self, dataset: Dataset, dataset_names: list[str]) -> bool:
        if self.strategy is ConflictStrategy.ABORT:
            return False
        for name in dataset_names:
            merged = self._client.open_or_create_dataset(name)
            pull = await merged.synchronize(SyncCallback())
            if not pull.succeeded:
                logger.warning("Could not pull merged dataset %s", name)
                return False
            values = await merged.get_all()
            current = await dataset.get_all()
            if self.strategy is ConflictStrategy.LOCAL:
                values = {k: v for k, v in values.items() if k not in current}
            if values:
                await dataset.put_all(dict(values))
            await merged.delete()
            await merged.synchronize(SyncCallback())
            self.folded.append(name)
            logger.info("Folded %d records of %s into %s", len(values), name, dataset.name)
        return True
