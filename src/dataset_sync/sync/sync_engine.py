"""Sync engine: one bounded reconciliation of a local dataset with the remote."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from dataset_sync.core.dataset_metadata import DELETED_SYNC_COUNT, NEVER_SYNCED
from dataset_sync.sync.callback import CallbackDispatcher, SyncCallback
from dataset_sync.sync.errors import (
    DataConflictError,
    DatasetSyncError,
    DataStorageError,
    RetriesExhaustedError,
    SyncCancelledError,
)
from dataset_sync.sync.protocol import SyncConflict

if TYPE_CHECKING:
    from dataset_sync.core.record import Record
    from dataset_sync.storage.base import LocalStorage
    from dataset_sync.storage.remote_base import RemoteDataStorage
    from dataset_sync.sync.dataset import Dataset
    from dataset_sync.sync.protocol import DatasetUpdates

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRY = 3


class AttemptOutcome(StrEnum):
    """Result of one pass through the reconciliation loop."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RETRY = "retry"


@dataclass(frozen=True)
class SyncResult:
    """Summary of one synchronization, returned by the background task."""

    dataset_name: str
    succeeded: bool
    attempts: int = 0
    pulled: int = 0
    pushed: int = 0
    retries_left: int = 0


@dataclass
class _AttemptStats:
    retries_left: int = 0
    attempts: int = 0
    pulled: int = 0
    pushed: int = 0


class SyncEngine:
    """Reconciles one dataset between the local and the remote store.

    Each run executes a loop bounded by ``max_retry``. Every pass:

    1. Pushes a pending local deletion (marker -1) and stops.
    2. Pulls remote changes since the local marker.
    3. Escalates remote merges to the callback (accept = retry).
    4. Escalates a remote deletion to the callback (accept = delete locally).
    5. Escalates conflicting records to the callback (accept = retry).
    6. Applies the pulled records and advances the marker.
    7. Pushes local modifications; an interleaved writer means retry.
    8. Reports success with the pulled records.

    A run reports exactly one terminal outcome. Running out of retries is
    reported as ``RetriesExhaustedError``.
    """

    def __init__(
        self,
        local: LocalStorage,
        remote: RemoteDataStorage,
        *,
        max_retry: int = DEFAULT_MAX_RETRY,
    ) -> None:
        if max_retry < 0:
            raise ValueError("max_retry must be >= 0")
        self._local = local
        self._remote = remote
        self._max_retry = max_retry

    @property
    def max_retry(self) -> int:
        return self._max_retry

    async def run(self, dataset: Dataset, callback: SyncCallback) -> SyncResult:
        """Run one synchronization of ``dataset``, reporting through ``callback``."""
        dispatcher = CallbackDispatcher(callback)
        stats = _AttemptStats(retries_left=self._max_retry)
        logger.debug("Start to synchronize %s", dataset.name)

        try:
            last_sync_count = await self._local.get_last_sync_count(
                dataset.identity_id, dataset.name
            )
            if last_sync_count != DELETED_SYNC_COUNT:
                merged = await self.get_local_merged_datasets(dataset)
                if merged:
                    logger.info("Detected local merged datasets of %s: %s", dataset.name, merged)
                    await dispatcher.datasets_merged(dataset, merged)

            succeeded = await self._reconcile(dataset, dispatcher, stats)
        except Exception as e:
            logger.error("Unexpected error synchronizing %s", dataset.name, exc_info=True)
            error = DataStorageError("Unknown exception")
            error.__cause__ = e
            await dispatcher.failure(error)
            succeeded = False

        if succeeded:
            logger.debug("Successfully synchronized %s", dataset.name)
        else:
            logger.debug("Failed to synchronize %s", dataset.name)

        return SyncResult(
            dataset_name=dataset.name,
            succeeded=succeeded,
            attempts=stats.attempts,
            pulled=stats.pulled,
            pushed=stats.pushed,
            retries_left=max(stats.retries_left, 0),
        )

    async def get_local_merged_datasets(self, dataset: Dataset) -> list[str]:
        """Names of local datasets left behind by merges into ``dataset``."""
        prefix = f"{dataset.name}."
        return [
            metadata.dataset_name
            for metadata in await self._local.get_datasets(dataset.identity_id)
            if metadata.dataset_name.startswith(prefix)
        ]

    async def _reconcile(
        self,
        dataset: Dataset,
        dispatcher: CallbackDispatcher,
        stats: _AttemptStats,
    ) -> bool:
        last_cause: DatasetSyncError | None = None

        while stats.retries_left >= 0:
            stats.attempts += 1
            outcome, cause = await self._attempt(dataset, dispatcher, stats)
            if outcome is AttemptOutcome.RETRY:
                stats.retries_left -= 1
                last_cause = cause
                continue
            return outcome is AttemptOutcome.SUCCEEDED

        logger.error("Synchronizing %s failed: exceeded maximum retry", dataset.name)
        error = RetriesExhaustedError(
            f"Gave up synchronizing {dataset.name} after {stats.attempts} attempts"
        )
        error.__cause__ = last_cause
        await dispatcher.failure(error)
        return False

    async def _attempt(
        self,
        dataset: Dataset,
        dispatcher: CallbackDispatcher,
        stats: _AttemptStats,
    ) -> tuple[AttemptOutcome, DatasetSyncError | None]:
        identity_id, name = dataset.identity_id, dataset.name
        last_sync_count = await self._local.get_last_sync_count(identity_id, name)

        # A local deletion is pushed before anything else
        if last_sync_count == DELETED_SYNC_COUNT:
            try:
                await self._remote.delete_dataset(name)
            except DataStorageError as e:
                await dispatcher.failure(e)
                return AttemptOutcome.FAILED, None
            await self._local.purge_dataset(identity_id, name)
            logger.info("Pushed local deletion of %s", name)
            await dispatcher.success(dataset, [])
            return AttemptOutcome.SUCCEEDED, None

        logger.debug("Get latest modified records of %s since %d", name, last_sync_count)
        try:
            updates = await self._remote.list_updates(name, last_sync_count)
        except DataStorageError as e:
            await dispatcher.failure(e)
            return AttemptOutcome.FAILED, None

        if updates.merged_dataset_names:
            logger.info("Remote reports datasets merged into %s", name)
            if await dispatcher.datasets_merged(dataset, list(updates.merged_dataset_names)):
                return AttemptOutcome.RETRY, None
            await dispatcher.failure(SyncCancelledError("Manual cancel: merge declined"))
            return AttemptOutcome.FAILED, None

        if (last_sync_count != NEVER_SYNCED and not updates.exists) or updates.deleted:
            if await dispatcher.dataset_deleted(dataset, updates.dataset_name):
                await self._local.delete_dataset(identity_id, name)
                await self._local.purge_dataset(identity_id, name)
                logger.info("Removed %s locally after remote deletion", name)
                await dispatcher.success(dataset, [])
                return AttemptOutcome.SUCCEEDED, None
            await dispatcher.failure(SyncCancelledError("Manual cancel: deletion declined"))
            return AttemptOutcome.FAILED, None

        remote_records = list(updates.records)
        if remote_records:
            conflicts, resolved = await self._find_conflicts(identity_id, name, remote_records)
            if conflicts:
                logger.info("%d records of %s in conflict", len(conflicts), name)
                if await dispatcher.conflict(dataset, conflicts):
                    return AttemptOutcome.RETRY, None
                await dispatcher.failure(
                    SyncCancelledError(f"Manual cancel: {len(conflicts)} conflicts unresolved")
                )
                return AttemptOutcome.FAILED, None

            # Local edits already rebased onto the pulled version win
            to_apply = [r for r in remote_records if r.key not in resolved]
            logger.info("Save %d records of %s to local", len(to_apply), name)
            await self._local.put_records(identity_id, name, to_apply)
            await self._local.update_last_sync_count(identity_id, name, updates.sync_count)
            logger.info("Updated sync count of %s to %d", name, updates.sync_count)
            stats.pulled += len(to_apply)

        outcome, cause = await self._push(dataset, dispatcher, updates, stats)
        if outcome is not AttemptOutcome.SUCCEEDED:
            return outcome, cause

        await dispatcher.success(dataset, remote_records)
        return AttemptOutcome.SUCCEEDED, None

    async def _push(
        self,
        dataset: Dataset,
        dispatcher: CallbackDispatcher,
        updates: DatasetUpdates,
        stats: _AttemptStats,
    ) -> tuple[AttemptOutcome, DatasetSyncError | None]:
        identity_id, name = dataset.identity_id, dataset.name
        local_changes = await self._local.get_modified_records(identity_id, name)
        if not local_changes:
            return AttemptOutcome.SUCCEEDED, None

        sync_count_before_push = await self._local.get_last_sync_count(identity_id, name)
        logger.info("Push %d records of %s to remote", len(local_changes), name)
        try:
            written = await self._remote.put_records(
                name, local_changes, updates.sync_session_token
            )
        except DataConflictError as e:
            logger.info("Conflicts detected when pushing %s to remote", name)
            return AttemptOutcome.RETRY, e
        except DataStorageError as e:
            await dispatcher.failure(e)
            return AttemptOutcome.FAILED, None

        await self._local.put_records(identity_id, name, written)
        stats.pushed += len(written)

        # Only advance when no other writer slipped in between: the remote
        # sync count must have grown by exactly one.
        new_sync_count = max((r.sync_count for r in written), default=0)
        if new_sync_count == sync_count_before_push + 1:
            await self._local.update_last_sync_count(identity_id, name, new_sync_count)
            logger.info("Updated sync count of %s to %d", name, new_sync_count)
        else:
            logger.info(
                "Sync count of %s left at %d (remote reported %d)",
                name,
                sync_count_before_push,
                new_sync_count,
            )
        return AttemptOutcome.SUCCEEDED, None

    async def _find_conflicts(
        self, identity_id: str, dataset_name: str, remote_records: list[Record]
    ) -> tuple[list[SyncConflict], set[str]]:
        """Split pulled records into conflicts and keys already resolved locally.

        A locally modified record holding a different value conflicts, unless
        it was rebased onto this remote version by an earlier resolution.
        """
        conflicts: list[SyncConflict] = []
        resolved: set[str] = set()
        for remote_record in remote_records:
            local_record = await self._local.get_record(
                identity_id, dataset_name, remote_record.key
            )
            if (
                local_record is None
                or not local_record.modified
                or local_record.value == remote_record.value
            ):
                continue
            if local_record.sync_count >= remote_record.sync_count:
                resolved.add(remote_record.key)
            else:
                conflicts.append(SyncConflict(remote_record=remote_record, local_record=local_record))
        return conflicts, resolved
