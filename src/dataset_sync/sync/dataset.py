"""Dataset handle: local record access plus background synchronization."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import TYPE_CHECKING, Any

from dataset_sync.core.record import validate_dataset_name, validate_record_key
from dataset_sync.sync.callback import CallbackDispatcher
from dataset_sync.sync.connectivity import (
    CancellationToken,
    ConnectivityMonitor,
    PendingSync,
    StaticConnectivityMonitor,
)
from dataset_sync.sync.errors import NetworkUnavailableError
from dataset_sync.sync.sync_engine import DEFAULT_MAX_RETRY, SyncEngine, SyncResult

if TYPE_CHECKING:
    from dataset_sync.core.dataset_metadata import DatasetMetadata
    from dataset_sync.core.record import Record
    from dataset_sync.storage.base import LocalStorage
    from dataset_sync.storage.remote_base import RemoteDataStorage
    from dataset_sync.sync.callback import SyncCallback

logger = logging.getLogger(__name__)


class Dataset:
    """
    A named key/value dataset of one identity.

    Reads and writes go to the local store only; ``synchronize`` reconciles
    with the remote store on a background task. Per handle, at most one
    reconciliation runs at a time: a concurrent call waits for the one in
    flight instead of interleaving with it.

    Usage:
        dataset = Dataset("settings", "user-1", local, remote)
        await dataset.put("theme", "dark")
        result = await dataset.synchronize(MyCallback())
    """

    def __init__(
        self,
        name: str,
        identity_id: str,
        local: LocalStorage,
        remote: RemoteDataStorage,
        connectivity: ConnectivityMonitor | None = None,
        *,
        max_retry: int = DEFAULT_MAX_RETRY,
    ) -> None:
        self._name = validate_dataset_name(name)
        self._identity_id = identity_id
        self._local = local
        self._connectivity = connectivity or StaticConnectivityMonitor(reachable=True)
        self._engine = SyncEngine(local, remote, max_retry=max_retry)
        self._sync_lock = asyncio.Lock()
        self._pending: PendingSync | None = None
        self._tasks: set[asyncio.Task[SyncResult]] = set()

    @property
    def name(self) -> str:
        return self._name

    @property
    def identity_id(self) -> str:
        return self._identity_id

    @property
    def pending_sync(self) -> PendingSync | None:
        """The deferred synchronization waiting for connectivity, if any."""
        return self._pending

    @property
    def is_syncing(self) -> bool:
        return self._sync_lock.locked()

    # ========== Local Record Access ==========

    async def get(self, key: str) -> str | None:
        return await self._local.get_value(
            self._identity_id, self._name, validate_record_key(key)
        )

    async def put(self, key: str, value: str) -> None:
        await self._local.put_value(
            self._identity_id, self._name, validate_record_key(key), value
        )

    async def remove(self, key: str) -> None:
        """Tombstone a record; the deletion propagates on the next sync."""
        await self._local.put_value(
            self._identity_id, self._name, validate_record_key(key), None
        )

    async def put_all(self, values: dict[str, str | None]) -> None:
        for key in values:
            validate_record_key(key)
        await self._local.put_all_values(self._identity_id, self._name, values)

    async def get_all(self) -> dict[str, str]:
        """Live key/value pairs, tombstones excluded."""
        return {
            record.key: record.value
            for record in await self._local.get_records(self._identity_id, self._name)
            if record.value is not None
        }

    async def get_all_records(self) -> list[Record]:
        return await self._local.get_records(self._identity_id, self._name)

    async def is_changed(self, key: str) -> bool:
        record = await self._local.get_record(
            self._identity_id, self._name, validate_record_key(key)
        )
        return record is not None and record.modified

    async def delete(self) -> None:
        """Delete the dataset locally; the deletion is pushed on the next sync."""
        await self._local.delete_dataset(self._identity_id, self._name)

    async def get_metadata(self) -> DatasetMetadata | None:
        return await self._local.get_dataset_metadata(self._identity_id, self._name)

    async def resolve(self, records: list[Record]) -> None:
        """Store conflict resolutions produced by ``SyncConflict.resolve_with_*``."""
        await self._local.put_records(self._identity_id, self._name, records)

    async def get_local_merged_datasets(self) -> list[str]:
        return await self._engine.get_local_merged_datasets(self)

    # ========== Synchronization ==========

    def synchronize(self, callback: SyncCallback) -> asyncio.Task[SyncResult]:
        """
        Synchronize with the remote store on a background task.

        Must be called from a running event loop. The returned task can be
        awaited for a SyncResult, but the outcome is always reported
        through ``callback`` too.

        Raises:
            ValueError: If callback is None
        """
        if callback is None:
            raise ValueError("callback can't be None")

        if not self._connectivity.is_reachable():
            logger.debug("Network unavailable, not synchronizing %s", self._name)
            return self._spawn(self._report_unavailable(callback))

        self.discard_pending_sync()
        return self._spawn(self._run_engine(callback))

    def synchronize_on_connectivity(
        self, callback: SyncCallback
    ) -> asyncio.Task[SyncResult] | CancellationToken:
        """
        Synchronize now if reachable, otherwise once connectivity returns.

        A deferred request replaces any earlier one of this handle.

        Returns:
            The sync task if started right away, else the cancellation
            token of the deferred request
        """
        if self._connectivity.is_reachable():
            return self.synchronize(callback)

        self.discard_pending_sync()
        logger.debug(
            "Connectivity is unavailable. Scheduling synchronize of %s for when it resumes",
            self._name,
        )
        self._pending = PendingSync(self, callback, self._connectivity)
        return self._pending.token

    def discard_pending_sync(self) -> None:
        """Cancel the deferred synchronization of this handle, if any."""
        if self._pending is not None:
            if self._pending.active:
                logger.debug("Discard previous pending sync request of %s", self._name)
            self._pending.cancel()
            self._pending = None

    async def wait_idle(self) -> None:
        """Wait until every background synchronization of this handle finished."""
        while running := [t for t in self._tasks if not t.done()]:
            await asyncio.gather(*running, return_exceptions=True)

    async def _run_engine(self, callback: SyncCallback) -> SyncResult:
        async with self._sync_lock:
            return await self._engine.run(self, callback)

    async def _report_unavailable(self, callback: SyncCallback) -> SyncResult:
        await CallbackDispatcher(callback).failure(
            NetworkUnavailableError("Network connectivity unavailable.")
        )
        return SyncResult(dataset_name=self._name, succeeded=False)

    def _spawn(self, coro: Coroutine[Any, Any, SyncResult]) -> asyncio.Task[SyncResult]:
        task = asyncio.get_running_loop().create_task(coro, name=f"sync-{self._name}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[SyncResult]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Synchronization task of %s crashed", self._name, exc_info=task.exception()
            )
