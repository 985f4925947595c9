"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from dataset_sync.core.record import Record
from dataset_sync.storage.memory_store import InMemoryLocalStorage
from dataset_sync.storage.remote_memory import InMemoryRemoteStorage, RemoteHub
from dataset_sync.storage.sqlite_store import SQLiteLocalStorage
from dataset_sync.sync.callback import SyncCallback
from dataset_sync.sync.connectivity import StaticConnectivityMonitor
from dataset_sync.sync.dataset import Dataset

IDENTITY = "user-1"


class RecordingCallback(SyncCallback):
    """SyncCallback that records every invocation and answers with fixed decisions."""

    def __init__(
        self,
        *,
        accept_conflicts: bool = False,
        accept_deletion: bool = False,
        accept_merge: bool = False,
        resolve: str = "remote",
    ) -> None:
        self.accept_conflicts = accept_conflicts
        self.accept_deletion = accept_deletion
        self.accept_merge = accept_merge
        self.resolve = resolve
        self.calls: list[tuple[str, Any]] = []
        self.successes: list[list[Record]] = []
        self.failures: list[Exception] = []

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def on_success(self, dataset: Dataset, updated_records: list[Record]) -> None:
        self.calls.append(("success", updated_records))
        self.successes.append(list(updated_records))

    def on_failure(self, error: Exception) -> None:
        self.calls.append(("failure", error))
        self.failures.append(error)

    async def on_conflict(self, dataset: Dataset, conflicts: list[Any]) -> bool:
        self.calls.append(("conflict", conflicts))
        if self.accept_conflicts:
            if self.resolve == "remote":
                await dataset.resolve([c.resolve_with_remote() for c in conflicts])
            else:
                await dataset.resolve([c.resolve_with_local() for c in conflicts])
        return self.accept_conflicts

    def on_dataset_deleted(self, dataset: Dataset, dataset_name: str) -> bool:
        self.calls.append(("deleted", dataset_name))
        return self.accept_deletion

    def on_datasets_merged(self, dataset: Dataset, dataset_names: list[str]) -> bool:
        self.calls.append(("merged", list(dataset_names)))
        return self.accept_merge


@pytest.fixture
def hub() -> RemoteHub:
    """Shared in-memory hub, so several devices can write to one identity."""
    return RemoteHub()


@pytest.fixture
def local() -> InMemoryLocalStorage:
    return InMemoryLocalStorage()


@pytest.fixture
def remote(hub: RemoteHub) -> InMemoryRemoteStorage:
    return InMemoryRemoteStorage(IDENTITY, hub)


@pytest.fixture
def monitor() -> StaticConnectivityMonitor:
    return StaticConnectivityMonitor(reachable=True)


@pytest.fixture
def dataset(
    local: InMemoryLocalStorage,
    remote: InMemoryRemoteStorage,
    monitor: StaticConnectivityMonitor,
) -> Dataset:
    """Handle of the "settings" dataset on the first device."""
    return Dataset("settings", IDENTITY, local, remote, monitor)


@pytest.fixture
def other_device(hub: RemoteHub, monitor: StaticConnectivityMonitor) -> Dataset:
    """Handle of the same dataset on a second device sharing the hub."""
    return Dataset(
        "settings",
        IDENTITY,
        InMemoryLocalStorage(),
        InMemoryRemoteStorage(IDENTITY, hub),
        monitor,
    )


@pytest_asyncio.fixture
async def sqlite_storage(tmp_path: Path) -> AsyncGenerator[SQLiteLocalStorage, None]:
    """Create an initialized SQLite local store."""
    store = SQLiteLocalStorage(tmp_path / "datasets.db")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def make_callback() -> type[RecordingCallback]:
    """Factory for recording callbacks: ``make_callback(accept_conflicts=True)``."""
    return RecordingCallback
