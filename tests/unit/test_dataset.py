"""Tests for sync/dataset.py: local access and background synchronization."""

from __future__ import annotations

import asyncio

import pytest

from dataset_sync.core.dataset_metadata import DELETED_SYNC_COUNT
from dataset_sync.core.record import Record
from dataset_sync.storage.memory_store import InMemoryLocalStorage
from dataset_sync.storage.remote_memory import InMemoryRemoteStorage
from dataset_sync.sync.connectivity import CancellationToken, StaticConnectivityMonitor
from dataset_sync.sync.dataset import Dataset
from dataset_sync.sync.errors import NetworkUnavailableError


# ── Local record access ──────────────────────────────────────────


class TestLocalAccess:
    def test_invalid_name_rejected(
        self, local: InMemoryLocalStorage, remote: InMemoryRemoteStorage
    ) -> None:
        with pytest.raises(ValueError):
            Dataset("bad name!", "user-1", local, remote)

    async def test_put_get(self, dataset: Dataset) -> None:
        await dataset.put("theme", "dark")
        assert await dataset.get("theme") == "dark"
        assert await dataset.get("missing") is None
        assert await dataset.is_changed("theme") is True
        assert await dataset.is_changed("missing") is False

    async def test_invalid_key_rejected(self, dataset: Dataset) -> None:
        with pytest.raises(ValueError):
            await dataset.put("", "x")
        with pytest.raises(ValueError):
            await dataset.put_all({"ok": "1", "not ok": "2"})
        assert await dataset.get_all() == {}

    async def test_remove_leaves_tombstone(self, dataset: Dataset) -> None:
        await dataset.put_all({"a": "1", "b": "2"})
        await dataset.remove("a")

        assert await dataset.get_all() == {"b": "2"}
        records = {r.key: r for r in await dataset.get_all_records()}
        assert records["a"].deleted is True
        assert records["a"].modified is True

    async def test_delete_marks_dataset(self, dataset: Dataset) -> None:
        await dataset.put("a", "1")
        await dataset.delete()

        metadata = await dataset.get_metadata()
        assert metadata is not None
        assert metadata.last_sync_count == DELETED_SYNC_COUNT
        assert await dataset.get_all() == {}

    async def test_metadata_counts_live_records(self, dataset: Dataset) -> None:
        assert await dataset.get_metadata() is None
        await dataset.put_all({"a": "1", "b": "2"})
        await dataset.remove("b")

        metadata = await dataset.get_metadata()
        assert metadata is not None
        assert metadata.record_count == 1

    async def test_resolve_stores_records(self, dataset: Dataset) -> None:
        await dataset.resolve([Record(key="theme", value="light", sync_count=4)])
        assert await dataset.get("theme") == "light"
        assert await dataset.is_changed("theme") is False

    async def test_local_merged_datasets(
        self, dataset: Dataset, local: InMemoryLocalStorage
    ) -> None:
        await local.put_value("user-1", "settings.user-2", "a", "1")
        await local.put_value("user-1", "settingsx", "a", "1")
        assert await dataset.get_local_merged_datasets() == ["settings.user-2"]


# ── Synchronize ──────────────────────────────────────────────────


class TestSynchronize:
    async def test_none_callback_rejected(self, dataset: Dataset) -> None:
        with pytest.raises(ValueError):
            dataset.synchronize(None)  # type: ignore[arg-type]

    async def test_returns_task_with_result(self, dataset: Dataset, make_callback) -> None:
        await dataset.put("theme", "dark")

        task = dataset.synchronize(make_callback())
        assert isinstance(task, asyncio.Task)
        result = await task

        assert result.succeeded is True
        assert result.pushed == 1
        assert result.dataset_name == "settings"

    async def test_unreachable_reports_network_failure(
        self, dataset: Dataset, monitor: StaticConnectivityMonitor, make_callback
    ) -> None:
        await monitor.set_reachable(False)
        callback = make_callback()

        result = await dataset.synchronize(callback)

        assert result.succeeded is False
        assert callback.names() == ["failure"]
        assert isinstance(callback.failures[0], NetworkUnavailableError)

    async def test_single_flight_per_handle(
        self,
        dataset: Dataset,
        remote: InMemoryRemoteStorage,
        monkeypatch: pytest.MonkeyPatch,
        make_callback,
    ) -> None:
        active = 0
        max_active = 0
        original = remote.list_updates

        async def slow_list_updates(dataset_name: str, last_sync_count: int):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.01)
            active -= 1
            return await original(dataset_name, last_sync_count)

        monkeypatch.setattr(remote, "list_updates", slow_list_updates)
        await dataset.put("theme", "dark")

        first = dataset.synchronize(make_callback())
        second = dataset.synchronize(make_callback())
        await asyncio.sleep(0)
        assert dataset.is_syncing is True

        results = await asyncio.gather(first, second)

        assert all(r.succeeded for r in results)
        assert max_active == 1
        assert dataset.is_syncing is False

    async def test_crashing_callback_still_finishes_task(
        self, dataset: Dataset, make_callback
    ) -> None:
        callback = make_callback()

        def explode(dataset: Dataset, records: list[Record]) -> None:
            raise RuntimeError("callback bug")

        callback.on_success = explode

        result = await dataset.synchronize(callback)

        assert result.succeeded is False


# ── Synchronize on connectivity ──────────────────────────────────


class TestSynchronizeOnConnectivity:
    async def test_reachable_starts_now(self, dataset: Dataset, make_callback) -> None:
        outcome = dataset.synchronize_on_connectivity(make_callback())
        assert isinstance(outcome, asyncio.Task)
        assert (await outcome).succeeded is True
        assert dataset.pending_sync is None

    async def test_deferred_until_reachable(
        self, dataset: Dataset, monitor: StaticConnectivityMonitor, make_callback
    ) -> None:
        await monitor.set_reachable(False)
        await dataset.put("theme", "dark")
        callback = make_callback()

        token = dataset.synchronize_on_connectivity(callback)
        assert isinstance(token, CancellationToken)
        pending = dataset.pending_sync
        assert pending is not None and pending.token is token
        assert callback.calls == []

        await monitor.set_reachable(True)
        assert pending.task is not None
        result = await pending.task

        assert result.succeeded is True
        assert callback.names() == ["success"]
        assert dataset.pending_sync is None

    async def test_newer_request_supersedes_older(
        self, dataset: Dataset, monitor: StaticConnectivityMonitor, make_callback
    ) -> None:
        await monitor.set_reachable(False)
        first_callback, second_callback = make_callback(), make_callback()

        first = dataset.synchronize_on_connectivity(first_callback)
        second = dataset.synchronize_on_connectivity(second_callback)
        assert isinstance(first, CancellationToken)
        assert isinstance(second, CancellationToken)
        assert first.cancelled is True
        assert second.cancelled is False
        assert monitor.subscriber_count == 1

        await monitor.set_reachable(True)
        await dataset.wait_idle()

        assert first_callback.calls == []
        assert second_callback.names() == ["success"]

    async def test_discard_pending_sync(
        self, dataset: Dataset, monitor: StaticConnectivityMonitor, make_callback
    ) -> None:
        await monitor.set_reachable(False)
        callback = make_callback()
        token = dataset.synchronize_on_connectivity(callback)

        dataset.discard_pending_sync()
        dataset.discard_pending_sync()
        await monitor.set_reachable(True)
        await dataset.wait_idle()

        assert isinstance(token, CancellationToken) and token.cancelled
        assert dataset.pending_sync is None
        assert monitor.subscriber_count == 0
        assert callback.calls == []

    async def test_immediate_sync_discards_pending(
        self, dataset: Dataset, monitor: StaticConnectivityMonitor, make_callback
    ) -> None:
        await monitor.set_reachable(False)
        deferred_callback = make_callback()
        dataset.synchronize_on_connectivity(deferred_callback)

        monitor._reachable = True
        await dataset.synchronize(make_callback())
        await monitor.notify(True)
        await dataset.wait_idle()

        assert dataset.pending_sync is None
        assert deferred_callback.calls == []

    async def test_other_handles_keep_their_requests(
        self,
        local: InMemoryLocalStorage,
        remote: InMemoryRemoteStorage,
        make_callback,
    ) -> None:
        monitor = StaticConnectivityMonitor(reachable=False)
        settings = Dataset("settings", "user-1", local, remote, monitor)
        profile = Dataset("profile", "user-1", local, remote, monitor)

        settings.synchronize_on_connectivity(make_callback())
        profile.synchronize_on_connectivity(make_callback())

        assert monitor.subscriber_count == 2
