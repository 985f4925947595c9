"""Tests for cli/sync_callback.py: strategy-driven sync decisions."""

from __future__ import annotations

import pytest

from dataset_sync.cli.sync_callback import ConflictStrategy, StrategyCallback
from dataset_sync.storage.memory_store import InMemoryLocalStorage
from dataset_sync.storage.remote_memory import InMemoryRemoteStorage, RemoteHub
from dataset_sync.sync.client import DatasetClient
from dataset_sync.sync.errors import SyncCancelledError


def _client(hub: RemoteHub, identity: str = "user-1") -> DatasetClient:
    return DatasetClient(identity, InMemoryLocalStorage(), InMemoryRemoteStorage(identity, hub))


async def _conflicting_edit(hub: RemoteHub) -> tuple[DatasetClient, DatasetClient]:
    """Two devices of user-1 edit "theme" concurrently; the first one pushed."""
    first, second = _client(hub), _client(hub)
    settings = first.open_or_create_dataset("settings")
    await settings.put("theme", "dark")
    await settings.synchronize(StrategyCallback(first, ConflictStrategy.REMOTE))
    await second.open_or_create_dataset("settings").synchronize(
        StrategyCallback(second, ConflictStrategy.REMOTE)
    )

    await settings.put("theme", "light")
    await settings.synchronize(StrategyCallback(first, ConflictStrategy.REMOTE))
    await second.open_or_create_dataset("settings").put("theme", "blue")
    return first, second


# ── Conflicts ────────────────────────────────────────────────────


class TestConflictStrategies:
    async def test_remote_keeps_remote_value(self, hub: RemoteHub) -> None:
        _, second = await _conflicting_edit(hub)
        settings = second.open_or_create_dataset("settings")
        callback = StrategyCallback(second, ConflictStrategy.REMOTE)

        result = await settings.synchronize(callback)

        assert result.succeeded is True
        assert callback.succeeded is True
        assert callback.conflicts_resolved == 1
        assert await settings.get("theme") == "light"

    async def test_local_keeps_local_value(self, hub: RemoteHub) -> None:
        first, second = await _conflicting_edit(hub)
        settings = second.open_or_create_dataset("settings")
        callback = StrategyCallback(second, ConflictStrategy.LOCAL)

        result = await settings.synchronize(callback)

        assert result.succeeded is True
        assert callback.conflicts_resolved == 1
        assert await settings.get("theme") == "blue"

        other = first.open_or_create_dataset("settings")
        await other.synchronize(StrategyCallback(first, ConflictStrategy.REMOTE))
        assert await other.get("theme") == "blue"

    async def test_abort_fails(self, hub: RemoteHub) -> None:
        _, second = await _conflicting_edit(hub)
        settings = second.open_or_create_dataset("settings")
        callback = StrategyCallback(second, ConflictStrategy.ABORT)

        result = await settings.synchronize(callback)

        assert result.succeeded is False
        assert callback.succeeded is False
        assert isinstance(callback.error, SyncCancelledError)
        assert await settings.get("theme") == "blue"


# ── Remote deletion ──────────────────────────────────────────────


class TestRemoteDeletion:
    @pytest.mark.parametrize(
        ("strategy", "removed"),
        [(ConflictStrategy.REMOTE, True), (ConflictStrategy.LOCAL, False)],
    )
    async def test_deletion_follows_strategy(
        self, hub: RemoteHub, strategy: ConflictStrategy, removed: bool
    ) -> None:
        first, second = _client(hub), _client(hub)
        settings = first.open_or_create_dataset("settings")
        await settings.put("theme", "dark")
        await settings.synchronize(StrategyCallback(first, ConflictStrategy.REMOTE))
        mirror = second.open_or_create_dataset("settings")
        await mirror.synchronize(StrategyCallback(second, ConflictStrategy.REMOTE))

        await settings.delete()
        await settings.synchronize(StrategyCallback(first, ConflictStrategy.REMOTE))
        await mirror.synchronize(StrategyCallback(second, strategy))

        assert (await mirror.get_metadata() is None) is removed


# ── Merged datasets ──────────────────────────────────────────────


class TestMergeFolding:
    async def _merged_hub(self, hub: RemoteHub) -> DatasetClient:
        source = _client(hub, "user-2")
        source_settings = source.open_or_create_dataset("settings")
        await source_settings.put_all({"lang": "en", "theme": "light"})
        await source_settings.synchronize(StrategyCallback(source, ConflictStrategy.REMOTE))

        target = _client(hub)
        settings = target.open_or_create_dataset("settings")
        await settings.put("theme", "dark")
        await settings.synchronize(StrategyCallback(target, ConflictStrategy.REMOTE))

        hub.merge_identity("user-1", "user-2")
        return target

    async def test_remote_strategy_folds_all_values(self, hub: RemoteHub) -> None:
        target = await self._merged_hub(hub)
        settings = target.open_or_create_dataset("settings")
        callback = StrategyCallback(target, ConflictStrategy.REMOTE)

        result = await settings.synchronize(callback)

        assert result.succeeded is True
        assert callback.folded == ["settings.user-2"]
        assert await settings.get_all() == {"lang": "en", "theme": "light"}
        remote_names = [m.dataset_name for m in await hub.get_datasets("user-1")]
        assert remote_names == ["settings"]

    async def test_local_strategy_keeps_existing_keys(self, hub: RemoteHub) -> None:
        target = await self._merged_hub(hub)
        settings = target.open_or_create_dataset("settings")
        callback = StrategyCallback(target, ConflictStrategy.LOCAL)

        await settings.synchronize(callback)

        assert await settings.get_all() == {"lang": "en", "theme": "dark"}

    async def test_abort_declines_merge(self, hub: RemoteHub) -> None:
        target = await self._merged_hub(hub)
        settings = target.open_or_create_dataset("settings")
        callback = StrategyCallback(target, ConflictStrategy.ABORT)

        result = await settings.synchronize(callback)

        assert result.succeeded is False
        assert callback.folded == []
        assert isinstance(callback.error, SyncCancelledError)
