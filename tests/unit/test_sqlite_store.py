"""Tests for storage/sqlite_store.py: SQLiteLocalStorage."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from dataset_sync.core.dataset_metadata import DELETED_SYNC_COUNT
from dataset_sync.core.record import Record
from dataset_sync.storage.sqlite_schema import SCHEMA_VERSION
from dataset_sync.storage.sqlite_store import SQLiteLocalStorage

ID = "user-1"
DS = "settings"


# ── Lifecycle ────────────────────────────────────────────────────


class TestLifecycle:
    async def test_requires_initialize(self, tmp_path: Path) -> None:
        store = SQLiteLocalStorage(tmp_path / "x.db")
        with pytest.raises(RuntimeError, match="not initialized"):
            await store.get_records(ID, DS)

    async def test_data_survives_reopen(self, tmp_path: Path) -> None:
        db_path = tmp_path / "persist.db"
        async with SQLiteLocalStorage(db_path) as store:
            await store.put_value(ID, DS, "theme", "dark")
            await store.update_last_sync_count(ID, DS, 3)

        async with SQLiteLocalStorage(db_path) as store:
            assert await store.get_value(ID, DS, "theme") == "dark"
            assert await store.get_last_sync_count(ID, DS) == 3

    async def test_new_database_stamped_with_version(self, tmp_path: Path) -> None:
        db_path = tmp_path / "fresh.db"
        async with SQLiteLocalStorage(db_path):
            pass

        conn = sqlite3.connect(str(db_path))
        try:
            (version,) = conn.execute("SELECT version FROM schema_version").fetchone()
        finally:
            conn.close()
        assert version == SCHEMA_VERSION

    async def test_migrates_v1_database(self, tmp_path: Path) -> None:
        db_path = tmp_path / "v1.db"
        conn = sqlite3.connect(str(db_path))
        conn.executescript(
            """
            CREATE TABLE schema_version (version INTEGER PRIMARY KEY);
            INSERT INTO schema_version VALUES (1);
            CREATE TABLE datasets (
                identity_id TEXT NOT NULL, dataset_name TEXT NOT NULL,
                last_sync_count INTEGER NOT NULL DEFAULT 0,
                creation_date TEXT NOT NULL, last_modified_date TEXT NOT NULL,
                PRIMARY KEY (identity_id, dataset_name));
            CREATE TABLE records (
                identity_id TEXT NOT NULL, dataset_name TEXT NOT NULL, key TEXT NOT NULL,
                value TEXT, sync_count INTEGER NOT NULL DEFAULT 0,
                last_modified_date TEXT NOT NULL, last_modified_by TEXT NOT NULL DEFAULT '',
                modified INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (identity_id, dataset_name, key));
            INSERT INTO datasets VALUES ('user-1', 'settings', 2,
                '2024-01-01T00:00:00', '2024-01-01T00:00:00');
            INSERT INTO records VALUES ('user-1', 'settings', 'theme', 'dark', 2,
                '2024-01-01T00:00:00', 'user-1', 0);
            """
        )
        conn.commit()
        conn.close()

        async with SQLiteLocalStorage(db_path) as store:
            record = await store.get_record(ID, DS, "theme")
            assert record is not None
            assert record.value == "dark"
            assert record.device_last_modified_date is None
            metadata = await store.get_dataset_metadata(ID, DS)
            assert metadata is not None
            assert metadata.last_sync_count == 2


# ── Records ──────────────────────────────────────────────────────


class TestRecords:
    async def test_put_marks_modified_and_keeps_sync_count(
        self, sqlite_storage: SQLiteLocalStorage
    ) -> None:
        await sqlite_storage.put_records(ID, DS, [Record(key="theme", value="dark", sync_count=4)])
        await sqlite_storage.put_value(ID, DS, "theme", "light")

        record = await sqlite_storage.get_record(ID, DS, "theme")
        assert record is not None
        assert record.value == "light"
        assert record.modified is True
        assert record.sync_count == 4

    async def test_put_same_value_is_noop(self, sqlite_storage: SQLiteLocalStorage) -> None:
        await sqlite_storage.put_records(ID, DS, [Record(key="theme", value="dark", sync_count=4)])
        await sqlite_storage.put_value(ID, DS, "theme", "dark")
        assert await sqlite_storage.get_modified_records(ID, DS) == []

    async def test_tombstones_are_pending_changes(
        self, sqlite_storage: SQLiteLocalStorage
    ) -> None:
        await sqlite_storage.put_value(ID, DS, "theme", "dark")
        await sqlite_storage.put_value(ID, DS, "theme", None)

        modified = await sqlite_storage.get_modified_records(ID, DS)
        assert len(modified) == 1
        assert modified[0].deleted is True
        assert await sqlite_storage.get_value(ID, DS, "theme") is None

    async def test_put_all_values_single_transaction(
        self, sqlite_storage: SQLiteLocalStorage
    ) -> None:
        await sqlite_storage.put_all_values(ID, DS, {"b": "2", "a": "1"})
        assert [r.key for r in await sqlite_storage.get_records(ID, DS)] == ["a", "b"]

    async def test_put_all_values_validates_before_writing(
        self, sqlite_storage: SQLiteLocalStorage
    ) -> None:
        with pytest.raises(ValueError):
            await sqlite_storage.put_all_values(ID, DS, {"ok": "1", "bad key": "2"})
        assert await sqlite_storage.get_records(ID, DS) == []

    async def test_put_records_replaces_whole_record(
        self, sqlite_storage: SQLiteLocalStorage
    ) -> None:
        await sqlite_storage.put_value(ID, DS, "theme", "dark")
        synced = Record(key="theme", value="dark", sync_count=1, last_modified_by="user-1")
        await sqlite_storage.put_records(ID, DS, [synced])

        record = await sqlite_storage.get_record(ID, DS, "theme")
        assert record is not None
        assert record.modified is False
        assert record.sync_count == 1


# ── Datasets ─────────────────────────────────────────────────────


class TestDatasets:
    async def test_metadata_stats(self, sqlite_storage: SQLiteLocalStorage) -> None:
        await sqlite_storage.put_all_values(ID, DS, {"a": "12", "b": "3", "c": None})

        metadata = await sqlite_storage.get_dataset_metadata(ID, DS)
        assert metadata is not None
        assert metadata.record_count == 2
        assert metadata.storage_size_bytes == len("a12") + len("b3")
        assert metadata.last_modified_by == ID

    async def test_missing_dataset(self, sqlite_storage: SQLiteLocalStorage) -> None:
        assert await sqlite_storage.get_dataset_metadata(ID, DS) is None
        assert await sqlite_storage.get_last_sync_count(ID, DS) == 0

    async def test_delete_then_purge(self, sqlite_storage: SQLiteLocalStorage) -> None:
        await sqlite_storage.put_value(ID, DS, "theme", "dark")
        await sqlite_storage.delete_dataset(ID, DS)

        assert await sqlite_storage.get_last_sync_count(ID, DS) == DELETED_SYNC_COUNT
        assert await sqlite_storage.get_records(ID, DS) == []

        await sqlite_storage.purge_dataset(ID, DS)
        assert await sqlite_storage.get_dataset_metadata(ID, DS) is None

    async def test_get_datasets_per_identity(self, sqlite_storage: SQLiteLocalStorage) -> None:
        await sqlite_storage.put_value(ID, "b", "k", "v")
        await sqlite_storage.put_value(ID, "a", "k", "v")
        await sqlite_storage.put_value("user-2", "c", "k", "v")

        names = [m.dataset_name for m in await sqlite_storage.get_datasets(ID)]
        assert names == ["a", "b"]

    async def test_empty_dataset_listed_with_zero_stats(
        self, sqlite_storage: SQLiteLocalStorage
    ) -> None:
        await sqlite_storage.update_last_sync_count(ID, DS, 5)
        (metadata,) = await sqlite_storage.get_datasets(ID)
        assert metadata.record_count == 0
        assert metadata.storage_size_bytes == 0
        assert metadata.last_sync_count == 5
