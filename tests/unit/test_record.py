"""Tests for core/record.py and core/dataset_metadata.py."""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime

import pytest

from dataset_sync.core.dataset_metadata import DELETED_SYNC_COUNT, DatasetMetadata
from dataset_sync.core.record import (
    MAX_NAME_LENGTH,
    Record,
    record_size,
    validate_dataset_name,
    validate_record_key,
)

# ── Validation ───────────────────────────────────────────────────


class TestValidation:
    @pytest.mark.parametrize("key", ["theme", "a", "user:42", "x.y-z_1", "k" * MAX_NAME_LENGTH])
    def test_valid_keys(self, key: str) -> None:
        assert validate_record_key(key) == key

    @pytest.mark.parametrize("key", ["", "has space", "slash/key", "k" * (MAX_NAME_LENGTH + 1)])
    def test_invalid_keys(self, key: str) -> None:
        with pytest.raises(ValueError):
            validate_record_key(key)

    def test_dataset_name_uses_same_rules(self) -> None:
        assert validate_dataset_name("settings.user-2") == "settings.user-2"
        with pytest.raises(ValueError, match="dataset name"):
            validate_dataset_name("../etc")


# ── Record ───────────────────────────────────────────────────────


class TestRecord:
    def test_create_marks_modified(self) -> None:
        record = Record.create("theme", "dark")
        assert record.modified is True
        assert record.sync_count == 0
        assert record.device_last_modified_date is not None

    def test_tombstone_is_deleted(self) -> None:
        assert Record.create("theme", None).deleted is True
        assert Record.create("theme", "").deleted is False

    def test_frozen(self) -> None:
        record = Record.create("theme", "dark")
        with pytest.raises(FrozenInstanceError):
            record.value = "light"  # type: ignore[misc]

    def test_with_value_keeps_sync_count(self) -> None:
        record = Record(key="theme", value="dark", sync_count=4)
        changed = record.with_value("light")
        assert changed.value == "light"
        assert changed.sync_count == 4
        assert changed.modified is True
        assert record.value == "dark"

    def test_as_synced_clears_modified(self) -> None:
        record = Record.create("theme", "dark").as_synced(7)
        assert record.sync_count == 7
        assert record.modified is False

    def test_dict_roundtrip_preserves_fields(self) -> None:
        record = Record(
            key="theme",
            value=None,
            sync_count=3,
            last_modified_date=datetime(2024, 5, 1, 12, 0),
            last_modified_by="user-1",
            modified=True,
        )
        assert Record.from_dict(record.to_dict()) == record

    def test_from_dict_rejects_bad_key(self) -> None:
        with pytest.raises(ValueError):
            Record.from_dict({"key": "bad key", "value": "x"})

    def test_from_dict_converts_aware_timestamps_to_utc(self) -> None:
        record = Record.from_dict(
            {"key": "k", "value": "v", "last_modified_date": "2024-05-01T14:00:00+02:00"}
        )
        assert record.last_modified_date == datetime(2024, 5, 1, 12, 0)

    def test_record_size(self) -> None:
        assert record_size(None) == 0
        assert record_size(Record.create("ab", None)) == 2
        assert record_size(Record.create("ab", "é")) == 4


# ── DatasetMetadata ──────────────────────────────────────────────


class TestDatasetMetadata:
    def test_defaults_never_synced(self) -> None:
        metadata = DatasetMetadata(dataset_name="settings")
        assert metadata.never_synced is True
        assert metadata.is_deleted_locally is False

    def test_deleted_marker(self) -> None:
        metadata = DatasetMetadata(dataset_name="settings").with_sync_count(DELETED_SYNC_COUNT)
        assert metadata.is_deleted_locally is True

    def test_dict_roundtrip(self) -> None:
        metadata = DatasetMetadata(
            dataset_name="settings",
            last_sync_count=5,
            creation_date=datetime(2024, 1, 1),
            last_modified_date=datetime(2024, 1, 2),
            record_count=2,
            storage_size_bytes=10,
        )
        assert DatasetMetadata.from_dict(metadata.to_dict()) == metadata
