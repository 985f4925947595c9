"""In-memory local storage backend."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace

from dataset_sync.core.dataset_metadata import DELETED_SYNC_COUNT, DatasetMetadata
from dataset_sync.core.record import Record, record_size, validate_record_key
from dataset_sync.storage.base import LocalStorage
from dataset_sync.utils.timeutils import utcnow

_DatasetKey = tuple[str, str]


class InMemoryLocalStorage(LocalStorage):
    """Dict-based local storage for development and testing.

    Data is lost when the process exits.
    """

    def __init__(self) -> None:
        self._datasets: dict[_DatasetKey, DatasetMetadata] = {}
        self._records: dict[_DatasetKey, dict[str, Record]] = defaultdict(dict)

    # ========== Value Operations ==========

    async def get_value(self, identity_id: str, dataset_name: str, key: str) -> str | None:
        record = self._records[(identity_id, dataset_name)].get(key)
        return record.value if record else None

    async def put_value(
        self, identity_id: str, dataset_name: str, key: str, value: str | None
    ) -> None:
        validate_record_key(key)
        dataset_key = (identity_id, dataset_name)
        existing = self._records[dataset_key].get(key)
        if existing is not None and existing.value == value:
            return

        if existing is None:
            record = Record.create(key, value, last_modified_by=identity_id)
        else:
            record = existing.with_value(value, last_modified_by=identity_id)

        self._records[dataset_key][key] = record
        self._touch(identity_id, dataset_name, last_modified_by=identity_id)

    # ========== Record Operations ==========

    async def get_record(self, identity_id: str, dataset_name: str, key: str) -> Record | None:
        return self._records[(identity_id, dataset_name)].get(key)

    async def get_records(self, identity_id: str, dataset_name: str) -> list[Record]:
        records = self._records[(identity_id, dataset_name)]
        return [records[key] for key in sorted(records)]

    async def get_modified_records(self, identity_id: str, dataset_name: str) -> list[Record]:
        return [
            r for r in await self.get_records(identity_id, dataset_name) if r.modified
        ]

    async def put_records(
        self, identity_id: str, dataset_name: str, records: list[Record]
    ) -> None:
        if not records:
            return
        dataset_records = self._records[(identity_id, dataset_name)]
        for record in records:
            dataset_records[record.key] = record
        self._touch(identity_id, dataset_name)

    # ========== Dataset Operations ==========

    async def get_last_sync_count(self, identity_id: str, dataset_name: str) -> int:
        metadata = self._datasets.get((identity_id, dataset_name))
        return metadata.last_sync_count if metadata else 0

    async def update_last_sync_count(
        self, identity_id: str, dataset_name: str, last_sync_count: int
    ) -> None:
        metadata = self._ensure_dataset(identity_id, dataset_name)
        self._datasets[(identity_id, dataset_name)] = replace(
            metadata, last_sync_count=last_sync_count, last_modified_date=utcnow()
        )

    async def delete_dataset(self, identity_id: str, dataset_name: str) -> None:
        dataset_key = (identity_id, dataset_name)
        self._records.pop(dataset_key, None)
        metadata = self._ensure_dataset(identity_id, dataset_name)
        self._datasets[dataset_key] = replace(
            metadata, last_sync_count=DELETED_SYNC_COUNT, last_modified_date=utcnow()
        )

    async def purge_dataset(self, identity_id: str, dataset_name: str) -> None:
        dataset_key = (identity_id, dataset_name)
        self._records.pop(dataset_key, None)
        self._datasets.pop(dataset_key, None)

    async def get_dataset_metadata(
        self, identity_id: str, dataset_name: str
    ) -> DatasetMetadata | None:
        metadata = self._datasets.get((identity_id, dataset_name))
        if metadata is None:
            return None
        return self._with_stats(metadata, identity_id)

    async def get_datasets(self, identity_id: str) -> list[DatasetMetadata]:
        return [
            self._with_stats(self._datasets[key], identity_id)
            for key in sorted(self._datasets)
            if key[0] == identity_id
        ]

    # ========== Helpers ==========

    def _ensure_dataset(self, identity_id: str, dataset_name: str) -> DatasetMetadata:
        dataset_key = (identity_id, dataset_name)
        if dataset_key not in self._datasets:
            self._datasets[dataset_key] = DatasetMetadata(
                dataset_name=dataset_name, last_modified_by=identity_id
            )
        return self._datasets[dataset_key]

    def _touch(self, identity_id: str, dataset_name: str, last_modified_by: str = "") -> None:
        metadata = self._ensure_dataset(identity_id, dataset_name)
        self._datasets[(identity_id, dataset_name)] = replace(
            metadata,
            last_modified_date=utcnow(),
            last_modified_by=last_modified_by or metadata.last_modified_by,
        )

    def _with_stats(self, metadata: DatasetMetadata, identity_id: str) -> DatasetMetadata:
        live = [
            r
            for r in self._records.get((identity_id, metadata.dataset_name), {}).values()
            if not r.deleted
        ]
        return replace(
            metadata,
            record_count=len(live),
            storage_size_bytes=sum(record_size(r) for r in live),
        )
