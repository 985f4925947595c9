"""In-memory authoritative dataset store (hub) and a client bound to it."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

from dataset_sync.core.dataset_metadata import DatasetMetadata
from dataset_sync.core.record import MAX_NAME_LENGTH, Record, record_size, validate_dataset_name
from dataset_sync.storage.remote_base import RemoteDataStorage
from dataset_sync.sync.errors import DataConflictError, DataStorageError
from dataset_sync.sync.protocol import DatasetUpdates
from dataset_sync.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS_PER_DATASET = 16


@dataclass
class _RemoteDataset:
    """Mutable server-side state of one dataset."""

    name: str
    sync_count: int = 0
    records: dict[str, Record] = field(default_factory=dict)
    deleted: bool = False
    creation_date: datetime = field(default_factory=utcnow)
    last_modified_date: datetime = field(default_factory=utcnow)
    last_modified_by: str = ""


class RemoteHub:
    """
    Authoritative dataset store for many identities.

    Each dataset carries a sync count that grows by one per accepted push;
    every record written by a push is stamped with the new count. A
    ``list_updates`` call issues a single-use session token bound to the
    dataset and the sync count it observed; a push presenting a token whose
    count is no longer current is rejected with ``DataConflictError``.

    Outstanding tokens are kept per dataset. An accepted push retires every
    token of its dataset, and at most ``max_tokens_per_dataset`` are kept,
    oldest evicted first. A retired or evicted token of an existing dataset
    is reported as a conflict so its holder pulls again.

    Datasets merged from another identity live next to the target as
    ``<name>.<source identity>`` and are reported as merged until deleted.
    """

    def __init__(self, max_tokens_per_dataset: int = DEFAULT_MAX_TOKENS_PER_DATASET) -> None:
        if max_tokens_per_dataset < 1:
            raise ValueError("max_tokens_per_dataset must be >= 1")
        self._max_tokens = max_tokens_per_dataset
        self._datasets: dict[tuple[str, str], _RemoteDataset] = {}
        # (identity, dataset) -> token -> sync count seen at issue, oldest first
        self._tokens: dict[tuple[str, str], dict[str, int]] = {}

    @property
    def outstanding_tokens(self) -> int:
        return sum(len(tokens) for tokens in self._tokens.values())

    async def list_updates(
        self, identity_id: str, dataset_name: str, last_sync_count: int
    ) -> DatasetUpdates:
        validate_dataset_name(dataset_name)
        dataset = self._datasets.get((identity_id, dataset_name))
        sync_count = dataset.sync_count if dataset else 0
        token = self._issue_token(identity_id, dataset_name, sync_count)
        merged = self._merged_names(identity_id, dataset_name)

        if dataset is None or dataset.deleted:
            return DatasetUpdates(
                dataset_name=dataset_name,
                sync_count=sync_count,
                exists=False,
                deleted=dataset is not None and last_sync_count > 0,
                merged_dataset_names=merged,
                sync_session_token=token,
            )

        records = [
            dataset.records[key]
            for key in sorted(dataset.records)
            if dataset.records[key].sync_count > last_sync_count
        ]
        return DatasetUpdates(
            dataset_name=dataset_name,
            records=records,
            sync_count=dataset.sync_count,
            exists=True,
            merged_dataset_names=merged,
            sync_session_token=token,
        )

    async def put_records(
        self,
        identity_id: str,
        dataset_name: str,
        records: list[Record],
        sync_session_token: str,
    ) -> list[Record]:
        validate_dataset_name(dataset_name)
        key = (identity_id, dataset_name)
        token_sync_count = self._tokens.get(key, {}).pop(sync_session_token, None)
        dataset = self._datasets.get(key)
        if token_sync_count is None:
            if dataset is not None:
                raise DataConflictError(
                    f"Sync session token of {dataset_name} is no longer current",
                    status_code=409,
                )
            raise DataStorageError("Invalid sync session token", status_code=400)

        if dataset is None or dataset.deleted:
            # A push to a missing or deleted dataset recreates it; the sync
            # count continues so versions never go backwards.
            previous = dataset.sync_count if dataset else 0
            dataset = _RemoteDataset(name=dataset_name, sync_count=previous)
            self._datasets[key] = dataset

        if token_sync_count != dataset.sync_count:
            raise DataConflictError(
                f"Dataset {dataset_name} changed since sync count {token_sync_count}",
                status_code=409,
            )
        for record in records:
            current = dataset.records.get(record.key)
            if current is not None and current.sync_count > record.sync_count:
                raise DataConflictError(
                    f"Record {record.key} is behind the remote version", status_code=409
                )

        now = utcnow()
        dataset.sync_count += 1
        written = [
            Record(
                key=record.key,
                value=record.value,
                sync_count=dataset.sync_count,
                last_modified_date=now,
                last_modified_by=identity_id,
                device_last_modified_date=record.device_last_modified_date,
                modified=False,
            )
            for record in records
        ]
        for record in written:
            dataset.records[record.key] = record
        dataset.last_modified_date = now
        dataset.last_modified_by = identity_id
        # Every token still out was issued below the new count
        self._tokens.pop(key, None)

        logger.debug(
            "Accepted %d records for %s/%s at sync count %d",
            len(written),
            identity_id,
            dataset_name,
            dataset.sync_count,
        )
        return written

    async def delete_dataset(self, identity_id: str, dataset_name: str) -> None:
        validate_dataset_name(dataset_name)
        dataset = self._datasets.get((identity_id, dataset_name))
        if dataset is None or dataset.deleted:
            return
        dataset.deleted = True
        dataset.records.clear()
        dataset.last_modified_date = utcnow()

    async def get_datasets(self, identity_id: str) -> list[DatasetMetadata]:
        result: list[DatasetMetadata] = []
        for (owner, name), dataset in sorted(self._datasets.items()):
            if owner != identity_id or dataset.deleted:
                continue
            live = [r for r in dataset.records.values() if not r.deleted]
            result.append(
                DatasetMetadata(
                    dataset_name=name,
                    last_sync_count=dataset.sync_count,
                    creation_date=dataset.creation_date,
                    last_modified_date=dataset.last_modified_date,
                    last_modified_by=dataset.last_modified_by,
                    storage_size_bytes=sum(record_size(r) for r in live),
                    record_count=len(live),
                )
            )
        return result

    def merge_identity(self, target_identity: str, source_identity: str) -> list[str]:
        """Fold every dataset of ``source_identity`` into ``target_identity``.

        Each source dataset is copied next to its counterpart as
        ``<name>.<source identity>``. Returns the created dataset names.
        """
        created: list[str] = []
        for (owner, name), dataset in sorted(self._datasets.items()):
            if owner != source_identity or dataset.deleted:
                continue
            merged_name = f"{name}.{source_identity}"
            if len(merged_name) > MAX_NAME_LENGTH:
                logger.warning("Skipping merge of %s: name %s too long", name, merged_name)
                continue
            self._datasets[(target_identity, merged_name)] = _RemoteDataset(
                name=merged_name,
                sync_count=dataset.sync_count,
                records=dict(dataset.records),
                last_modified_by=source_identity,
            )
            created.append(merged_name)
        logger.info(
            "Merged %d datasets of %s into %s", len(created), source_identity, target_identity
        )
        return created

    def _issue_token(self, identity_id: str, dataset_name: str, sync_count: int) -> str:
        tokens = self._tokens.setdefault((identity_id, dataset_name), {})
        while len(tokens) >= self._max_tokens:
            del tokens[next(iter(tokens))]
        token = uuid4().hex
        tokens[token] = sync_count
        return token

    def _merged_names(self, identity_id: str, dataset_name: str) -> list[str]:
        prefix = f"{dataset_name}."
        return sorted(
            name
            for (owner, name), dataset in self._datasets.items()
            if owner == identity_id and name.startswith(prefix) and not dataset.deleted
        )


class InMemoryRemoteStorage(RemoteDataStorage):
    """RemoteDataStorage bound to one identity of a RemoteHub.

    Several clients (devices) of the same identity can share one hub to
    exercise concurrent writers.
    """

    def __init__(self, identity_id: str, hub: RemoteHub | None = None) -> None:
        self._identity_id = identity_id
        self._hub = hub if hub is not None else RemoteHub()

    @property
    def identity_id(self) -> str:
        return self._identity_id

    @property
    def hub(self) -> RemoteHub:
        return self._hub

    async def list_updates(self, dataset_name: str, last_sync_count: int) -> DatasetUpdates:
        return await self._hub.list_updates(self._identity_id, dataset_name, last_sync_count)

    async def put_records(
        self, dataset_name: str, records: list[Record], sync_session_token: str
    ) -> list[Record]:
        return await self._hub.put_records(
            self._identity_id, dataset_name, records, sync_session_token
        )

    async def delete_dataset(self, dataset_name: str) -> None:
        await self._hub.delete_dataset(self._identity_id, dataset_name)

    async def get_datasets(self) -> list[DatasetMetadata]:
        return await self._hub.get_datasets(self._identity_id)
