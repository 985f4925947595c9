"""Dataset metadata kept by the local store."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from dataset_sync.utils.timeutils import parse_timestamp, utcnow

# Marker values for DatasetMetadata.last_sync_count
DELETED_SYNC_COUNT = -1
NEVER_SYNCED = 0


@dataclass(frozen=True)
class DatasetMetadata:
    """
    Bookkeeping for one dataset of one identity.

    Attributes:
        dataset_name: Name of the dataset
        last_sync_count: Last remote version fully incorporated locally.
            -1 means deleted locally but not yet pushed, 0 never synced.
        creation_date: When the dataset was first created
        last_modified_date: When any record last changed
        last_modified_by: Who made the last change
        storage_size_bytes: Approximate size of the live records
        record_count: Number of live (non-tombstone) records
    """

    dataset_name: str
    last_sync_count: int = NEVER_SYNCED
    creation_date: datetime = field(default_factory=utcnow)
    last_modified_date: datetime = field(default_factory=utcnow)
    last_modified_by: str = ""
    storage_size_bytes: int = 0
    record_count: int = 0

    @property
    def is_deleted_locally(self) -> bool:
        return self.last_sync_count == DELETED_SYNC_COUNT

    @property
    def never_synced(self) -> bool:
        return self.last_sync_count == NEVER_SYNCED

    def with_sync_count(self, last_sync_count: int) -> DatasetMetadata:
        return replace(self, last_sync_count=last_sync_count)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dataset_name": self.dataset_name,
            "last_sync_count": self.last_sync_count,
            "creation_date": self.creation_date.isoformat(),
            "last_modified_date": self.last_modified_date.isoformat(),
            "last_modified_by": self.last_modified_by,
            "storage_size_bytes": self.storage_size_bytes,
            "record_count": self.record_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DatasetMetadata:
        return cls(
            dataset_name=data["dataset_name"],
            last_sync_count=int(data.get("last_sync_count") or 0),
            creation_date=parse_timestamp(data.get("creation_date")) or utcnow(),
            last_modified_date=parse_timestamp(data.get("last_modified_date")) or utcnow(),
            last_modified_by=data.get("last_modified_by") or "",
            storage_size_bytes=int(data.get("storage_size_bytes") or 0),
            record_count=int(data.get("record_count") or 0),
        )
