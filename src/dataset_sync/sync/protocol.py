"""Sync protocol data structures exchanged with the remote store."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from dataset_sync.core.record import Record


@dataclass(frozen=True)
class DatasetUpdates:
    """Remote changes of a dataset since a requested sync count.

    Produced fresh for every reconciliation attempt. The session token
    scopes the push that follows the pull and is used only once.
    """

    dataset_name: str
    records: list[Record] = field(default_factory=list)
    sync_count: int = 0
    exists: bool = True
    deleted: bool = False
    merged_dataset_names: list[str] = field(default_factory=list)
    sync_session_token: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "dataset_name": self.dataset_name,
            "records": [r.to_dict() for r in self.records],
            "sync_count": self.sync_count,
            "exists": self.exists,
            "deleted": self.deleted,
            "merged_dataset_names": list(self.merged_dataset_names),
            "sync_session_token": self.sync_session_token,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DatasetUpdates:
        return cls(
            dataset_name=data["dataset_name"],
            records=[Record.from_dict(r) for r in data.get("records", [])],
            sync_count=int(data.get("sync_count") or 0),
            exists=bool(data.get("exists", True)),
            deleted=bool(data.get("deleted", False)),
            merged_dataset_names=list(data.get("merged_dataset_names", [])),
            sync_session_token=data.get("sync_session_token") or "",
        )


@dataclass(frozen=True)
class SyncConflict:
    """A key changed both locally and remotely to different values."""

    remote_record: Record
    local_record: Record

    @property
    def key(self) -> str:
        return self.remote_record.key

    def resolve_with_remote(self) -> Record:
        """Keep the remote value; the result needs no push."""
        return self.remote_record.as_synced(self.remote_record.sync_count)

    def resolve_with_local(self) -> Record:
        """Keep the local value on top of the remote version."""
        return replace(
            self.local_record,
            sync_count=self.remote_record.sync_count,
            modified=True,
        )

    def resolve_with_value(self, value: str | None) -> Record:
        """Replace both sides with a new value on top of the remote version."""
        return replace(
            self.local_record.with_value(value),
            sync_count=self.remote_record.sync_count,
        )
