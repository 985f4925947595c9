"""Record data structures - the key/value units of a dataset."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from dataset_sync.utils.timeutils import parse_timestamp, utcnow

# Keys and dataset names: 1-128 chars of alphanumerics, "_", ".", ":" and "-"
_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.:\-]+$")
MAX_NAME_LENGTH = 128


def _validate_name(value: str, what: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid {what}: must be a non-empty string")
    if len(value) > MAX_NAME_LENGTH:
        raise ValueError(f"Invalid {what}: longer than {MAX_NAME_LENGTH} characters")
    if not _NAME_PATTERN.match(value):
        raise ValueError(
            f"Invalid {what} {value!r}: must contain only alphanumeric characters, "
            "underscores, dots, colons or hyphens"
        )
    return value


def validate_record_key(key: str) -> str:
    """Validate a record key and return it unchanged.

    Raises:
        ValueError: If the key is empty, too long or uses illegal characters
    """
    return _validate_name(key, "record key")


def validate_dataset_name(name: str) -> str:
    """Validate a dataset name and return it unchanged.

    Raises:
        ValueError: If the name is empty, too long or uses illegal characters
    """
    return _validate_name(name, "dataset name")


@dataclass(frozen=True)
class Record:
    """
    A single key/value entry of a dataset.

    Records are immutable; every change produces a new instance that the
    local store persists as a whole.

    Attributes:
        key: Record key, unique within a dataset
        value: Record value, None for a tombstone
        sync_count: Dataset version the remote stamped on this record
        last_modified_date: When the value last changed (local or remote)
        last_modified_by: Identity or device that made the last change
        device_last_modified_date: When this device last changed the value
        modified: True if changed locally since the last successful push
    """

    key: str
    value: str | None
    sync_count: int = 0
    last_modified_date: datetime = field(default_factory=utcnow)
    last_modified_by: str = ""
    device_last_modified_date: datetime | None = None
    modified: bool = False

    @property
    def deleted(self) -> bool:
        """A record without a value is a tombstone."""
        return self.value is None

    @classmethod
    def create(
        cls,
        key: str,
        value: str | None,
        *,
        sync_count: int = 0,
        modified: bool = True,
        last_modified_by: str = "",
    ) -> Record:
        """
        Factory method for a new locally written record.

        Args:
            key: Record key (validated)
            value: Value, or None to create a tombstone
            sync_count: Version to carry over from an existing record
            modified: Whether the record still has to be pushed
            last_modified_by: Who made the change

        Returns:
            A new Record instance
        """
        now = utcnow()
        return cls(
            key=validate_record_key(key),
            value=value,
            sync_count=sync_count,
            last_modified_date=now,
            last_modified_by=last_modified_by,
            device_last_modified_date=now if modified else None,
            modified=modified,
        )

    def with_value(self, value: str | None, last_modified_by: str = "") -> Record:
        """Return a locally modified copy holding ``value``."""
        now = utcnow()
        return replace(
            self,
            value=value,
            last_modified_date=now,
            last_modified_by=last_modified_by or self.last_modified_by,
            device_last_modified_date=now,
            modified=True,
        )

    def as_synced(self, sync_count: int) -> Record:
        """Return a copy the remote has accepted at ``sync_count``."""
        return replace(self, sync_count=sync_count, modified=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "sync_count": self.sync_count,
            "last_modified_date": self.last_modified_date.isoformat(),
            "last_modified_by": self.last_modified_by,
            "device_last_modified_date": (
                self.device_last_modified_date.isoformat()
                if self.device_last_modified_date
                else None
            ),
            "modified": self.modified,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Record:
        """Create from dictionary (transport or persistence form).

        Raises:
            ValueError: If the key is missing or invalid
        """
        return cls(
            key=validate_record_key(data.get("key", "")),
            value=data.get("value"),
            sync_count=int(data.get("sync_count") or 0),
            last_modified_date=parse_timestamp(data.get("last_modified_date")) or utcnow(),
            last_modified_by=data.get("last_modified_by") or "",
            device_last_modified_date=parse_timestamp(data.get("device_last_modified_date")),
            modified=bool(data.get("modified", False)),
        )


def record_size(record: Record | None) -> int:
    """Approximate storage size of a record: UTF-8 bytes of key plus value."""
    if record is None:
        return 0
    size = len(record.key.encode("utf-8"))
    if record.value is not None:
        size += len(record.value.encode("utf-8"))
    return size
