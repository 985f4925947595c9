"""Core data structures for dataset-sync."""

from dataset_sync.core.dataset_metadata import DELETED_SYNC_COUNT, NEVER_SYNCED, DatasetMetadata
from dataset_sync.core.record import (
    Record,
    record_size,
    validate_dataset_name,
    validate_record_key,
)

__all__ = [
    "DELETED_SYNC_COUNT",
    "NEVER_SYNCED",
    "DatasetMetadata",
    "Record",
    "record_size",
    "validate_dataset_name",
    "validate_record_key",
]
