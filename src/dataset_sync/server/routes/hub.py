"""Hub endpoints: pull, push and manage the datasets of an identity."""

from __future__ import annotations

import logging
import re
from typing import Annotated, Any, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query

from dataset_sync.core.record import Record, validate_dataset_name
from dataset_sync.server.dependencies import get_hub
from dataset_sync.server.models import (
    DatasetListResponse,
    MergeIdentityRequest,
    PutRecordsRequest,
    PutRecordsResponse,
)
from dataset_sync.storage.remote_memory import RemoteHub
from dataset_sync.sync.errors import DataConflictError, DataStorageError

logger = logging.getLogger(__name__)

_IDENTITY_PATTERN = re.compile(r"^[a-zA-Z0-9_\-\.:]{1,128}$")

router = APIRouter(prefix="/hub", tags=["hub"])


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _validate_identity(identity_id: str) -> None:
    """Raise HTTPException if identity_id is invalid."""
    if not _IDENTITY_PATTERN.match(identity_id):
        raise HTTPException(status_code=422, detail="Invalid identity_id format")


def _validate_dataset(dataset_name: str) -> None:
    try:
        validate_dataset_name(dataset_name)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


def _raise_for_storage_error(e: DataStorageError) -> NoReturn:
    status = e.status_code or 500
    if isinstance(e, DataConflictError):
        status = 409
    raise HTTPException(status_code=status, detail=str(e)) from e


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/identities/{identity_id}/datasets/{dataset_name}/records",
    summary="Pull records changed since a sync count",
)
async def list_updates(
    identity_id: str,
    dataset_name: str,
    hub: Annotated[RemoteHub, Depends(get_hub)],
    last_sync_count: Annotated[int, Query(ge=0)] = 0,
) -> dict[str, Any]:
    """Return the dataset's changes since ``last_sync_count`` and a session token.

    The token must accompany the push that follows; it is valid once.
    """
    _validate_identity(identity_id)
    _validate_dataset(dataset_name)
    updates = await hub.list_updates(identity_id, dataset_name, last_sync_count)
    return updates.to_dict()


@router.post(
    "/identities/{identity_id}/datasets/{dataset_name}/records",
    summary="Push modified records",
)
async def put_records(
    identity_id: str,
    dataset_name: str,
    body: PutRecordsRequest,
    hub: Annotated[RemoteHub, Depends(get_hub)],
) -> PutRecordsResponse:
    """Write records under a session token from a previous pull.

    Responds 409 when another writer changed the dataset since that pull
    or the token was retired, and 400 for an unknown token of a dataset
    that does not exist.
    """
    _validate_identity(identity_id)
    _validate_dataset(dataset_name)
    try:
        records = [Record.from_dict(item.model_dump()) for item in body.records]
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    try:
        written = await hub.put_records(
            identity_id, dataset_name, records, body.sync_session_token
        )
    except DataStorageError as e:
        logger.info("Rejected push to %s/%s: %s", identity_id, dataset_name, e)
        _raise_for_storage_error(e)

    return PutRecordsResponse(records=[r.to_dict() for r in written])


@router.delete(
    "/identities/{identity_id}/datasets/{dataset_name}",
    summary="Delete a dataset",
)
async def delete_dataset(
    identity_id: str,
    dataset_name: str,
    hub: Annotated[RemoteHub, Depends(get_hub)],
) -> dict[str, str]:
    _validate_identity(identity_id)
    _validate_dataset(dataset_name)
    await hub.delete_dataset(identity_id, dataset_name)
    return {"status": "deleted", "dataset_name": dataset_name}


@router.get("/identities/{identity_id}/datasets", summary="List datasets")
async def get_datasets(
    identity_id: str,
    hub: Annotated[RemoteHub, Depends(get_hub)],
) -> DatasetListResponse:
    _validate_identity(identity_id)
    datasets = await hub.get_datasets(identity_id)
    return DatasetListResponse(datasets=[d.to_dict() for d in datasets])


@router.post("/identities/{identity_id}/merge", summary="Merge another identity in")
async def merge_identity(
    identity_id: str,
    body: MergeIdentityRequest,
    hub: Annotated[RemoteHub, Depends(get_hub)],
) -> dict[str, Any]:
    """Copy every dataset of ``source_identity`` next to this identity's own.

    Clients learn about the copies on their next pull of the parent dataset.
    """
    _validate_identity(identity_id)
    _validate_identity(body.source_identity)
    if body.source_identity == identity_id:
        raise HTTPException(status_code=422, detail="Cannot merge an identity into itself")
    merged = hub.merge_identity(identity_id, body.source_identity)
    return {"merged_dataset_names": merged}
