"""Pydantic models for the hub API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str


class RecordItem(BaseModel):
    """A record on the wire."""

    key: str = Field(..., min_length=1, max_length=128)
    value: str | None = None
    sync_count: int = Field(0, ge=0)
    last_modified_date: str | None = Field(None, max_length=64)
    last_modified_by: str = Field("", max_length=256)
    device_last_modified_date: str | None = Field(None, max_length=64)
    modified: bool = False


class PutRecordsRequest(BaseModel):
    sync_session_token: str = Field(..., min_length=1, max_length=64)
    records: list[RecordItem] = Field(default_factory=list, max_length=1000)


class MergeIdentityRequest(BaseModel):
    source_identity: str = Field(..., min_length=1, max_length=128)


class PutRecordsResponse(BaseModel):
    records: list[dict[str, Any]]


class DatasetListResponse(BaseModel):
    datasets: list[dict[str, Any]]
