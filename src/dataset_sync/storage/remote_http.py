"""HTTP client for a remote dataset hub."""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import aiohttp

from dataset_sync.core.dataset_metadata import DatasetMetadata
from dataset_sync.core.record import Record, validate_dataset_name
from dataset_sync.storage.remote_base import RemoteDataStorage
from dataset_sync.sync.errors import DataConflictError, DataStorageError
from dataset_sync.sync.protocol import DatasetUpdates

logger = logging.getLogger(__name__)


class HttpRemoteStorage(RemoteDataStorage):
    """
    aiohttp-based client for the dataset-sync hub server.

    Usage:
        async with HttpRemoteStorage("http://localhost:8000", "user-1") as remote:
            updates = await remote.list_updates("settings", 0)

    Or without context manager:
        remote = HttpRemoteStorage("http://localhost:8000", "user-1")
        await remote.connect()
        try:
            ...
        finally:
            await remote.disconnect()
    """

    def __init__(
        self,
        server_url: str,
        identity_id: str,
        *,
        timeout: float = 30.0,
        api_key: str | None = None,
    ) -> None:
        """
        Initialize the hub client.

        Args:
            server_url: Base URL of the hub (e.g., "http://localhost:8000")
            identity_id: Identity whose datasets are synchronized
            timeout: Request timeout in seconds
            api_key: Optional API key sent as a bearer token
        """
        if not server_url.startswith(("http://", "https://")):
            raise ValueError("Invalid hub URL scheme: must start with http:// or https://")

        self._server_url = server_url.rstrip("/")
        self._identity_id = identity_id
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._api_key = api_key
        self._session: aiohttp.ClientSession | None = None

    @property
    def identity_id(self) -> str:
        return self._identity_id

    @property
    def server_url(self) -> str:
        return self._server_url

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is None:
            headers = {"Content-Type": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._session = aiohttp.ClientSession(timeout=self._timeout, headers=headers)

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> HttpRemoteStorage:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.disconnect()

    # ========== RemoteDataStorage ==========

    async def list_updates(self, dataset_name: str, last_sync_count: int) -> DatasetUpdates:
        result = await self._request(
            "GET",
            f"{self._dataset_path(dataset_name)}/records",
            params={"last_sync_count": last_sync_count},
        )
        try:
            return DatasetUpdates.from_dict(result)
        except (KeyError, TypeError, ValueError) as e:
            raise DataStorageError(f"Malformed updates response: {e}") from e

    async def put_records(
        self, dataset_name: str, records: list[Record], sync_session_token: str
    ) -> list[Record]:
        result = await self._request(
            "POST",
            f"{self._dataset_path(dataset_name)}/records",
            json_data={
                "sync_session_token": sync_session_token,
                "records": [r.to_dict() for r in records],
            },
        )
        try:
            return [Record.from_dict(r) for r in result.get("records", [])]
        except (KeyError, TypeError, ValueError) as e:
            raise DataStorageError(f"Malformed put response: {e}") from e

    async def delete_dataset(self, dataset_name: str) -> None:
        await self._request("DELETE", self._dataset_path(dataset_name))

    async def get_datasets(self) -> list[DatasetMetadata]:
        result = await self._request("GET", f"{self._identity_path()}/datasets")
        return [DatasetMetadata.from_dict(d) for d in result.get("datasets", [])]

    # ========== Helpers ==========

    def _identity_path(self) -> str:
        return f"/hub/identities/{quote(self._identity_id, safe='')}"

    def _dataset_path(self, dataset_name: str) -> str:
        validate_dataset_name(dataset_name)
        return f"{self._identity_path()}/datasets/{dataset_name}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an HTTP request to the hub, mapping failures to storage errors."""
        if not self._session:
            await self.connect()

        assert self._session is not None

        url = f"{self._server_url}{path}"
        try:
            async with self._session.request(
                method, url, json=json_data, params=params
            ) as response:
                if response.status == 409:
                    text = await response.text()
                    raise DataConflictError(f"Conflict: {text}", status_code=409)
                if response.status >= 400:
                    text = await response.text()
                    raise DataStorageError(
                        f"Hub error: {text}", status_code=response.status
                    )
                data: dict[str, Any] = await response.json()
                return data
        except aiohttp.ClientError as e:
            raise DataStorageError(f"Connection error: {e}") from e
        except asyncio.TimeoutError as e:
            raise DataStorageError(f"Request to {url} timed out") from e
