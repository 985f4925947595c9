"""SQLite dataset metadata operations mixin."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from dataset_sync.core.dataset_metadata import DELETED_SYNC_COUNT, DatasetMetadata
from dataset_sync.utils.timeutils import parse_timestamp, utcnow

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)

# Live-record statistics are computed in SQL rather than stored
_METADATA_QUERY = """
SELECT d.dataset_name, d.last_sync_count, d.creation_date, d.last_modified_date,
       d.last_modified_by,
       COUNT(r.key) AS record_count,
       COALESCE(SUM(LENGTH(CAST(r.key AS BLOB)) + LENGTH(CAST(r.value AS BLOB))), 0)
           AS storage_size_bytes
FROM datasets d
LEFT JOIN records r
    ON r.identity_id = d.identity_id
   AND r.dataset_name = d.dataset_name
   AND r.value IS NOT NULL
WHERE d.identity_id = ? {extra}
GROUP BY d.dataset_name
ORDER BY d.dataset_name ASC
"""


class SQLiteDatasetMixin:
    """Mixin providing dataset metadata and sync marker operations."""

    # ------------------------------------------------------------------
    # Protocol stubs: satisfied by SQLiteLocalStorage at runtime.
    # ------------------------------------------------------------------

    _write_lock: asyncio.Lock

    def _ensure_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_last_sync_count(self, identity_id: str, dataset_name: str) -> int:
        conn = self._ensure_conn()
        async with conn.execute(
            "SELECT last_sync_count FROM datasets WHERE identity_id = ? AND dataset_name = ?",
            (identity_id, dataset_name),
        ) as cursor:
            row = await cursor.fetchone()
        return int(row["last_sync_count"]) if row is not None else 0

    async def update_last_sync_count(
        self, identity_id: str, dataset_name: str, last_sync_count: int
    ) -> None:
        async with self._write_lock:
            conn = self._ensure_conn()
            await self._ensure_dataset_row(conn, identity_id, dataset_name)
            await conn.execute(
                """UPDATE datasets SET last_sync_count = ?, last_modified_date = ?
                   WHERE identity_id = ? AND dataset_name = ?""",
                (last_sync_count, utcnow().isoformat(), identity_id, dataset_name),
            )
            await conn.commit()

    async def delete_dataset(self, identity_id: str, dataset_name: str) -> None:
        async with self._write_lock:
            conn = self._ensure_conn()
            await conn.execute(
                "DELETE FROM records WHERE identity_id = ? AND dataset_name = ?",
                (identity_id, dataset_name),
            )
            await self._ensure_dataset_row(conn, identity_id, dataset_name)
            await conn.execute(
                """UPDATE datasets SET last_sync_count = ?, last_modified_date = ?
                   WHERE identity_id = ? AND dataset_name = ?""",
                (DELETED_SYNC_COUNT, utcnow().isoformat(), identity_id, dataset_name),
            )
            await conn.commit()

    async def purge_dataset(self, identity_id: str, dataset_name: str) -> None:
        async with self._write_lock:
            conn = self._ensure_conn()
            await conn.execute(
                "DELETE FROM records WHERE identity_id = ? AND dataset_name = ?",
                (identity_id, dataset_name),
            )
            await conn.execute(
                "DELETE FROM datasets WHERE identity_id = ? AND dataset_name = ?",
                (identity_id, dataset_name),
            )
            await conn.commit()

    async def get_dataset_metadata(
        self, identity_id: str, dataset_name: str
    ) -> DatasetMetadata | None:
        conn = self._ensure_conn()
        async with conn.execute(
            _METADATA_QUERY.format(extra="AND d.dataset_name = ?"),
            (identity_id, dataset_name),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_metadata(row) if row is not None else None

    async def get_datasets(self, identity_id: str) -> list[DatasetMetadata]:
        conn = self._ensure_conn()
        async with conn.execute(_METADATA_QUERY.format(extra=""), (identity_id,)) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_metadata(row) for row in rows]

    # ------------------------------------------------------------------
    # Helpers (callers hold the write lock and commit)
    # ------------------------------------------------------------------

    async def _ensure_dataset_row(
        self, conn: aiosqlite.Connection, identity_id: str, dataset_name: str
    ) -> None:
        now = utcnow().isoformat()
        await conn.execute(
            """INSERT OR IGNORE INTO datasets
               (identity_id, dataset_name, last_sync_count, creation_date,
                last_modified_date, last_modified_by)
               VALUES (?, ?, 0, ?, ?, ?)""",
            (identity_id, dataset_name, now, now, identity_id),
        )

    async def _touch_dataset(
        self,
        conn: aiosqlite.Connection,
        identity_id: str,
        dataset_name: str,
        last_modified_by: str = "",
    ) -> None:
        await self._ensure_dataset_row(conn, identity_id, dataset_name)
        if last_modified_by:
            await conn.execute(
                """UPDATE datasets SET last_modified_date = ?, last_modified_by = ?
                   WHERE identity_id = ? AND dataset_name = ?""",
                (utcnow().isoformat(), last_modified_by, identity_id, dataset_name),
            )
        else:
            await conn.execute(
                """UPDATE datasets SET last_modified_date = ?
                   WHERE identity_id = ? AND dataset_name = ?""",
                (utcnow().isoformat(), identity_id, dataset_name),
            )


def _row_to_metadata(row: Any) -> DatasetMetadata:
    """Convert a database row to DatasetMetadata."""
    return DatasetMetadata(
        dataset_name=str(row["dataset_name"]),
        last_sync_count=int(row["last_sync_count"]),
        creation_date=parse_timestamp(row["creation_date"]) or utcnow(),
        last_modified_date=parse_timestamp(row["last_modified_date"]) or utcnow(),
        last_modified_by=str(row["last_modified_by"] or ""),
        storage_size_bytes=int(row["storage_size_bytes"] or 0),
        record_count=int(row["record_count"] or 0),
    )
