"""SQLite record operations mixin."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from dataset_sync.core.record import Record, validate_record_key
from dataset_sync.utils.timeutils import parse_timestamp, utcnow

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = (
    "key, value, sync_count, last_modified_date, last_modified_by, "
    "device_last_modified_date, modified"
)


class SQLiteRecordMixin:
    """Mixin providing value and record CRUD for SQLiteLocalStorage."""

    # ------------------------------------------------------------------
    # Protocol stubs: satisfied by SQLiteLocalStorage at runtime.
    # ------------------------------------------------------------------

    _write_lock: asyncio.Lock

    def _ensure_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    if TYPE_CHECKING:
        # Provided by SQLiteDatasetMixin
        async def _touch_dataset(
            self,
            conn: aiosqlite.Connection,
            identity_id: str,
            dataset_name: str,
            last_modified_by: str = "",
        ) -> None: ...

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_value(self, identity_id: str, dataset_name: str, key: str) -> str | None:
        record = await self.get_record(identity_id, dataset_name, key)
        return record.value if record else None

    async def put_value(
        self, identity_id: str, dataset_name: str, key: str, value: str | None
    ) -> None:
        validate_record_key(key)
        async with self._write_lock:
            conn = self._ensure_conn()
            if await self._put_value(conn, identity_id, dataset_name, key, value):
                await self._touch_dataset(conn, identity_id, dataset_name, identity_id)
            await conn.commit()

    async def put_all_values(
        self, identity_id: str, dataset_name: str, values: dict[str, str | None]
    ) -> None:
        """Write several values in one transaction."""
        for key in values:
            validate_record_key(key)
        async with self._write_lock:
            conn = self._ensure_conn()
            changed = False
            for key, value in values.items():
                changed |= await self._put_value(conn, identity_id, dataset_name, key, value)
            if changed:
                await self._touch_dataset(conn, identity_id, dataset_name, identity_id)
            await conn.commit()

    async def get_record(self, identity_id: str, dataset_name: str, key: str) -> Record | None:
        conn = self._ensure_conn()
        async with conn.execute(
            f"""SELECT {_RECORD_COLUMNS} FROM records
                WHERE identity_id = ? AND dataset_name = ? AND key = ?""",
            (identity_id, dataset_name, key),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_record(row) if row is not None else None

    async def get_records(self, identity_id: str, dataset_name: str) -> list[Record]:
        conn = self._ensure_conn()
        async with conn.execute(
            f"""SELECT {_RECORD_COLUMNS} FROM records
                WHERE identity_id = ? AND dataset_name = ? ORDER BY key ASC""",
            (identity_id, dataset_name),
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def get_modified_records(self, identity_id: str, dataset_name: str) -> list[Record]:
        conn = self._ensure_conn()
        async with conn.execute(
            f"""SELECT {_RECORD_COLUMNS} FROM records
                WHERE identity_id = ? AND dataset_name = ? AND modified = 1
                ORDER BY key ASC""",
            (identity_id, dataset_name),
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def put_records(
        self, identity_id: str, dataset_name: str, records: list[Record]
    ) -> None:
        if not records:
            return
        async with self._write_lock:
            conn = self._ensure_conn()
            await conn.executemany(
                f"""INSERT OR REPLACE INTO records
                    (identity_id, dataset_name, {_RECORD_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                [_record_params(identity_id, dataset_name, r) for r in records],
            )
            await self._touch_dataset(conn, identity_id, dataset_name)
            await conn.commit()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _put_value(
        self,
        conn: aiosqlite.Connection,
        identity_id: str,
        dataset_name: str,
        key: str,
        value: str | None,
    ) -> bool:
        """Stage a local write without committing. Returns True if anything changed."""
        async with conn.execute(
            f"""SELECT {_RECORD_COLUMNS} FROM records
                WHERE identity_id = ? AND dataset_name = ? AND key = ?""",
            (identity_id, dataset_name, key),
        ) as cursor:
            row = await cursor.fetchone()

        existing = _row_to_record(row) if row is not None else None
        if existing is not None and existing.value == value:
            return False

        if existing is None:
            record = Record.create(key, value, last_modified_by=identity_id)
        else:
            record = existing.with_value(value, last_modified_by=identity_id)

        await conn.execute(
            f"""INSERT OR REPLACE INTO records
                (identity_id, dataset_name, {_RECORD_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            _record_params(identity_id, dataset_name, record),
        )
        return True


def _record_params(identity_id: str, dataset_name: str, record: Record) -> tuple[Any, ...]:
    return (
        identity_id,
        dataset_name,
        record.key,
        record.value,
        record.sync_count,
        record.last_modified_date.isoformat(),
        record.last_modified_by,
        record.device_last_modified_date.isoformat()
        if record.device_last_modified_date
        else None,
        1 if record.modified else 0,
    )


def _row_to_record(row: Any) -> Record:
    """Convert a database row to a Record."""
    return Record(
        key=str(row["key"]),
        value=row["value"],
        sync_count=int(row["sync_count"]),
        last_modified_date=parse_timestamp(row["last_modified_date"]) or utcnow(),
        last_modified_by=str(row["last_modified_by"] or ""),
        device_last_modified_date=parse_timestamp(row["device_last_modified_date"]),
        modified=bool(row["modified"]),
    )
