"""SQLite storage backend for persistent local datasets."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import aiosqlite

from dataset_sync.storage.base import LocalStorage
from dataset_sync.storage.sqlite_datasets import SQLiteDatasetMixin
from dataset_sync.storage.sqlite_records import SQLiteRecordMixin
from dataset_sync.storage.sqlite_schema import SCHEMA, SCHEMA_VERSION, run_migrations

logger = logging.getLogger(__name__)


class SQLiteLocalStorage(SQLiteRecordMixin, SQLiteDatasetMixin, LocalStorage):
    """SQLite-based local record store.

    Data persists to disk and survives restarts. Multi-statement writes are
    serialized through one lock so transactions of different datasets never
    interleave on the shared connection.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).resolve()
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Initialize database connection and schema.

        Existing databases run pending migrations before the full schema
        is applied; new databases are stamped with the latest version.
        """
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA synchronous=NORMAL")

        await self._conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY)"
        )
        await self._conn.commit()

        async with self._conn.execute("SELECT version FROM schema_version") as cursor:
            row = await cursor.fetchone()

        if row is not None and row["version"] < SCHEMA_VERSION:
            logger.info("Migrating %s from schema v%d", self._db_path, row["version"])
            await run_migrations(self._conn, row["version"])

        await self._conn.executescript(SCHEMA)

        if row is None:
            await self._conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
            )
            await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> SQLiteLocalStorage:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _ensure_conn(self) -> aiosqlite.Connection:
        """Ensure the connection is available."""
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._conn
