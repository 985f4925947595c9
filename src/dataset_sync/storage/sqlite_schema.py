"""SQLite schema definition for the local record store."""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 2

SCHEMA = """
CREATE TABLE IF NOT EXISTS datasets (
    identity_id TEXT NOT NULL,
    dataset_name TEXT NOT NULL,
    last_sync_count INTEGER NOT NULL DEFAULT 0,
    creation_date TEXT NOT NULL,
    last_modified_date TEXT NOT NULL,
    last_modified_by TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (identity_id, dataset_name)
);

CREATE TABLE IF NOT EXISTS records (
    identity_id TEXT NOT NULL,
    dataset_name TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT,
    sync_count INTEGER NOT NULL DEFAULT 0,
    last_modified_date TEXT NOT NULL,
    last_modified_by TEXT NOT NULL DEFAULT '',
    device_last_modified_date TEXT,
    modified INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (identity_id, dataset_name, key)
);

CREATE INDEX IF NOT EXISTS idx_records_modified
    ON records(identity_id, dataset_name, modified);
"""

# Each entry maps (from_version -> to_version) with a list of SQL statements.
# Migrations run sequentially in initialize() when db version < SCHEMA_VERSION.
MIGRATIONS: dict[tuple[int, int], list[str]] = {
    (1, 2): [
        "ALTER TABLE datasets ADD COLUMN last_modified_by TEXT NOT NULL DEFAULT ''",
        "ALTER TABLE records ADD COLUMN device_last_modified_date TEXT",
    ],
}


async def run_migrations(conn: aiosqlite.Connection, current_version: int) -> int:
    """Apply all pending migrations from current_version to SCHEMA_VERSION.

    Returns the final schema version after all migrations.
    """
    version = current_version

    while version < SCHEMA_VERSION:
        next_version = version + 1
        for sql in MIGRATIONS.get((version, next_version), []):
            try:
                await conn.execute(sql)
            except sqlite3.OperationalError as e:
                # Column/index may already exist (partial migration or manual fix)
                if "duplicate column" in str(e).lower() or "already exists" in str(e).lower():
                    logger.debug("Migration already applied: %s", e)
                else:
                    raise
        version = next_version

    await conn.execute("UPDATE schema_version SET version = ?", (SCHEMA_VERSION,))
    await conn.commit()
    return version
