"""Shared CLI helpers for configuration, storage, and output formatting."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

import typer

from dataset_sync.logging_config import setup_logging
from dataset_sync.storage.base import LocalStorage
from dataset_sync.storage.memory_store import InMemoryLocalStorage
from dataset_sync.storage.remote_http import HttpRemoteStorage
from dataset_sync.storage.sqlite_store import SQLiteLocalStorage
from dataset_sync.sync.client import DatasetClient
from dataset_sync.sync.connectivity import HttpConnectivityMonitor
from dataset_sync.unified_config import UnifiedConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Closers for resources opened during a CLI command, run before the event
# loop shuts down (aiosqlite's worker thread must not outlive the loop).
_active_closers: list[Callable[[], Awaitable[None]]] = []


def get_config() -> UnifiedConfig:
    """Load configuration and apply its logging settings."""
    config = UnifiedConfig.load()
    setup_logging(config.logging.level, config.logging.file or None)
    return config


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async CLI command with proper storage cleanup.

    Replaces bare ``asyncio.run()`` to ensure aiosqlite connections and
    HTTP sessions are closed *before* the event loop is torn down.
    """

    async def _with_cleanup() -> T:
        try:
            return await coro
        finally:
            for close in reversed(_active_closers):
                try:
                    await close()
                except Exception:
                    logger.debug("Failed to close resource during cleanup", exc_info=True)
            _active_closers.clear()
            # Drain pending callbacks of aiosqlite worker threads
            await asyncio.sleep(0)

    return asyncio.run(_with_cleanup())


async def get_local_storage(config: UnifiedConfig) -> LocalStorage:
    """Open the configured local store."""
    if config.storage.backend == "memory":
        return InMemoryLocalStorage()

    db_path = config.get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    storage = SQLiteLocalStorage(db_path)
    await storage.initialize()
    _active_closers.append(storage.close)
    return storage


async def get_client(
    config: UnifiedConfig, *, probe: bool = False
) -> tuple[DatasetClient, HttpConnectivityMonitor | None]:
    """
    Build a client for the configured identity.

    Args:
        config: Unified configuration
        probe: Start a connectivity monitor polling the hub

    Returns:
        The client and the running monitor (None unless probe)
    """
    local = await get_local_storage(config)
    remote = HttpRemoteStorage(
        config.sync.hub_url,
        config.identity_id,
        timeout=config.sync.timeout_seconds,
    )
    _active_closers.append(remote.disconnect)

    monitor: HttpConnectivityMonitor | None = None
    if probe:
        monitor = HttpConnectivityMonitor(
            config.sync.probe_url,
            interval=config.sync.probe_interval_seconds,
            timeout=config.sync.timeout_seconds,
        )
        await monitor.start()
        _active_closers.append(monitor.stop)

    client = DatasetClient(
        config.identity_id,
        local,
        remote,
        monitor,
        max_retry=config.sync.max_retry,
    )
    _active_closers.append(client.close)
    return client, monitor


def output_result(data: dict[str, Any], as_json: bool = False) -> None:
    """Output result in appropriate format."""
    if as_json:
        typer.echo(json.dumps(data, indent=2, default=str))
        return

    if "error" in data:
        typer.secho(f"Error: {data['error']}", fg=typer.colors.RED, err=True)
    elif "records" in data:
        if not data["records"]:
            typer.echo("(no records)")
        for key, value in data["records"].items():
            typer.echo(f"{key} = {value}")
    elif "datasets" in data:
        if not data["datasets"]:
            typer.echo("(no datasets)")
        for meta in data["datasets"]:
            typer.echo(
                f"{meta['dataset_name']}  records={meta['record_count']}  "
                f"size={meta['storage_size_bytes']}B  sync_count={meta['last_sync_count']}"
            )
    elif "message" in data:
        typer.secho(data["message"], fg=typer.colors.GREEN)
        for warning in data.get("warnings", []):
            typer.secho(warning, fg=typer.colors.YELLOW)
    else:
        for key, value in data.items():
            typer.echo(f"{key}: {value}")
