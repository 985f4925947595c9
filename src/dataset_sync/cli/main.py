"""dataset-sync CLI main entry point."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Annotated, Any, NoReturn, Optional

import typer
import uvicorn

from dataset_sync.cli._helpers import get_client, get_config, output_result, run_async
from dataset_sync.cli.sync_callback import ConflictStrategy, StrategyCallback
from dataset_sync.core.record import validate_dataset_name
from dataset_sync.sync.connectivity import CancellationToken

# Main app
app = typer.Typer(
    name="dsync",
    help="dataset-sync - key/value datasets kept in sync with a hub",
    no_args_is_help=True,
)


@dataclass
class CLIState:
    """Options shared by every command."""

    dataset: str | None = None
    json_output: bool = False


def _state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        state = CLIState()
        ctx.obj = state
    return state


def _fail(message: str, as_json: bool) -> NoReturn:
    output_result({"error": message}, as_json)
    raise typer.Exit(1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    dataset: Annotated[
        Optional[str],
        typer.Option("--dataset", "-d", help="Dataset to use (default: current_dataset)"),
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Work with the local datasets of the configured identity."""
    ctx.obj = CLIState(dataset=dataset, json_output=json_output)


def _dataset_name(state: CLIState, current: str) -> str:
    name = state.dataset or current
    try:
        return validate_dataset_name(name)
    except ValueError as e:
        _fail(str(e), state.json_output)


@app.command()
def put(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Record key")],
    value: Annotated[str, typer.Argument(help="Record value")],
) -> None:
    """Write a record locally. It is pushed on the next sync.

    Examples:
        dsync put theme dark
        dsync -d profile put name Ada
    """
    state = _state(ctx)

    async def _put() -> dict[str, Any]:
        config = get_config()
        client, _ = await get_client(config)
        dataset = client.open_or_create_dataset(_dataset_name(state, config.current_dataset))
        try:
            await dataset.put(key, value)
        except ValueError as e:
            return {"error": str(e)}
        return {"message": f"Stored {key} in {dataset.name}", "key": key, "value": value}

    result = run_async(_put())
    output_result(result, state.json_output)
    if "error" in result:
        raise typer.Exit(1)


@app.command()
def get(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Record key")],
) -> None:
    """Read a record from the local copy."""
    state = _state(ctx)

    async def _get() -> dict[str, Any]:
        config = get_config()
        client, _ = await get_client(config)
        dataset = client.open_or_create_dataset(_dataset_name(state, config.current_dataset))
        try:
            value = await dataset.get(key)
        except ValueError as e:
            return {"error": str(e)}
        if value is None:
            return {"error": f"No value for {key} in {dataset.name}"}
        return {"key": key, "value": value, "modified": await dataset.is_changed(key)}

    result = run_async(_get())
    if "error" in result:
        _fail(result["error"], state.json_output)
    if state.json_output:
        output_result(result, as_json=True)
    else:
        typer.echo(result["value"])


@app.command()
def remove(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Record key")],
) -> None:
    """Remove a record. The deletion is pushed on the next sync."""
    state = _state(ctx)

    async def _remove() -> dict[str, Any]:
        config = get_config()
        client, _ = await get_client(config)
        dataset = client.open_or_create_dataset(_dataset_name(state, config.current_dataset))
        try:
            await dataset.remove(key)
        except ValueError as e:
            return {"error": str(e)}
        return {"message": f"Removed {key} from {dataset.name}", "key": key}

    result = run_async(_remove())
    output_result(result, state.json_output)
    if "error" in result:
        raise typer.Exit(1)


@app.command("list")
def list_records(ctx: typer.Context) -> None:
    """Show the live records of the dataset."""
    state = _state(ctx)

    async def _list() -> dict[str, Any]:
        config = get_config()
        client, _ = await get_client(config)
        dataset = client.open_or_create_dataset(_dataset_name(state, config.current_dataset))
        return {"dataset": dataset.name, "records": dict(sorted((await dataset.get_all()).items()))}

    output_result(run_async(_list()), state.json_output)


@app.command()
def datasets(
    ctx: typer.Context,
    remote: Annotated[
        bool, typer.Option("--remote", "-r", help="List the datasets on the hub instead")
    ] = False,
) -> None:
    """List datasets of the identity with their size and sync state."""
    state = _state(ctx)

    async def _datasets() -> dict[str, Any]:
        config = get_config()
        client, _ = await get_client(config)
        try:
            metadata = (
                await client.list_remote_datasets() if remote else await client.list_datasets()
            )
        except Exception as e:
            return {"error": f"Could not list datasets: {e}"}
        return {"datasets": [m.to_dict() for m in metadata]}

    result = run_async(_datasets())
    output_result(result, state.json_output)
    if "error" in result:
        raise typer.Exit(1)


@app.command()
def status(ctx: typer.Context) -> None:
    """Show the sync state of the dataset."""
    state = _state(ctx)

    async def _status() -> dict[str, Any]:
        config = get_config()
        client, _ = await get_client(config)
        dataset = client.open_or_create_dataset(_dataset_name(state, config.current_dataset))
        metadata = await dataset.get_metadata()
        records = await dataset.get_all_records()
        return {
            "identity_id": client.identity_id,
            "dataset": dataset.name,
            "hub_url": config.sync.hub_url,
            "exists_locally": metadata is not None,
            "deleted_locally": bool(metadata and metadata.is_deleted_locally),
            "last_sync_count": metadata.last_sync_count if metadata else 0,
            "record_count": metadata.record_count if metadata else 0,
            "storage_size_bytes": metadata.storage_size_bytes if metadata else 0,
            "pending_changes": sum(1 for r in records if r.modified),
        }

    output_result(run_async(_status()), state.json_output)


@app.command()
def sync(
    ctx: typer.Context,
    strategy: Annotated[
        ConflictStrategy,
        typer.Option("--strategy", "-s", help="Conflict handling: remote, local or abort"),
    ] = ConflictStrategy.REMOTE,
    on_connectivity: Annotated[
        bool,
        typer.Option(
            "--on-connectivity", "-c", help="Wait for the hub if it is unreachable"
        ),
    ] = False,
    wait: Annotated[
        float,
        typer.Option("--wait", "-w", help="Seconds to wait with --on-connectivity"),
    ] = 300.0,
    all_datasets: Annotated[
        bool, typer.Option("--all", "-a", help="Synchronize every local dataset")
    ] = False,
) -> None:
    """Synchronize the dataset with the hub.

    Examples:
        dsync sync                       # keep remote values on conflict
        dsync sync --strategy local      # keep local values on conflict
        dsync sync --on-connectivity     # wait for the hub to come back
        dsync sync --all
    """
    state = _state(ctx)

    async def _sync() -> dict[str, Any]:
        config = get_config()
        client, _ = await get_client(config, probe=True)

        if all_datasets:
            callback = StrategyCallback(client, strategy)
            results = await client.synchronize_all(callback)
            failed = [r.dataset_name for r in results if not r.succeeded]
            if failed:
                return {"error": f"Failed to synchronize: {', '.join(failed)}"}
            return {"message": f"Synchronized {len(results)} datasets"}

        dataset = client.open_or_create_dataset(_dataset_name(state, config.current_dataset))
        callback = StrategyCallback(client, strategy)

        if on_connectivity:
            handle = dataset.synchronize_on_connectivity(callback)
            if isinstance(handle, CancellationToken):
                pending = dataset.pending_sync
                typer.echo(f"Hub unreachable, waiting up to {wait:.0f}s...", err=True)
                try:
                    async with asyncio.timeout(wait):
                        while pending is not None and pending.task is None:
                            await asyncio.sleep(0.5)
                except TimeoutError:
                    dataset.discard_pending_sync()
                    return {"error": "Hub did not become reachable in time"}
                assert pending is not None and pending.task is not None
                result = await pending.task
            else:
                result = await handle
        else:
            result = await dataset.synchronize(callback)

        if not result.succeeded:
            return {"error": str(callback.error) if callback.error else "Sync failed"}

        response: dict[str, Any] = {
            "message": f"Synchronized {dataset.name}",
            "pulled": len(callback.pulled),
            "pushed": result.pushed,
            "attempts": result.attempts,
        }
        warnings = []
        if callback.conflicts_resolved:
            warnings.append(
                f"Resolved {callback.conflicts_resolved} conflicts keeping {strategy.value} values"
            )
        if callback.folded:
            warnings.append(f"Folded merged datasets: {', '.join(callback.folded)}")
        if warnings:
            response["warnings"] = warnings
        return response

    result = run_async(_sync())
    output_result(result, state.json_output)
    if "error" in result:
        raise typer.Exit(1)


@app.command()
def delete(
    ctx: typer.Context,
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation")] = False,
) -> None:
    """Delete the dataset locally. The deletion is pushed on the next sync."""
    state = _state(ctx)
    config = get_config()
    name = _dataset_name(state, config.current_dataset)
    if not force and not typer.confirm(f"Delete dataset {name}?"):
        raise typer.Abort()

    async def _delete() -> dict[str, Any]:
        client, _ = await get_client(config)
        await client.open_or_create_dataset(name).delete()
        return {"message": f"Deleted {name}; run 'dsync sync' to delete it on the hub"}

    output_result(run_async(_delete()), state.json_output)


@app.command()
def use(
    ctx: typer.Context,
    dataset: Annotated[str, typer.Argument(help="Dataset to make current")],
) -> None:
    """Switch the dataset used by commands without --dataset."""
    state = _state(ctx)
    config = get_config()
    try:
        config.use_dataset(validate_dataset_name(dataset))
    except ValueError as e:
        _fail(str(e), state.json_output)
    output_result({"message": f"Current dataset: {dataset}"}, state.json_output)


@app.command()
def serve(
    host: Annotated[str, typer.Option("--host", "-h", help="Host to bind to")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Port to bind to")] = 8000,
    reload: Annotated[
        bool, typer.Option("--reload", "-r", help="Enable auto-reload for development")
    ] = False,
) -> None:
    """Run the hub server.

    Examples:
        dsync serve                    # Run on localhost:8000
        dsync serve -p 9000            # Run on port 9000
        dsync serve --host 0.0.0.0     # Expose to network
    """
    config = get_config()
    typer.echo(f"Starting dataset-sync hub on http://{host}:{port}")
    typer.echo(f"  Docs: http://{host}:{port}/docs")

    uvicorn.run(
        "dataset_sync.server.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
        log_level=config.logging.level.lower(),
    )


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
