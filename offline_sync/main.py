from __future__ import annotations

import asyncio
import sys
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from offline_sync.config import get_settings
from offline_sync.domain.errors import OfflineSyncError
from offline_sync.domain.models import ItemQuery, ItemUpdate, Record, SyncStatus
from offline_sync.engine import OfflineEngine
from offline_sync.reporter import print_items, print_status, print_sync_report
from offline_sync.utils.logging import configure_logging

app = typer.Typer(help="Offline-first todo client with queued sync.")

T = TypeVar("T")


def _with_engine(fn: Callable[[OfflineEngine], Awaitable[T]], bootstrap: bool = True) -> T:
    """Run ``fn`` against a fresh engine, mapping engine errors to a notice and exit 1."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    async def _main() -> T:
        engine = OfflineEngine.from_settings(settings)
        try:
            if bootstrap:
                await engine.start()
            return await fn(engine)
        finally:
            await engine.aclose()

    try:
        return asyncio.run(_main())
    except OfflineSyncError as err:
        typer.echo(err.message, err=True)
        raise typer.Exit(code=1) from err


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"remote={settings.remote_base_url}{settings.collection_path} | "
        f"state={settings.state_dir} cache={settings.cache_namespace} | "
        f"sync every {settings.sync_interval_seconds:g}s, "
        f"probe every {settings.connectivity_probe_seconds:g}s"
    )


@app.command("list")
def list_items(
    completed: Optional[bool] = typer.Option(
        None,
        "--completed/--active",
        help="Only show completed (or only active) items.",
    ),
) -> None:
    """
    List todos, falling back to the cached snapshot plus pending inserts when offline.
    """

    async def _list(engine: OfflineEngine) -> None:
        result = await engine.client().find(ItemQuery(completed=completed))
        print_items(result)

    _with_engine(_list)


@app.command()
def add(title: str = typer.Argument(..., help="Text of the new todo.")) -> None:
    """
    Add a todo. Queued locally if the remote service is unreachable.
    """
    item = Record(id=int(time.time() * 1000), title=title.strip(), completed=False)

    async def _add(engine: OfflineEngine) -> None:
        result = await engine.client().insert(item)
        if result.confirmed:
            typer.echo(f"Added {item.id}.")
        else:
            typer.echo(f"Offline: {item.id} queued, it will sync when the service is back.")

    _with_engine(_add)


@app.command()
def toggle(
    item_id: int = typer.Argument(..., help="Todo id."),
    completed: bool = typer.Option(True, "--completed/--active", help="New state."),
) -> None:
    """
    Mark a todo completed or active.
    """

    async def _toggle(engine: OfflineEngine) -> None:
        record = await engine.client().update(ItemUpdate(id=item_id, completed=completed))
        typer.echo(f"{record.id} is now {'completed' if record.completed else 'active'}.")

    _with_engine(_toggle)


@app.command()
def rename(
    item_id: int = typer.Argument(..., help="Todo id."),
    title: str = typer.Argument(..., help="New text."),
) -> None:
    """
    Change the text of a todo.
    """

    async def _rename(engine: OfflineEngine) -> None:
        record = await engine.client().update(ItemUpdate(id=item_id, title=title.strip()))
        typer.echo(f"{record.id} renamed.")

    _with_engine(_rename)


@app.command()
def remove(item_id: int = typer.Argument(..., help="Todo id.")) -> None:
    """
    Delete a todo.
    """

    async def _remove(engine: OfflineEngine) -> None:
        remaining = await engine.client().remove(ItemQuery(id=item_id))
        typer.echo(f"Removed {item_id}; {len(remaining)} left.")

    _with_engine(_remove)


@app.command("clear-completed")
def clear_completed() -> None:
    """
    Delete every completed todo.
    """

    async def _clear(engine: OfflineEngine) -> None:
        remaining = await engine.client().remove(ItemQuery(completed=True))
        typer.echo(f"Cleared completed todos; {len(remaining)} left.")

    _with_engine(_clear)


@app.command()
def status() -> None:
    """
    Show the pending queue, cache namespaces, and sync state.
    """

    async def _status(engine: OfflineEngine) -> Any:
        return await engine.status()

    print_status(_with_engine(_status, bootstrap=False))


@app.command()
def sync() -> None:
    """
    Force one reconciliation pass now. Exits 1 if any pending insert failed.
    """

    async def _sync(engine: OfflineEngine) -> Any:
        return await engine.force_sync()

    report = _with_engine(_sync, bootstrap=False)
    print_sync_report(report)
    if report.status is SyncStatus.INCOMPLETE:
        raise typer.Exit(code=1)


@app.command("prune-cache")
def prune_cache() -> None:
    """
    Evict cache namespaces from previous versions.
    """

    async def _prune(engine: OfflineEngine) -> Any:
        return await engine.prune_cache()

    evicted = _with_engine(_prune, bootstrap=False)
    typer.echo("Evicted: " + (", ".join(evicted) if evicted else "nothing"))


@app.command()
def run() -> None:
    """
    Keep syncing in the background: periodic passes plus connectivity monitoring.
    """
    settings = get_settings()

    async def _run(engine: OfflineEngine) -> None:
        typer.echo(
            f"Watching {settings.remote_base_url} "
            f"(sync every {settings.sync_interval_seconds:g}s). Ctrl-C to stop."
        )
        engine.start_background()
        await engine.wait_background()

    _with_engine(_run)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
