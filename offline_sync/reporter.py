from __future__ import annotations

from typing import Any, Dict, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from offline_sync.domain.models import FindResult, SyncReport, SyncStatus

_STATUS_STYLES = {
    SyncStatus.SUCCEEDED: "green",
    SyncStatus.EMPTY: "dim",
    SyncStatus.SKIPPED: "yellow",
    SyncStatus.INCOMPLETE: "red",
}


def print_items(result: FindResult, console: Optional[Console] = None) -> None:
    """
    Render a list of todos as a rich table.

    Items not yet confirmed by the remote service are flagged so the user can
    tell what still lives only in the local queue.
    """
    console = console or Console()

    if not result.items:
        console.print("[yellow]Nothing to do.[/yellow]")
        return

    title = "Todos"
    if result.date is not None:
        title = f"{title}\n[dim]As of {result.date:%Y-%m-%d %H:%M:%S %Z}[/dim]"

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Done", justify="center", style="green")
    table.add_column("Synced", justify="center")

    for item in result.items:
        table.add_row(
            str(item.id),
            item.title,
            "✓" if item.completed else "",
            "[green]yes[/green]" if item.synced else "[yellow]pending[/yellow]",
        )

    console.print(table)
    if result.counts is not None:
        counts = result.counts
        console.print(
            f"[dim]{counts.active} active · {counts.completed} completed · {counts.total} total[/dim]"
        )


def print_sync_report(report: SyncReport, console: Optional[Console] = None) -> None:
    console = console or Console()
    style = _STATUS_STYLES.get(report.status, "white")
    line = f"[{style}]Sync {report.status.value}[/{style}]"
    if report.attempted:
        line += f" ({report.attempted - len(report.failed_ids)}/{report.attempted} replayed)"
    console.print(line)
    if report.failed_ids:
        console.print(f"[red]Failed ids: {', '.join(str(i) for i in report.failed_ids)}[/red]")


def print_status(status: Dict[str, Any], console: Optional[Console] = None) -> None:
    """Render the engine's pending queue and cache state."""
    console = console or Console()

    table = Table(title="Offline Sync Status", box=box.ROUNDED, show_header=False)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="magenta")

    table.add_row("Remote", str(status["remote"]))
    table.add_row("Pending inserts", str(status["pending"]))
    table.add_row("Active namespace", str(status["namespace"]))
    stale = [name for name in status["namespaces"] if name != status["namespace"]]
    table.add_row("Stale namespaces", ", ".join(stale) or "-")
    table.add_row("Cached entries", str(status["cached_keys"]))
    for key in ("last_attempted_at", "last_succeeded_at", "last_error"):
        value = status.get(key)
        table.add_row(key.replace("_", " ").capitalize(), str(value) if value else "-")

    console.print(table)

    if status.get("pending_items"):
        pending = Table(title="Pending Inserts", box=box.SIMPLE)
        pending.add_column("ID", justify="right", style="cyan")
        pending.add_column("Title")
        for item in status["pending_items"]:
            pending.add_row(str(item["id"]), item["title"])
        console.print(pending)
