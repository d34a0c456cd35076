"""
TourneySync CLI Main Entry Point.

Operator commands for inspecting the local replica, the change queue and
sync state, and for triggering a sync cycle by hand.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import click
import humanize
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tourneysync import __version__
from tourneysync.core.config import TourneySyncConfig, load_config
from tourneysync.core.models import (
    LAST_MODIFIED,
    LOCAL_ID,
    SYNC_STATUS,
    ChangeQueueEntry,
)
from tourneysync.core.session import Session
from tourneysync.store.queue import retry_delay

console = Console()

_STATUS_STYLES = {
    "idle": "green",
    "syncing": "cyan",
    "offline": "yellow",
    "error": "red",
    "synced": "green",
    "pending": "yellow",
    "conflict": "magenta",
}


def get_session(ctx: click.Context) -> Session:
    """Get or create session from context."""
    if "session" not in ctx.obj:
        config = ctx.obj.get("config") or load_config()
        session = Session(config=config)
        ctx.obj["session"] = session
        ctx.call_on_close(session.close)
    return ctx.obj["session"]


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _styled(value: str) -> str:
    style = _STATUS_STYLES.get(value, "white")
    return f"[{style}]{value}[/{style}]"


def _age(timestamp_ms: int | None) -> str:
    if not timestamp_ms:
        return "-"
    return humanize.naturaltime(datetime.now() - datetime.fromtimestamp(timestamp_ms / 1000))


def _queue_table(title: str, entries: list[ChangeQueueEntry]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Table", style="white")
    table.add_column("Op", style="yellow")
    table.add_column("Local", justify="right")
    table.add_column("Server ID", style="dim")
    table.add_column("Queued", style="green")
    table.add_column("Attempts", justify="right")
    table.add_column("Next retry")
    table.add_column("Last error", style="red")

    for entry in entries:
        if entry.is_permanent_failure:
            next_retry = "[red]never[/red]"
        elif entry.attempts:
            next_retry = humanize.naturaldelta(timedelta(milliseconds=retry_delay(entry.attempts)))
        else:
            next_retry = "next cycle"
        table.add_row(
            str(entry.id),
            entry.table,
            entry.operation.value,
            str(entry.local_id),
            entry.record_id or "-",
            _age(entry.timestamp),
            str(entry.attempts),
            next_retry,
            (entry.last_error or "")[:60],
        )
    return table


@click.group()
@click.version_option(version=__version__, prog_name="TourneySync")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, json_output: bool) -> None:
    """
    TourneySync - Offline-first sync for tournament data.

    Inspect the local replica and pending changes, and reconcile them with
    the remote store.
    """
    ctx.ensure_object(dict)

    if config:
        loaded = TourneySyncConfig.load(config)
        loaded.ensure_directories()
        ctx.obj["config"] = loaded
    else:
        ctx.obj["config"] = load_config()

    ctx.obj["json_output"] = json_output


@cli.command("status")
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show connectivity, queue depth and the last sync report."""
    session = get_session(ctx)
    info = session.status()

    if ctx.obj.get("json_output"):
        echo_json(info)
        return

    last = info["last_sync"]
    if last:
        summary = last["summary"]
        last_line = (
            f"{last['ended_at'] or last['started_at']} ({_styled(last['status'])}): "
            f"pushed {summary['pushed']}, pulled {summary['pulled']}, "
            f"conflicts {summary['conflicts']}"
        )
    else:
        last_line = "never"

    latency = f" ({info['latency_ms']:.0f} ms)" if info["latency_ms"] is not None else ""

    console.print(
        Panel(
            f"Status: {_styled(info['status'])}\n"
            f"Online: {'yes' if info['online'] else 'no'}{latency}\n"
            f"Pending changes: {info['pending_changes']}\n"
            f"Failed changes: {info['failed_changes']}\n"
            f"Last sync: {last_line}",
            title="TourneySync",
        )
    )


@cli.command("sync")
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Run one push/pull cycle now."""
    session = get_session(ctx)

    if not session.engine.is_online_now():
        console.print("[yellow]Offline - changes stay queued until connectivity returns[/yellow]")
        sys.exit(1)

    with console.status("Syncing..."):
        report = session.engine.sync()

    if report is None:
        console.print("[yellow]A sync cycle is already running[/yellow]")
        sys.exit(1)

    if ctx.obj.get("json_output"):
        echo_json(report.to_dict())
        return

    summary = report.summary
    console.print(
        Panel(
            f"Status: {_styled(report.status.value)}\n"
            f"Pushed: {summary.pushed}  Failed: {summary.failed}  "
            f"Permanently failed: {summary.permanently_failed}\n"
            f"Pulled: {summary.pulled}  Inserted: {summary.inserted}  "
            f"Updated: {summary.updated}\n"
            f"Conflicts: {summary.conflicts}  Awaiting review: {summary.unresolved_conflicts}",
            title="Sync Report",
        )
    )
    for table_name in report.skipped_tables:
        console.print(f"[yellow]Skipped table: {table_name}[/yellow]")
    for error in report.errors:
        console.print(f"[red]✗ {error}[/red]")

    if report.errors:
        sys.exit(1)


@cli.group("queue")
def queue_group() -> None:
    """Inspect and manage queued local changes."""


@queue_group.command("list")
@click.option("--table", "-t", default=None, help="Only show changes for this table")
@click.pass_context
def queue_list(ctx: click.Context, table: str | None) -> None:
    """List queued changes, oldest first."""
    session = get_session(ctx)
    if table:
        entries = session.queue.list_pending_for_table(table)
    else:
        entries = session.queue.list_pending()

    if ctx.obj.get("json_output"):
        echo_json([entry.to_dict() for entry in entries])
        return

    if not entries:
        console.print("[green]No pending changes[/green]")
        return
    console.print(_queue_table("Change Queue", entries))


@queue_group.command("failed")
@click.pass_context
def queue_failed(ctx: click.Context) -> None:
    """List changes that exhausted their retries."""
    session = get_session(ctx)
    entries = session.queue.list_failed()

    if ctx.obj.get("json_output"):
        echo_json([entry.to_dict() for entry in entries])
        return

    if not entries:
        console.print("[green]No failed changes[/green]")
        return
    console.print(_queue_table("Failed Changes", entries))


@queue_group.command("clear-failed")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def queue_clear_failed(ctx: click.Context, yes: bool) -> None:
    """Discard changes that exhausted their retries."""
    session = get_session(ctx)
    failed = len(session.queue.list_failed())

    if not failed:
        console.print("[green]No failed changes[/green]")
        return

    if not yes and not click.confirm(f"Discard {failed} failed change(s)?"):
        console.print("[yellow]Cancelled[/yellow]")
        return

    removed = session.queue.clear_failed()
    if ctx.obj.get("json_output"):
        echo_json({"removed": removed})
    else:
        console.print(f"[green]✓ Removed {removed} failed change(s)[/green]")


@cli.command("conflicts")
@click.option("--table", "table_name", help="Only show one table")
@click.pass_context
def conflicts(ctx: click.Context, table_name: str | None) -> None:
    """List records awaiting manual conflict resolution."""
    session = get_session(ctx)
    flagged = session.records.list_conflicts(table_name)

    if ctx.obj.get("json_output"):
        echo_json(flagged)
        return

    if not flagged:
        console.print("[green]No unresolved conflicts[/green]")
        return

    table = Table(title="Unresolved Conflicts")
    table.add_column("Table", style="cyan")
    table.add_column("Local", justify="right")
    table.add_column("Server ID", style="dim")
    table.add_column("Modified", style="green")
    for item in flagged:
        record = item["record"]
        table.add_row(
            item["table"],
            str(item["local_id"]),
            record.get("id") or "-",
            _age(record.get(LAST_MODIFIED)),
        )
    console.print(table)


@cli.command("records")
@click.argument("table_name")
@click.option("--status", "status_filter", type=click.Choice(["synced", "pending", "conflict", "error"]))
@click.option("--limit", default=50, show_default=True, help="Maximum rows to show")
@click.pass_context
def records(ctx: click.Context, table_name: str, status_filter: str | None, limit: int) -> None:
    """Show records held in the local replica for TABLE_NAME."""
    session = get_session(ctx)
    rows = session.records.all_records(table_name)
    if status_filter:
        rows = [row for row in rows if row.get(SYNC_STATUS) == status_filter]

    if ctx.obj.get("json_output"):
        echo_json(rows[:limit])
        return

    if not rows:
        console.print(f"[yellow]No records in {table_name}[/yellow]")
        return

    table = Table(title=f"{table_name} ({len(rows)} records)")
    table.add_column("Local", style="cyan", justify="right")
    table.add_column("Server ID", style="dim")
    table.add_column("Status")
    table.add_column("Modified", style="green")
    table.add_column("Fields", style="white")
    for row in rows[:limit]:
        fields = {k: v for k, v in row.items() if not k.startswith("_") and k != "id"}
        table.add_row(
            str(row[LOCAL_ID]),
            row.get("id") or "-",
            _styled(row.get(SYNC_STATUS, "pending")),
            _age(row.get(LAST_MODIFIED)),
            json.dumps(fields, default=str)[:80],
        )
    console.print(table)


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
