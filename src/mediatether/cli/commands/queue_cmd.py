from __future__ import annotations

import argparse

from rich.table import Table

from mediatether.cli.commands._render import report_table
from mediatether.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("queue", help="Inspect and drain the deferred import queue")
    queue_sub = parser.add_subparsers(dest="queue_command", required=True)

    list_parser = queue_sub.add_parser("list", help="List queued files")
    list_parser.add_argument("--state", choices=["new", "error"])
    list_parser.add_argument("--limit", type=int, default=100)
    list_parser.set_defaults(handler=run_list)

    process = queue_sub.add_parser("process", help="Import a batch of queued files")
    process.add_argument("--limit", type=int, help="Entries to process (default: TETHER_QUEUE_BATCH_SIZE)")
    process.set_defaults(handler=run_process)

    clear = queue_sub.add_parser("clear", help="Drop every queued file")
    clear.set_defaults(handler=run_clear)


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    entries = ctx.engine().deferred_queue.list(state=args.state, limit=args.limit)

    table = Table(title=f"Import Queue ({len(entries)})")
    table.add_column("ID")
    table.add_column("State")
    table.add_column("Queued at")
    table.add_column("URL", overflow="fold")
    table.add_column("Error", overflow="fold")
    for entry in entries:
        url = entry.url if entry.cursor is None else f"{entry.url} (from {entry.cursor})"
        table.add_row(entry.id, entry.state, entry.created_at, url, entry.error_message or "")
    ctx.console.print(table)
    return 0


def run_process(args: argparse.Namespace, ctx: CLIContext) -> int:
    engine = ctx.engine()
    report = engine.deferred_queue.process(engine.pipeline, limit=args.limit)
    ctx.console.print(report_table(report, "Queue Results"))
    return 0 if not report.errors else 1


def run_clear(args: argparse.Namespace, ctx: CLIContext) -> int:
    removed = ctx.engine().deferred_queue.clear()
    ctx.console.print(f"[green]Cleared[/green] {removed} queued file(s)")
    return 0
