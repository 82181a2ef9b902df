from __future__ import annotations

import argparse

from rich.table import Table

from mediatether.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("sync", help="Reconcile a source group with its remote collection")
    parser.add_argument("group_id", help="Group id or name")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    engine = ctx.engine()
    group = engine.groups.get(args.group_id)

    with ctx.console.status(f"Synchronizing {group.name}"):
        outcome = engine.sync.sync_group(group.id)

    table = Table(title=f"Sync {group.name}")
    table.add_column("Metric")
    table.add_column("Value", overflow="fold")
    table.add_row("Confirmed", str(outcome.imported))
    table.add_row("Errors", str(outcome.errors))
    table.add_row("Deleted", str(len(outcome.deleted)))
    if outcome.deletion_skipped_reason:
        table.add_row("Cleanup skipped", outcome.deletion_skipped_reason)
    for url in outcome.deleted:
        table.add_row("[red]removed[/red]", url)

    ctx.console.print(table)
    return 0 if outcome.errors == 0 else 1
