from __future__ import annotations

import argparse

from rich.table import Table

from mediatether.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("resources", help="List imported resources")
    parser.add_argument("--limit", type=int, default=50)
    parser.add_argument("--group", help="Only list resources synced by this source group (id or name)")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    engine = ctx.engine()
    group_id = engine.groups.get(args.group).id if args.group else None
    resources = engine.resources.list(limit=args.limit, group_id=group_id)

    table = Table(title=f"Resources ({len(resources)})")
    table.add_column("ID")
    table.add_column("Address")
    table.add_column("Media Type")
    table.add_column("Hosting")
    table.add_column("Size")
    table.add_column("Available")
    table.add_column("Source", overflow="fold")

    for r in resources:
        table.add_row(
            r.id,
            r.display_name,
            r.mime_type,
            r.storage_mode.value,
            str(r.size_bytes),
            "yes" if r.available else "[red]no[/red]",
            r.source_uri,
        )

    ctx.console.print(table)
    return 0
