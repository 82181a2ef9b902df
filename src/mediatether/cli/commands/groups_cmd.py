from __future__ import annotations

import argparse

from rich.table import Table

from mediatether.cli.context import CLIContext
from mediatether.domain.models.resource import Credentials


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("groups", help="Manage synchronized source groups")
    groups_sub = parser.add_subparsers(dest="groups_command", required=True)

    add = groups_sub.add_parser("add", help="Register a remote collection to keep in sync")
    add.add_argument("name")
    add.add_argument("url")
    add.add_argument("--interval", type=int, default=86_400, help="Seconds between scheduled syncs")
    add.add_argument(
        "--no-delete-unused",
        action="store_true",
        help="Keep records whose remote file disappeared",
    )
    add.add_argument("--login")
    add.add_argument("--password")
    add.set_defaults(handler=run_add)

    list_parser = groups_sub.add_parser("list", help="List source groups")
    list_parser.set_defaults(handler=run_list)

    remove = groups_sub.add_parser("remove", help="Remove a source group")
    remove.add_argument("group_id", help="Group id or name")
    remove.add_argument("--keep-files", action="store_true", help="Keep the resources the group synced")
    remove.set_defaults(handler=run_remove)


def run_add(args: argparse.Namespace, ctx: CLIContext) -> int:
    engine = ctx.engine()
    group = engine.groups.create(
        args.name,
        args.url,
        credentials=Credentials.from_parts(args.login, args.password),
        interval_seconds=args.interval,
        delete_unused=not args.no_delete_unused,
    )
    ctx.console.print(f"[green]Added source group[/green] {group.name} ({group.id})")
    return 0


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    engine = ctx.engine()
    groups = engine.groups.list()

    table = Table(title=f"Source Groups ({len(groups)})")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("URL", overflow="fold")
    table.add_column("Interval")
    table.add_column("Delete unused")
    table.add_column("Last synced")
    for group in groups:
        table.add_row(
            group.id,
            group.name,
            group.url,
            f"{group.interval_seconds}s",
            "yes" if group.delete_unused else "no",
            group.last_synced_at or "never",
        )
    ctx.console.print(table)
    return 0


def run_remove(args: argparse.Namespace, ctx: CLIContext) -> int:
    engine = ctx.engine()
    group = engine.groups.get(args.group_id)
    removed = engine.groups.remove(group.id, keep_files=args.keep_files)
    ctx.console.print(f"[green]Removed source group[/green] {group.name}; deleted {removed} resource(s)")
    return 0
