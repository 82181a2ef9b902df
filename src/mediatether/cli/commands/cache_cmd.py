from __future__ import annotations

import argparse

from rich.table import Table

from mediatether.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("cache", help="Inspect or purge the proxy cache")
    cache_sub = parser.add_subparsers(dest="cache_command", required=True)

    purge = cache_sub.add_parser("purge", help="Delete every cached copy")
    purge.set_defaults(handler=run_purge)

    status = cache_sub.add_parser("status", help="Show freshness of cached referenced resources")
    status.add_argument("--limit", type=int, default=100)
    status.set_defaults(handler=run_status)


def run_purge(args: argparse.Namespace, ctx: CLIContext) -> int:
    removed = ctx.engine().proxy_cache.purge()
    ctx.console.print(f"[green]Purged[/green] {removed} cached file(s)")
    return 0


def run_status(args: argparse.Namespace, ctx: CLIContext) -> int:
    engine = ctx.engine()
    records = engine.resource_repo.list_referenced()[: args.limit]

    table = Table(title=f"Proxy Cache ({len(records)})")
    table.add_column("Address")
    table.add_column("Proxied")
    table.add_column("Cache file")
    table.add_column("State")
    for record in records:
        path = engine.proxy_cache.cache_path(record)
        if engine.proxy_cache.is_cached(record):
            state = "[green]fresh[/green]"
        elif path.is_file():
            state = "[yellow]stale[/yellow]"
        else:
            state = "missing"
        table.add_row(
            record.display_name,
            "yes" if engine.mime_policy.proxy_enabled(record.mime_type) else "no",
            path.name,
            state,
        )
    ctx.console.print(table)
    return 0
