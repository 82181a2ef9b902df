from __future__ import annotations

import argparse

from mediatether.cli.context import CLIContext
from mediatether.core.errors import HostingSwitchError
from mediatether.domain.models.resource import StorageMode


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("switch", help="Move a resource between embedded and referenced hosting")
    parser.add_argument("resource_id")
    parser.add_argument("target", choices=[mode.value for mode in StorageMode])
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    engine = ctx.engine()
    record = engine.resources.get(args.resource_id)
    if record is None:
        raise HostingSwitchError(f"Resource not found: {args.resource_id}")

    updated = engine.hosting.switch(record, StorageMode(args.target))
    ctx.console.print(f"[green]{updated.display_name}[/green] is now {updated.storage_mode.value}")
    return 0
