from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from mediatether.cli.commands import (
    cache_cmd,
    check_cmd,
    groups_cmd,
    import_cmd,
    init_cmd,
    queue_cmd,
    resources_cmd,
    schedule_cmd,
    switch_cmd,
    sync_cmd,
    web_cmd,
)
from mediatether.cli.context import CLIContext
from mediatether.core.config import load_paths
from mediatether.core.errors import TetherError
from mediatether.core.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tether",
        description="Import, proxy and synchronize remote media resources",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Project root to use for .tether data (default: current working directory)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)

    subparsers = parser.add_subparsers(dest="command", required=True)
    init_cmd.register(subparsers)
    import_cmd.register(subparsers)
    resources_cmd.register(subparsers)
    groups_cmd.register(subparsers)
    sync_cmd.register(subparsers)
    cache_cmd.register(subparsers)
    check_cmd.register(subparsers)
    switch_cmd.register(subparsers)
    queue_cmd.register(subparsers)
    schedule_cmd.register(subparsers)
    web_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    console = Console()
    configure_logging(args.verbose)

    paths = load_paths(args.project_root)
    ctx = CLIContext(paths=paths, console=console)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2

    try:
        return handler(args, ctx)
    except TetherError as exc:
        logger.error(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
