from __future__ import annotations

import argparse

from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from mediatether.application.services.import_service import ImportContext
from mediatether.cli.commands._render import report_table
from mediatether.cli.context import CLIContext
from mediatether.domain.models.resource import Credentials
from mediatether.domain.models.results import ImportReport


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("import", help="Import files or remote directories by URL")
    parser.add_argument("urls", nargs="+", help="file://, ftp://, http(s):// or sftp:// URLs")
    parser.add_argument("--login")
    parser.add_argument("--password")
    parser.add_argument(
        "--update",
        action="store_true",
        help="Refresh records that are already in the library instead of skipping them",
    )
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    engine = ctx.engine()
    credentials = Credentials.from_parts(args.login, args.password)
    combined = ImportReport(url=", ".join(args.urls))

    progress = Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        console=ctx.console,
    )

    with progress:
        for url in args.urls:
            task = progress.add_task(f"Importing {url}", total=None)
            listed = [0]

            def on_listing(count: int, task=task, listed=listed) -> None:
                listed[0] += count
                progress.update(task, total=listed[0])

            context = ImportContext(
                check_duplicates=not args.update,
                on_listing=on_listing,
                on_progress=lambda _descriptor, task=task: progress.advance(task, 1),
            )
            combined.merge(engine.pipeline.run_all(url, credentials, context=context))

    ctx.console.print(report_table(combined, "Import Results"))
    if combined.deferred:
        queued = f"{len(combined.deferred_urls)} file(s)"
        if combined.deferred_listings:
            queued += f" and {len(combined.deferred_listings)} unread listing(s)"
        ctx.console.print(f"[cyan]{queued} queued[/cyan]; run 'tether queue process' to continue")
    return 0 if not combined.errors else 1
