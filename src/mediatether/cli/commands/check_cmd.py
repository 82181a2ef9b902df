from __future__ import annotations

import argparse

from rich.table import Table

from mediatether.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("check", help="Probe every referenced resource for availability")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    report = ctx.engine().availability.check_all()

    if report.ok:
        ctx.console.print(f"[green]All {report.checked} referenced resource(s) are available[/green]")
        return 0

    table = Table(title=f"Availability ({report.unavailable} of {report.checked} unusable)")
    table.add_column("Source", overflow="fold")
    table.add_column("Problem", overflow="fold")
    for issue in report.issues:
        table.add_row(issue.source_uri, issue.message)
    ctx.console.print(table)
    return 1
