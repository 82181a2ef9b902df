from __future__ import annotations

import argparse

from rich.table import Table

from mediatether.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("schedule", help="Run recurring maintenance jobs")
    schedule_sub = parser.add_subparsers(dest="schedule_command", required=True)

    run_parser = schedule_sub.add_parser(
        "run",
        help="Sync due groups, drain the import queue and check availability (run from cron)",
    )
    run_parser.add_argument("--skip-check", action="store_true", help="Skip the availability sweep")
    run_parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    engine = ctx.engine()
    report = engine.scheduler.run_due(check_availability=not args.skip_check)

    table = Table(title="Scheduled Run")
    table.add_column("Job")
    table.add_column("Result", overflow="fold")
    for outcome in report.synced:
        table.add_row(
            f"sync {outcome.source_group_id}",
            f"{outcome.imported} confirmed, {outcome.errors} failed, {len(outcome.deleted)} deleted",
        )
    for group_id, message in report.failures.items():
        table.add_row(f"sync {group_id}", f"[red]{message}[/red]")
    table.add_row("queue", f"{report.queue_processed} entr(ies) processed")
    if report.availability is not None:
        table.add_row(
            "availability",
            f"{report.availability.unavailable} of {report.availability.checked} unusable",
        )
    ctx.console.print(table)
    return 0 if not report.failures else 1
