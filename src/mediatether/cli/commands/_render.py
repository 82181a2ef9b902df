from __future__ import annotations

from rich.table import Table

from mediatether.domain.models.results import ImportReport, ResultKind

_STATUS_STYLES = {
    ResultKind.SUCCESS: "[green]imported[/green]",
    ResultKind.SKIPPED: "[yellow]skipped[/yellow]",
    ResultKind.ERROR: "[red]error[/red]",
}


def report_table(report: ImportReport, title: str) -> Table:
    table = Table(title=title)
    table.add_column("URL", overflow="fold")
    table.add_column("Status")
    table.add_column("Message", overflow="fold")
    for result in report.results:
        table.add_row(result.url, _STATUS_STYLES[result.kind], result.message)
    for url in report.deferred_urls:
        table.add_row(url, "[cyan]queued[/cyan]", "Deferred to the import queue")
    return table
