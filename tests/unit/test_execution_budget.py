from __future__ import annotations

from pathlib import Path

import pytest
from conftest import PDF_BYTES, FakeClock, FakeRemote, bootstrap_engine

from mediatether.application.services.import_service import ExecutionBudget, ImportContext
from mediatether.core.config import Settings
from mediatether.core.errors import ExecutionBudgetExceeded
from mediatether.domain.models.results import ResultKind

BUDGETED = Settings(
    execution_ceiling_seconds=5,
    execution_safety_margin_seconds=1,
    max_execution_check=True,
)
PAGED = Settings(
    execution_ceiling_seconds=5,
    execution_safety_margin_seconds=1,
    max_execution_check=True,
    listing_page_size=3,
)


def _seed(remote: FakeRemote, count: int) -> list[str]:
    urls = [f"fake://host/batch/{index:02d}.pdf" for index in range(count)]
    for url in urls:
        remote.put(url, PDF_BYTES, "application/pdf")
    return urls


def test_budget_check_raises_once_margin_is_reached() -> None:
    clock = FakeClock()
    budget = ExecutionBudget(ceiling_seconds=5, safety_margin_seconds=1, clock=clock)
    budget.start()

    clock.advance(3.9)
    budget.check()
    clock.advance(0.1)
    with pytest.raises(ExecutionBudgetExceeded):
        budget.check()


def test_disabled_budget_never_fires() -> None:
    clock = FakeClock()
    budget = ExecutionBudget(ceiling_seconds=5, safety_margin_seconds=1, enabled=False, clock=clock)
    budget.start()
    clock.advance(1_000)
    assert not budget.exhausted()
    assert not ExecutionBudget().exhausted()


def test_exhausted_budget_defers_untouched_tail(tmp_path: Path, remote: FakeRemote) -> None:
    clock = FakeClock()
    engine = bootstrap_engine(tmp_path, remote, BUDGETED, monotonic=clock)
    urls = _seed(remote, 7)

    context = ImportContext(on_progress=lambda _descriptor: clock.advance(1))
    report = engine.pipeline.run("fake://host/batch/", context=context)

    assert report.deferred
    assert report.deferred_urls == urls[4:]
    assert [r.url for r in report.succeeded] == urls[:4]
    assert all(r.kind is ResultKind.SKIPPED for r in report.results[4:])
    assert {r.source_uri for r in engine.resource_repo.list()} == set(urls[:4])

    queued = engine.deferred_queue.list()
    assert sorted(entry.url for entry in queued) == urls[4:]
    assert all(entry.state == "new" for entry in queued)


def test_queue_processing_imports_deferred_files(tmp_path: Path, remote: FakeRemote) -> None:
    clock = FakeClock()
    engine = bootstrap_engine(tmp_path, remote, BUDGETED, monotonic=clock)
    urls = _seed(remote, 6)
    engine.pipeline.run("fake://host/batch/", context=ImportContext(on_progress=lambda _d: clock.advance(1)))
    assert len(engine.deferred_queue.list()) == 2

    report = engine.deferred_queue.process(engine.pipeline)

    assert len(report.succeeded) == 2
    assert engine.deferred_queue.list() == []
    assert {r.source_uri for r in engine.resource_repo.list()} == set(urls)


def test_queue_marks_failed_entries(tmp_path: Path, remote: FakeRemote) -> None:
    engine = bootstrap_engine(tmp_path, remote)
    engine.deferred_queue.defer(["fake://host/gone/missing.pdf"])

    report = engine.deferred_queue.process(engine.pipeline)

    assert not report.ok
    entries = engine.deferred_queue.list()
    assert len(entries) == 1
    assert entries[0].state == "error"
    assert "missing.pdf" in (entries[0].error_message or "")

    assert engine.deferred_queue.clear() == 1
    assert engine.deferred_queue.list() == []


def test_queue_processing_stops_when_its_own_budget_runs_out(tmp_path: Path, remote: FakeRemote) -> None:
    engine = bootstrap_engine(tmp_path, remote)
    urls = _seed(remote, 3)
    engine.deferred_queue.defer(urls)
    clock = FakeClock()
    budget = ExecutionBudget(ceiling_seconds=5, safety_margin_seconds=1, clock=clock)
    budget.start()
    clock.advance(10)

    report = engine.deferred_queue.process(engine.pipeline, budget=budget)

    assert report.deferred
    assert report.results == []
    assert len(engine.deferred_queue.list()) == 3


def test_exhausted_budget_queues_unread_listing_pages(tmp_path: Path, remote: FakeRemote) -> None:
    clock = FakeClock()
    engine = bootstrap_engine(tmp_path, remote, PAGED, monotonic=clock)
    urls = _seed(remote, 9)

    context = ImportContext(on_progress=lambda _descriptor: clock.advance(1))
    report = engine.pipeline.run_all("fake://host/batch/", context=context)

    assert report.deferred
    assert [r.url for r in report.succeeded] == urls[:4]
    assert report.deferred_urls == urls[4:6]
    assert report.deferred_listings == ["fake://host/batch/"]

    queued = engine.deferred_queue.list()
    assert sorted(entry.url for entry in queued if entry.cursor is None) == urls[4:6]
    assert [(entry.url, entry.cursor) for entry in queued if entry.cursor is not None] == [
        ("fake://host/batch/", "6")
    ]

    drained = engine.deferred_queue.process(engine.pipeline)

    assert sorted(r.url for r in drained.succeeded) == urls[4:]
    assert engine.deferred_queue.list() == []
    assert {r.source_uri for r in engine.resource_repo.list()} == set(urls)


def test_queued_listing_requeues_its_own_remainder(tmp_path: Path, remote: FakeRemote) -> None:
    clock = FakeClock()
    engine = bootstrap_engine(tmp_path, remote, PAGED, monotonic=clock)
    urls = _seed(remote, 6)
    engine.deferred_queue.defer_listing("fake://host/batch/", "0")
    engine.pipeline.add_listener(lambda _record, _context: clock.advance(1))
    budget = ExecutionBudget(ceiling_seconds=3, safety_margin_seconds=1, clock=clock)

    report = engine.deferred_queue.process(engine.pipeline, budget=budget)

    assert report.deferred
    assert [r.url for r in report.succeeded] == urls[:2]
    queued = engine.deferred_queue.list()
    assert sorted((entry.url, entry.cursor or "") for entry in queued) == [
        ("fake://host/batch/", "3"),
        (urls[2], ""),
    ]
