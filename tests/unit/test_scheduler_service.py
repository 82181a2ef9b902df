from __future__ import annotations

from datetime import datetime, timedelta, timezone

from conftest import PDF_BYTES, FakeRemote

from mediatether.application.container import Engine


def test_due_groups_follow_interval(engine: Engine) -> None:
    never = engine.groups.create("never", "fake://host/a/", interval_seconds=3600)
    recent = engine.groups.create("recent", "fake://host/b/", interval_seconds=3600)
    engine.groups.mark_synced(recent.id)
    now = datetime.now(timezone.utc)

    assert [g.id for g in engine.scheduler.due_groups(now)] == [never.id]
    later = now + timedelta(hours=2)
    assert {g.id for g in engine.scheduler.due_groups(later)} == {never.id, recent.id}


def test_run_due_syncs_groups_drains_queue_and_checks(engine: Engine, remote: FakeRemote) -> None:
    remote.put("fake://host/docs/a.pdf", PDF_BYTES, "application/pdf")
    remote.put("fake://host/other/b.pdf", PDF_BYTES, "application/pdf")
    group = engine.groups.create("docs", "fake://host/docs/")
    engine.deferred_queue.defer(["fake://host/other/b.pdf"])

    report = engine.scheduler.run_due()

    assert [o.source_group_id for o in report.synced] == [group.id]
    assert report.failures == {}
    assert report.queue_processed == 1
    assert report.availability is not None and report.availability.checked == 2
    assert engine.scheduler.due_groups() == []


def test_failing_group_does_not_stop_the_run(engine: Engine, remote: FakeRemote) -> None:
    group = engine.groups.create("bad", "gopher://host/docs/")

    report = engine.scheduler.run_due(check_availability=False)

    assert group.id in report.failures
    assert report.availability is None
