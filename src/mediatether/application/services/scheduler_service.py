from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from mediatether.application.services.availability_service import AvailabilityReport, AvailabilityService
from mediatether.application.services.deferred_queue_service import DeferredQueueService
from mediatether.application.services.import_service import ImportPipeline
from mediatether.application.services.source_group_service import SourceGroupService
from mediatether.application.services.sync_service import SyncService
from mediatether.core.errors import TetherError
from mediatether.core.time import parse_iso
from mediatether.domain.models.sync import SourceGroup, SyncOutcome

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScheduleReport:
    synced: list[SyncOutcome] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    queue_processed: int = 0
    availability: AvailabilityReport | None = None


class SchedulerService:
    """One tick of the recurring jobs, meant to be driven by cron or a timer."""

    def __init__(
        self,
        *,
        group_service: SourceGroupService,
        sync_service: SyncService,
        availability_service: AvailabilityService,
        deferred_queue: DeferredQueueService,
        pipeline: ImportPipeline,
    ) -> None:
        self.group_service = group_service
        self.sync_service = sync_service
        self.availability_service = availability_service
        self.deferred_queue = deferred_queue
        self.pipeline = pipeline

    def due_groups(self, now: datetime | None = None) -> list[SourceGroup]:
        current = now or datetime.now(timezone.utc)
        due: list[SourceGroup] = []
        for group in self.group_service.list():
            last = parse_iso(group.last_synced_at)
            if last is None or (current - last).total_seconds() >= group.interval_seconds:
                due.append(group)
        return due

    def run_due(self, now: datetime | None = None, *, check_availability: bool = True) -> ScheduleReport:
        report = ScheduleReport()
        for group in self.due_groups(now):
            if self.sync_service.is_running(group.id):
                continue
            try:
                report.synced.append(self.sync_service.sync_group(group.id))
            except TetherError as exc:
                logger.error("Scheduled sync of %s failed: %s", group.name, exc)
                report.failures[group.id] = str(exc)

        queue_report = self.deferred_queue.process(self.pipeline)
        report.queue_processed = len(queue_report.results)

        if check_availability:
            report.availability = self.availability_service.check_all()
        return report
