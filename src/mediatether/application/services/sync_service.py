from __future__ import annotations

import time
from dataclasses import replace
from typing import Callable

from mediatether.application.services.import_service import ImportContext, ImportPipeline
from mediatether.application.services.resource_service import ResourceService
from mediatether.application.services.source_group_service import SourceGroupService
from mediatether.core.errors import SourceGroupError, SyncAlreadyRunning
from mediatether.core.ids import new_uuid
from mediatether.core.log_sink import LogSink, LoggingLogSink
from mediatether.core.time import epoch_to_iso, now_utc_iso
from mediatether.domain.models.descriptor import SourceDescriptor
from mediatether.domain.models.resource import Credentials, ResourceRecord
from mediatether.domain.models.results import ImportReport, UrlResult
from mediatether.domain.models.sync import SyncContext, SyncJob, SyncOutcome
from mediatether.infrastructure.db.repos.resource_repo import ResourceRepo


class SyncService:
    """Reconcile the resources of a source group against its remote collection.

    A pass clears the group's sync markers, re-imports the remote listing with
    every confirmed record re-marked, and only then deletes group records that
    stayed unmarked. Deletion is skipped for passes that did not complete: a
    failed listing, a deferred batch, or a pass that confirmed nothing.

    Passes over one group are serialized through a lease on its
    ``source_groups`` row, so separate processes sharing the database exclude
    each other. A lease older than ``lease_seconds`` is treated as abandoned.
    """

    def __init__(
        self,
        *,
        pipeline: ImportPipeline,
        resource_repo: ResourceRepo,
        resource_service: ResourceService,
        group_service: SourceGroupService,
        delete_unused: bool = True,
        lease_seconds: float = 6 * 3600.0,
        log_sink: LogSink | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.pipeline = pipeline
        self.resource_repo = resource_repo
        self.resource_service = resource_service
        self.group_service = group_service
        self.group_repo = group_service.group_repo
        self.delete_unused = delete_unused
        self.lease_seconds = lease_seconds
        self.log_sink = log_sink or LoggingLogSink()
        self.clock = clock
        self.wall_clock = wall_clock
        self._jobs: dict[str, SyncJob] = {}

    def is_running(self, group_id: str) -> bool:
        group = self.group_repo.get_by_id(group_id)
        if group is None or group.sync_owner is None:
            return False
        return (group.sync_started_at or "") >= self._stale_before()

    def progress(self, group_id: str) -> SyncJob | None:
        """Live progress of a pass run by this process, if any."""
        job = self._jobs.get(group_id)
        return replace(job) if job is not None else None

    def sync_group(self, group_id: str) -> SyncOutcome:
        group = self.group_service.get(group_id)
        outcome = self.sync(
            group.url,
            group.id,
            self.group_service.credentials_for(group),
            delete_unused=group.delete_unused,
        )
        self.group_service.mark_synced(group.id)
        return outcome

    def sync(
        self,
        source_url: str,
        group_id: str,
        credentials: Credentials | None = None,
        *,
        delete_unused: bool | None = None,
    ) -> SyncOutcome:
        owner = new_uuid()
        self._acquire(group_id, owner)

        job = SyncJob(source_group_id=group_id, started_at=self.clock(), title=f"Synchronizing {source_url}")
        self._jobs[group_id] = job
        state = SyncContext(source_group_id=group_id, marker=now_utc_iso(), job=job)
        try:
            self.log_sink.record("Synchronization started", source_url, level="info")
            self.resource_repo.clear_sync_markers(group_id)
            report = self.pipeline.run_all(source_url, credentials, context=self._build_context(state))

            deleted: list[str] = []
            blocker = self._deletion_blocker(report, state)
            enabled = self.delete_unused if delete_unused is None else delete_unused
            if enabled and blocker is None:
                deleted = self._delete_unconfirmed(state)
            elif enabled:
                self.log_sink.record(f"Skipping stale-file cleanup: {blocker}", source_url, level="warning")

            outcome = SyncOutcome(
                source_group_id=group_id,
                imported=len(report.succeeded),
                errors=len(report.errors),
                deleted=deleted,
                deletion_skipped_reason=blocker if enabled else "disabled",
            )
            self.log_sink.record(
                f"Synchronization finished: {outcome.imported} confirmed, "
                f"{outcome.errors} failed, {len(deleted)} deleted",
                source_url,
                level="info",
            )
            return outcome
        finally:
            job.running = False
            self._jobs.pop(group_id, None)
            self.group_repo.release_sync(group_id, owner)

    def _build_context(self, state: SyncContext) -> ImportContext:
        def mark_confirmed(record: ResourceRecord, descriptor: SourceDescriptor) -> None:
            self.resource_repo.set_sync_marker(record.id, marker=state.marker, group_id=state.source_group_id)
            state.confirmed_ids.add(record.id)

        def remember(result: UrlResult) -> None:
            state.seen_urls.add(result.url)

        def on_listing(count: int) -> None:
            state.job.total += count

        def on_progress(descriptor: SourceDescriptor) -> None:
            state.job.processed += 1
            state.job.title = f"Synchronizing {state.job.processed} of {state.job.total}"

        return ImportContext(
            check_duplicates=False,
            source_group_id=state.source_group_id,
            after_save=[mark_confirmed],
            on_result=[remember],
            on_listing=on_listing,
            on_progress=on_progress,
            sync=state,
        )

    @staticmethod
    def _deletion_blocker(report: ImportReport, state: SyncContext) -> str | None:
        if report.listing_failed:
            return "the remote listing failed"
        if report.deferred:
            return "the pass was deferred before completing"
        if not state.confirmed_ids:
            return "no remote files were confirmed"
        return None

    def _delete_unconfirmed(self, state: SyncContext) -> list[str]:
        deleted: list[str] = []
        for record in self.resource_repo.list_unsynced_in_group(state.source_group_id):
            # Listed upstream but failed to re-import this time.
            if record.source_uri in state.seen_urls:
                continue
            self.resource_service.delete(record)
            deleted.append(record.id)
        return deleted

    def _acquire(self, group_id: str, owner: str) -> None:
        claimed = self.group_repo.claim_sync(
            group_id,
            owner,
            epoch_to_iso(self.wall_clock()),
            stale_before=self._stale_before(),
        )
        if claimed:
            return
        if self.group_repo.get_by_id(group_id) is None:
            raise SourceGroupError(f"Source group not found: {group_id}")
        raise SyncAlreadyRunning(f"Source group {group_id} is already being synchronized")

    def _stale_before(self) -> str:
        return epoch_to_iso(self.wall_clock() - self.lease_seconds)
