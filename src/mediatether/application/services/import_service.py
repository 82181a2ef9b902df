from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from mediatether.application.services.mime_policy_service import MimePolicyService
from mediatether.core.config import Settings
from mediatether.core.errors import (
    DisallowedMimeType,
    ExecutionBudgetExceeded,
    PersistenceError,
    TetherError,
    TransportFetchError,
)
from mediatether.core.ids import new_uuid
from mediatether.core.log_sink import LogSink, LoggingLogSink
from mediatether.core.mime import normalize_mime_type
from mediatether.core.names import derive_display_name, numbered_variant
from mediatether.core.time import now_utc_iso
from mediatether.domain.models.descriptor import SourceDescriptor
from mediatether.domain.models.resource import Credentials, ResourceRecord, StorageMode
from mediatether.domain.models.results import ImportReport, ResultKind, UrlResult
from mediatether.domain.models.sync import SyncContext
from mediatether.infrastructure.archive.store import ArchiveStore
from mediatether.infrastructure.db.repos.resource_repo import ResourceRepo
from mediatether.infrastructure.protocols.base import ProtocolHandler
from mediatether.infrastructure.protocols.registry import ProtocolRegistry
from mediatether.infrastructure.vault.credential_vault import CredentialVault, seal_credentials

if TYPE_CHECKING:
    from mediatether.application.services.deferred_queue_service import DeferredQueueService
    from mediatether.application.services.proxy_cache_service import ProxyCacheService

logger = logging.getLogger(__name__)

ImportListener = Callable[[ResourceRecord, "ImportContext"], None]
MAX_NAME_VARIANTS = 1000


@dataclass(slots=True)
class ExecutionBudget:
    """Cooperative wall-clock budget for one import batch.

    ``exhausted()`` turns true once the elapsed time reaches the ceiling minus
    the safety margin. Without a ceiling, or when disabled, it never does.
    """

    ceiling_seconds: float | None = None
    safety_margin_seconds: float = 0.0
    enabled: bool = True
    clock: Callable[[], float] = time.monotonic
    started_at: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.monotonic) -> ExecutionBudget:
        return cls(
            ceiling_seconds=settings.execution_ceiling_seconds,
            safety_margin_seconds=settings.execution_safety_margin_seconds,
            enabled=settings.max_execution_check,
            clock=clock,
        )

    def start(self) -> None:
        if self.started_at is None:
            self.started_at = self.clock()

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return self.clock() - self.started_at

    def exhausted(self) -> bool:
        if not self.enabled or self.ceiling_seconds is None:
            return False
        return self.elapsed() >= self.ceiling_seconds - self.safety_margin_seconds

    def check(self) -> None:
        if self.exhausted():
            raise ExecutionBudgetExceeded(
                f"Execution budget reached after {self.elapsed():.1f}s of {self.ceiling_seconds:.0f}s"
            )


@dataclass(slots=True)
class ImportContext:
    """Caller-owned state for one or more pipeline calls over the same URL."""

    cursor: str | None = None
    check_duplicates: bool = True
    source_group_id: str | None = None
    veto: Callable[[SourceDescriptor], str | None] | None = None
    after_save: list[Callable[[ResourceRecord, SourceDescriptor], None]] = field(default_factory=list)
    on_result: list[Callable[[UrlResult], None]] = field(default_factory=list)
    on_listing: Callable[[int], None] | None = None
    on_progress: Callable[[SourceDescriptor], None] | None = None
    sync: SyncContext | None = None
    budget: ExecutionBudget | None = None


class ImportPipeline:
    def __init__(
        self,
        *,
        registry: ProtocolRegistry,
        resource_repo: ResourceRepo,
        archive_store: ArchiveStore,
        mime_policy: MimePolicyService,
        settings: Settings,
        vault: CredentialVault,
        deferred_queue: DeferredQueueService | None = None,
        proxy_cache: ProxyCacheService | None = None,
        log_sink: LogSink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.resource_repo = resource_repo
        self.archive_store = archive_store
        self.mime_policy = mime_policy
        self.settings = settings
        self.vault = vault
        self.deferred_queue = deferred_queue
        self.proxy_cache = proxy_cache
        self.log_sink = log_sink or LoggingLogSink()
        self.clock = clock
        self._listeners: list[tuple[ImportListener, bool]] = []

    def add_listener(self, listener: ImportListener, *, during_sync: bool = True) -> None:
        """Register a callback fired after every successfully imported record.

        Listeners registered with ``during_sync=False`` are skipped for imports
        driven by the sync reconciler.
        """
        self._listeners.append((listener, during_sync))

    def import_from_url(
        self,
        url: str,
        credentials: Credentials | None = None,
        *,
        context: ImportContext | None = None,
    ) -> bool:
        return self.run(url, credentials, context=context).ok

    def run_all(
        self,
        url: str,
        credentials: Credentials | None = None,
        *,
        context: ImportContext | None = None,
    ) -> ImportReport:
        """Import every page of ``url``, following listing continuations.

        When the budget runs out, the rest of the current page and the cursor of
        the next one are both handed to the deferred queue.
        """
        context = context or ImportContext()
        report = ImportReport(url=url)
        while True:
            page = self.run(url, credentials, context=context)
            report.merge(page)
            if page.deferred or page.listing_failed or context.cursor is None:
                return report

    def run(
        self,
        url: str,
        credentials: Credentials | None = None,
        *,
        context: ImportContext | None = None,
    ) -> ImportReport:
        context = context or ImportContext()
        if context.budget is None:
            context.budget = ExecutionBudget.from_settings(self.settings, self.clock)
        context.budget.start()
        report = ImportReport(url=url)

        handler = self.registry.resolve(url, credentials)
        first_page = context.cursor is None

        try:
            listing = handler.list_remote_files(context.cursor)
        except TransportFetchError as exc:
            report.listing_failed = True
            self._add_result(report, context, UrlResult(url, ResultKind.ERROR, str(exc)))
            self.log_sink.record(f"Listing failed: {exc}", url, level="error")
            return report

        descriptors = list(listing.descriptors)
        context.cursor = listing.load_more
        report.load_more = listing.load_more
        report.listed = len(descriptors)
        if context.on_listing is not None:
            context.on_listing(len(descriptors))

        if not descriptors:
            if first_page and listing.load_more is None:
                self._add_result(report, context, UrlResult(url, ResultKind.SKIPPED, "No files found"))
                self.log_sink.record("No files found", url, level="warning")
            return report

        touched: list[str] = []
        try:
            for index, descriptor in enumerate(descriptors):
                try:
                    context.budget.check()
                except ExecutionBudgetExceeded as exc:
                    self._defer(report, context, descriptors[index:], credentials, exc)
                    break
                result = self._process_descriptor(handler, descriptor, credentials, context)
                if result.resource_id and result.kind is ResultKind.SUCCESS:
                    touched.append(result.resource_id)
                self._add_result(report, context, result)
                if context.on_progress is not None:
                    context.on_progress(descriptor)
        finally:
            self.resource_repo.clear_import_markers(touched)

        return report

    def _process_descriptor(
        self,
        handler: ProtocolHandler,
        descriptor: SourceDescriptor,
        credentials: Credentials | None,
        context: ImportContext,
    ) -> UrlResult:
        if context.veto is not None:
            reason = context.veto(descriptor)
            if reason:
                return UrlResult(descriptor.url, ResultKind.SKIPPED, reason)

        existing = self.resource_repo.get_by_uri(descriptor.url)
        if existing is not None and context.check_duplicates:
            return UrlResult(descriptor.url, ResultKind.SKIPPED, "Already in library", existing.id)

        try:
            record = self._materialize(handler, descriptor, credentials, existing, context)
        except (TransportFetchError, DisallowedMimeType, PersistenceError) as exc:
            handler.cleanup_temp_file(descriptor.temp_file_path)
            descriptor.temp_file_path = None
            self.log_sink.record(f"Import failed: {exc}", descriptor.url, level="error")
            return UrlResult(descriptor.url, ResultKind.ERROR, str(exc))

        for hook in context.after_save:
            hook(record, descriptor)
        self._bootstrap_cache(record)
        self._notify(record, context)
        verb = "Updated" if existing is not None else "Imported"
        self.log_sink.record(f"{verb} as {record.display_name}", descriptor.url, level="info")
        return UrlResult(descriptor.url, ResultKind.SUCCESS, verb.lower(), record.id)

    def _materialize(
        self,
        handler: ProtocolHandler,
        descriptor: SourceDescriptor,
        credentials: Credentials | None,
        existing: ResourceRecord | None,
        context: ImportContext,
    ) -> ResourceRecord:
        mime_type = normalize_mime_type(descriptor.mime_type)
        if not self.mime_policy.is_allowed(mime_type):
            raise DisallowedMimeType(f"Mime type {mime_type or 'unknown'} is not allowed")

        embedded = descriptor.should_be_local or self.mime_policy.forces_local(mime_type)
        record_id = existing.id if existing is not None else new_uuid()
        display_name = self._unique_display_name(
            derive_display_name(descriptor.url, mime_type, descriptor.filename),
            record_id,
        )
        size_bytes = descriptor.size_bytes
        archived_relpath: str | None = None
        digest_sha256: str | None = None

        if embedded:
            if descriptor.temp_file_path is None:
                copy = handler.fetch_temp_copy(descriptor.url)
                descriptor.temp_file_path = copy.path
            extension = self.mime_policy.extension_for(mime_type)
            try:
                digest_sha256, archived = self.archive_store.store_file_immutable(
                    descriptor.temp_file_path,
                    f".{extension}" if extension else "",
                )
                size_bytes = archived.stat().st_size
            except OSError as exc:
                raise PersistenceError(f"Could not archive {descriptor.url}: {exc}") from exc
            finally:
                handler.cleanup_temp_file(descriptor.temp_file_path)
                descriptor.temp_file_path = None
            archived_relpath = str(archived.relative_to(self.archive_store.base_dir))

        now = now_utc_iso()
        record = ResourceRecord(
            id=record_id,
            source_uri=descriptor.url,
            display_name=display_name,
            mime_type=mime_type,
            size_bytes=size_bytes,
            storage_mode=StorageMode.EMBEDDED if embedded else StorageMode.REFERENCED,
            imported_at=existing.imported_at if existing is not None else now,
            updated_at=now,
            available=True,
            credentials_cipher=seal_credentials(self.vault, credentials),
            source_group_id=context.source_group_id
            or (existing.source_group_id if existing is not None else None),
            sync_marker=existing.sync_marker if existing is not None else None,
            import_marker=True,
            archived_relpath=archived_relpath,
            digest_sha256=digest_sha256,
            last_modified=descriptor.last_modified,
        )

        if existing is None:
            self.resource_repo.insert(record)
        else:
            self.resource_repo.update(record)
            self._release_replaced_bytes(existing, record)
        return record

    def _unique_display_name(self, base: str, record_id: str) -> str:
        candidate = base
        number = 2
        while self.resource_repo.display_name_taken(candidate, exclude_id=record_id):
            if number > MAX_NAME_VARIANTS:
                raise PersistenceError(f"Too many resources named {base}")
            candidate = numbered_variant(base, number)
            number += 1
        return candidate

    def _release_replaced_bytes(self, previous: ResourceRecord, current: ResourceRecord) -> None:
        if previous.archived_relpath and previous.digest_sha256 != current.digest_sha256:
            if self.resource_repo.count_by_digest(previous.digest_sha256 or "") == 0:
                self.archive_store.remove(previous.archived_relpath)
        if current.is_embedded and self.proxy_cache is not None:
            self.proxy_cache.delete(previous)

    def _bootstrap_cache(self, record: ResourceRecord) -> None:
        if self.proxy_cache is None or record.is_embedded:
            return
        if not self.mime_policy.proxy_enabled(record.mime_type):
            return
        try:
            self.proxy_cache.ensure(record)
        except TetherError as exc:
            logger.warning("Could not prime proxy cache for %s: %s", record.source_uri, exc)

    def _notify(self, record: ResourceRecord, context: ImportContext) -> None:
        for listener, during_sync in self._listeners:
            if context.sync is not None and not during_sync:
                continue
            listener(record, context)

    def _defer(
        self,
        report: ImportReport,
        context: ImportContext,
        remaining: list[SourceDescriptor],
        credentials: Credentials | None,
        reason: ExecutionBudgetExceeded,
    ) -> None:
        report.deferred = True
        report.deferred_urls = [descriptor.url for descriptor in remaining]
        # Later listing pages are handed off as a single continuation entry.
        if context.cursor is not None:
            report.deferred_listings = [report.url]
        self.log_sink.record(
            f"{reason}; deferring {len(remaining)} file(s)"
            + (f" and the listing from {context.cursor}" if context.cursor is not None else ""),
            report.url,
            level="warning",
        )
        if self.deferred_queue is not None:
            self.deferred_queue.defer(
                report.deferred_urls,
                credentials,
                source_group_id=context.source_group_id,
            )
            if context.cursor is not None:
                self.deferred_queue.defer_listing(
                    report.url,
                    context.cursor,
                    credentials,
                    source_group_id=context.source_group_id,
                )
        for descriptor in remaining:
            self._add_result(report, context, UrlResult(descriptor.url, ResultKind.SKIPPED, "Deferred"))

    @staticmethod
    def _add_result(report: ImportReport, context: ImportContext, result: UrlResult) -> None:
        report.results.append(result)
        for hook in context.on_result:
            hook(result)
