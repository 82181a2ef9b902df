from __future__ import annotations

from dataclasses import replace

from mediatether.application.services.mime_policy_service import MimePolicyService
from mediatether.application.services.proxy_cache_service import ProxyCacheService
from mediatether.core.errors import HostingSwitchError, PersistenceError
from mediatether.core.log_sink import LogSink, LoggingLogSink
from mediatether.core.time import now_utc_iso
from mediatether.domain.models.resource import ResourceRecord, StorageMode
from mediatether.infrastructure.archive.store import ArchiveStore
from mediatether.infrastructure.db.repos.resource_repo import ResourceRepo
from mediatether.infrastructure.protocols.base import ProtocolHandler
from mediatether.infrastructure.protocols.registry import ProtocolRegistry


class HostingService:
    """Move resources between embedded and referenced storage."""

    def __init__(
        self,
        *,
        registry: ProtocolRegistry,
        resource_repo: ResourceRepo,
        archive_store: ArchiveStore,
        proxy_cache: ProxyCacheService,
        mime_policy: MimePolicyService,
        log_sink: LogSink | None = None,
    ) -> None:
        self.registry = registry
        self.resource_repo = resource_repo
        self.archive_store = archive_store
        self.proxy_cache = proxy_cache
        self.mime_policy = mime_policy
        self.log_sink = log_sink or LoggingLogSink()

    def can_switch(self, record: ResourceRecord) -> bool:
        if record.has_credentials:
            return False
        handler = self.registry.resolve_for_record(record)
        return handler.supports_hosting_switch()

    def switch(self, record: ResourceRecord, target: StorageMode) -> ResourceRecord:
        if target is StorageMode.EMBEDDED:
            return self.switch_to_embedded(record)
        return self.switch_to_referenced(record)

    def switch_to_embedded(self, record: ResourceRecord) -> ResourceRecord:
        if record.is_embedded:
            return record
        handler = self._switchable_handler(record)
        copy = handler.fetch_temp_copy(record.source_uri)
        extension = self.mime_policy.extension_for(record.mime_type)
        try:
            digest, archived = self.archive_store.store_file_immutable(
                copy.path, f".{extension}" if extension else ""
            )
        except OSError as exc:
            raise PersistenceError(f"Could not archive {record.source_uri}: {exc}") from exc
        finally:
            handler.cleanup_temp_file(copy.path)

        updated = replace(
            record,
            storage_mode=StorageMode.EMBEDDED,
            archived_relpath=str(archived.relative_to(self.archive_store.base_dir)),
            digest_sha256=digest,
            size_bytes=archived.stat().st_size,
            updated_at=now_utc_iso(),
        )
        self.resource_repo.update(updated)
        self.proxy_cache.delete(record)
        self.log_sink.record("Switched to embedded storage", record.source_uri, level="info")
        return updated

    def switch_to_referenced(self, record: ResourceRecord) -> ResourceRecord:
        if not record.is_embedded:
            return record
        handler = self._switchable_handler(record)
        if handler.should_be_local(record.mime_type) or self.mime_policy.forces_local(record.mime_type):
            raise HostingSwitchError(f"{record.display_name} must stay embedded")
        if not handler.check_availability(record.source_uri):
            raise HostingSwitchError(f"{record.source_uri} is not reachable; keeping the embedded copy")

        updated = replace(
            record,
            storage_mode=StorageMode.REFERENCED,
            archived_relpath=None,
            digest_sha256=None,
            available=True,
            updated_at=now_utc_iso(),
        )
        self.resource_repo.update(updated)
        if record.archived_relpath and record.digest_sha256:
            if self.resource_repo.count_by_digest(record.digest_sha256) == 0:
                self.archive_store.remove(record.archived_relpath)
        self.log_sink.record("Switched to referenced storage", record.source_uri, level="info")
        return updated

    def _switchable_handler(self, record: ResourceRecord) -> ProtocolHandler:
        if record.has_credentials:
            raise HostingSwitchError(f"{record.display_name} uses credentials and cannot change hosting")
        handler = self.registry.resolve_for_record(record)
        if not handler.supports_hosting_switch():
            raise HostingSwitchError(
                f"{handler.transport.value} resources cannot change hosting ({record.display_name})"
            )
        return handler
