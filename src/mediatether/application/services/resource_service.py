from __future__ import annotations

import logging

from mediatether.application.services.proxy_cache_service import ProxyCacheService
from mediatether.core.log_sink import LogSink, LoggingLogSink
from mediatether.domain.models.resource import ResourceRecord
from mediatether.infrastructure.archive.store import ArchiveStore
from mediatether.infrastructure.db.repos.resource_repo import ResourceRepo

logger = logging.getLogger(__name__)


class ResourceService:
    def __init__(
        self,
        resource_repo: ResourceRepo,
        archive_store: ArchiveStore,
        proxy_cache: ProxyCacheService,
        *,
        log_sink: LogSink | None = None,
    ) -> None:
        self.resource_repo = resource_repo
        self.archive_store = archive_store
        self.proxy_cache = proxy_cache
        self.log_sink = log_sink or LoggingLogSink()

    def get(self, resource_id: str) -> ResourceRecord | None:
        return self.resource_repo.get_by_id(resource_id)

    def list(self, limit: int = 100, *, group_id: str | None = None) -> list[ResourceRecord]:
        return self.resource_repo.list(limit=limit, group_id=group_id)

    def delete(self, record: ResourceRecord) -> None:
        """Remove a record together with its cache entry and unshared archived bytes."""
        self.proxy_cache.delete(record)
        self.resource_repo.delete(record.id)
        if record.archived_relpath and record.digest_sha256:
            if self.resource_repo.count_by_digest(record.digest_sha256) == 0:
                self.archive_store.remove(record.archived_relpath)
        self.log_sink.record(f"Deleted {record.display_name}", record.source_uri, level="info")

    def delete_group_files(self, group_id: str) -> int:
        records = self.resource_repo.list_by_group(group_id)
        for record in records:
            self.delete(record)
        logger.info("Deleted %d file(s) of source group %s", len(records), group_id)
        return len(records)
