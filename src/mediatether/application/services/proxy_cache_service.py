from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator

from mediatether.application.services.mime_policy_service import MimePolicyService
from mediatether.core.errors import CacheMiss, IntegrityMismatch, TetherError
from mediatether.core.files import clear_directory, ensure_directory, remove_file, safe_copy_atomic
from mediatether.core.hashing import compute_text_digest
from mediatether.core.log_sink import LogSink, LoggingLogSink
from mediatether.core.mime import SNIFF_BYTES, mime_types_match, normalize_mime_type, sniff_mime_type
from mediatether.core.names import url_basename
from mediatether.domain.models.resource import ResourceRecord
from mediatether.infrastructure.archive.store import ArchiveStore
from mediatether.infrastructure.db.repos.resource_repo import ResourceRepo
from mediatether.infrastructure.protocols.registry import ProtocolRegistry

STREAM_CHUNK_SIZE = 64 * 1024


@dataclass(slots=True)
class CachedResource:
    record: ResourceRecord
    path: Path
    headers: dict[str, str] = field(default_factory=dict)
    stale: bool = False

    def iter_bytes(self, chunk_size: int = STREAM_CHUNK_SIZE) -> Iterator[bytes]:
        with self.path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(chunk_size), b""):
                yield chunk


class ProxyCacheService:
    """Serve referenced resources from a local, lazily refreshed copy.

    Entries live at ``<cache_dir>/<md5(source_uri)>.<ext>`` and are fresh while
    younger than the per-kind TTL. A stale or missing entry is refetched through
    the record's protocol handler before it is served. The new bytes must carry
    the mime type the record declares, both as reported by the transport and as
    detected from the content; otherwise the previous entry is kept.
    """

    def __init__(
        self,
        *,
        cache_dir: Path,
        registry: ProtocolRegistry,
        mime_policy: MimePolicyService,
        resource_repo: ResourceRepo,
        archive_store: ArchiveStore,
        log_sink: LogSink | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_dir = cache_dir
        self.registry = registry
        self.mime_policy = mime_policy
        self.resource_repo = resource_repo
        self.archive_store = archive_store
        self.log_sink = log_sink or LoggingLogSink()
        self.clock = clock

    def cache_key(self, record: ResourceRecord) -> str:
        digest = compute_text_digest(record.source_uri, "md5")
        extension = self.mime_policy.extension_for(record.mime_type)
        return f"{digest}.{extension}" if extension else digest

    def cache_path(self, record: ResourceRecord) -> Path:
        return self.cache_dir / self.cache_key(record)

    def is_cached(self, record: ResourceRecord) -> bool:
        path = self.cache_path(record)
        if not path.is_file():
            return False
        age = self.clock() - path.stat().st_mtime
        return age < self.mime_policy.ttl_for(record.mime_type)

    def ensure(self, record: ResourceRecord) -> bool:
        if self.is_cached(record):
            return True
        return self.refresh(record)

    def refresh(self, record: ResourceRecord) -> bool:
        """Refetch ``record`` into the cache. Returns False when the refresh was refused."""
        target = self.cache_path(record)
        handler = self.registry.resolve_for_record(record)
        copy = handler.fetch_temp_copy(record.source_uri)
        try:
            self._verify(record, copy.mime_type, copy.path)
            ensure_directory(self.cache_dir)
            safe_copy_atomic(copy.path, target)
            now = self.clock()
            os.utime(target, (now, now))
        except IntegrityMismatch as exc:
            self.log_sink.record(f"Cache refresh refused: {exc}", record.source_uri, level="warning")
            return False
        finally:
            handler.cleanup_temp_file(copy.path)

        self.log_sink.record(f"Cached as {target.name}", record.source_uri, level="info", verbosity=1)
        return True

    def resolve(self, record: ResourceRecord) -> CachedResource:
        if record.is_embedded:
            return self._from_archive(record)

        path = self.cache_path(record)
        if self.is_cached(record):
            return CachedResource(record=record, path=path, headers=self._headers(record, path))

        try:
            refreshed = self.refresh(record)
        except TetherError as exc:
            self.log_sink.record(f"Cache refresh failed: {exc}", record.source_uri, level="error")
            refreshed = False

        if refreshed:
            return CachedResource(record=record, path=path, headers=self._headers(record, path))
        if path.is_file():
            return CachedResource(record=record, path=path, headers=self._headers(record, path), stale=True)
        raise CacheMiss(f"No cached copy of {record.display_name} is available")

    def resolve_address(self, display_name: str) -> CachedResource:
        record = self.resource_repo.get_by_display_name(display_name)
        if record is None:
            raise CacheMiss(f"Unknown resource: {display_name}")
        return self.resolve(record)

    def delete(self, record: ResourceRecord) -> bool:
        return remove_file(self.cache_path(record))

    def purge(self) -> int:
        removed = clear_directory(self.cache_dir)
        self.log_sink.record(f"Purged {removed} cached file(s)", str(self.cache_dir), level="info")
        return removed

    def _verify(self, record: ResourceRecord, reported_mime: str, path: Path) -> None:
        reported = normalize_mime_type(reported_mime)
        declared = normalize_mime_type(record.mime_type)
        if reported != declared:
            raise IntegrityMismatch(f"transport reports {reported or 'no type'}, record declares {declared}")
        with path.open("rb") as handle:
            detected = sniff_mime_type(handle.read(SNIFF_BYTES))
        if not mime_types_match(reported, detected):
            raise IntegrityMismatch(f"content looks like {detected}, transport reports {reported}")

    def _from_archive(self, record: ResourceRecord) -> CachedResource:
        if not record.archived_relpath:
            raise CacheMiss(f"Embedded resource {record.display_name} has no archived bytes")
        path = self.archive_store.abspath(record.archived_relpath)
        if not path.is_file():
            raise CacheMiss(f"Archived file missing for {record.display_name}")
        return CachedResource(record=record, path=path, headers=self._headers(record, path))

    @staticmethod
    def _headers(record: ResourceRecord, path: Path) -> dict[str, str]:
        filename = url_basename(record.source_uri) or record.display_name
        safe_filename = "".join(ch if 32 <= ord(ch) < 127 and ch != '"' else "_" for ch in filename)
        return {
            "Content-Type": record.mime_type,
            "Content-Disposition": f'inline; filename="{safe_filename}"',
            "Content-Length": str(path.stat().st_size),
        }
