from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class SourceGroup:
    id: str
    name: str
    url: str
    created_at: str
    interval_seconds: int = 86_400
    delete_unused: bool = True
    credentials_cipher: str | None = None
    last_synced_at: str | None = None
    sync_owner: str | None = None
    sync_started_at: str | None = None


@dataclass(slots=True)
class SyncJob:
    source_group_id: str
    started_at: float
    running: bool = True
    processed: int = 0
    total: int = 0
    title: str = ""


@dataclass(slots=True)
class SyncOutcome:
    source_group_id: str
    imported: int
    errors: int
    deleted: list[str]
    deletion_skipped_reason: str | None = None


@dataclass(slots=True)
class SyncContext:
    """Explicit "sync in progress" state threaded through one reconciliation pass."""

    source_group_id: str
    marker: str
    job: SyncJob
    seen_urls: set[str] = field(default_factory=set)
    confirmed_ids: set[str] = field(default_factory=set)
