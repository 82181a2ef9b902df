from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class DeferredEntry:
    id: str
    url: str
    state: str
    created_at: str
    credentials_cipher: str | None = None
    source_group_id: str | None = None
    cursor: str | None = None
    error_message: str | None = None
