from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum


class StorageMode(str, Enum):
    EMBEDDED = "embedded"
    REFERENCED = "referenced"


@dataclass(frozen=True, slots=True)
class Credentials:
    login: str
    password: str = field(default="", repr=False)

    def to_payload(self) -> str:
        return json.dumps({"login": self.login, "password": self.password}, ensure_ascii=True)

    @classmethod
    def from_payload(cls, payload: str) -> Credentials:
        data = json.loads(payload)
        return cls(login=str(data.get("login", "")), password=str(data.get("password", "")))

    @classmethod
    def from_parts(cls, login: str | None, password: str | None) -> Credentials | None:
        if not login and not password:
            return None
        return cls(login=login or "", password=password or "")


@dataclass(slots=True)
class ResourceRecord:
    id: str
    source_uri: str
    display_name: str
    mime_type: str
    size_bytes: int
    storage_mode: StorageMode
    imported_at: str
    updated_at: str
    available: bool = True
    credentials_cipher: str | None = None
    source_group_id: str | None = None
    sync_marker: str | None = None
    import_marker: bool = False
    archived_relpath: str | None = None
    digest_sha256: str | None = None
    last_modified: str | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.credentials_cipher)

    @property
    def is_embedded(self) -> bool:
        return self.storage_mode is StorageMode.EMBEDDED
