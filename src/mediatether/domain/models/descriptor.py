from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class SourceDescriptor:
    """One remote file as reported by a protocol handler. Never persisted."""

    url: str
    mime_type: str
    size_bytes: int = 0
    filename: str | None = None
    temp_file_path: Path | None = None
    should_be_local: bool = False
    last_modified: str | None = None


@dataclass(slots=True)
class RemoteListing:
    descriptors: list[SourceDescriptor] = field(default_factory=list)
    load_more: str | None = None

    def __len__(self) -> int:
        return len(self.descriptors)


@dataclass(slots=True)
class TempCopy:
    path: Path
    mime_type: str
    size_bytes: int
