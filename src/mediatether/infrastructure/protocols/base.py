from __future__ import annotations

import os
import tempfile
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import ClassVar, Sequence, TypeVar

from mediatether.core.config import Settings
from mediatether.core.files import ensure_directory, remove_file
from mediatether.domain.models.descriptor import RemoteListing, TempCopy
from mediatether.domain.models.resource import Credentials

T = TypeVar("T")


class Transport(str, Enum):
    FILE = "file"
    FTP = "ftp"
    HTTP = "http"
    SFTP = "sftp"


class ProtocolHandler(ABC):
    """Transport-specific access to remote files.

    A handler is bound to one target URL. Credentials are attached per instance
    and never shared between resolutions.
    """

    transport: ClassVar[Transport]
    schemes: ClassVar[tuple[str, ...]] = ()

    def __init__(self, url: str, *, settings: Settings, temp_dir: Path) -> None:
        self.url = url.strip()
        self.settings = settings
        self.temp_dir = temp_dir
        self.credentials: Credentials | None = None

    def set_credentials(self, credentials: Credentials | None) -> None:
        self.credentials = credentials

    def is_compatible(self) -> bool:
        lowered = self.url.lower()
        return any(lowered.startswith(f"{scheme}://") for scheme in self.schemes)

    def is_available(self) -> bool:
        return True

    @abstractmethod
    def list_remote_files(self, cursor: str | None = None) -> RemoteListing:
        """Describe the file, or one page of files in the directory, at ``self.url``."""

    @abstractmethod
    def fetch_temp_copy(self, url: str) -> TempCopy:
        """Download ``url`` into a local temp file owned by the caller."""

    @abstractmethod
    def check_availability(self, url: str) -> bool:
        """Cheap liveness probe for an already imported URL."""

    def supports_hosting_switch(self) -> bool:
        return self.credentials is None

    def should_be_local(self, mime_type: str = "") -> bool:
        return False

    def cleanup_temp_file(self, path: Path | None) -> None:
        if path is not None:
            remove_file(path)

    def new_temp_path(self, name_hint: str = "") -> Path:
        ensure_directory(self.temp_dir)
        suffix = Path(name_hint).suffix[:16]
        fd, temp_name = tempfile.mkstemp(prefix=f"{self.transport.value}-", suffix=suffix, dir=self.temp_dir)
        os.close(fd)
        return Path(temp_name)

    def paginate(self, items: Sequence[T], cursor: str | None) -> tuple[list[T], str | None]:
        try:
            offset = max(int(cursor or 0), 0)
        except ValueError:
            offset = 0
        size = self.settings.listing_page_size
        page = list(items[offset : offset + size])
        next_offset = offset + size
        return page, (str(next_offset) if next_offset < len(items) else None)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.url!r})"
