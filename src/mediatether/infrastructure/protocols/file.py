from __future__ import annotations

import shutil
from pathlib import Path
from urllib.parse import unquote, urlparse

from mediatether.core.errors import TransportFetchError
from mediatether.core.mime import guess_mime_type
from mediatether.core.time import epoch_to_iso
from mediatether.domain.models.descriptor import RemoteListing, SourceDescriptor, TempCopy
from mediatether.infrastructure.protocols.base import ProtocolHandler, Transport


class FileProtocolHandler(ProtocolHandler):
    transport = Transport.FILE
    schemes = ("file",)

    def list_remote_files(self, cursor: str | None = None) -> RemoteListing:
        path = self._local_path(self.url)
        if not path.exists():
            raise TransportFetchError(f"Path does not exist: {path}")

        if path.is_dir():
            entries = sorted(
                (child for child in path.iterdir() if child.is_file() and not child.name.startswith(".")),
                key=lambda child: child.name,
            )
            page, load_more = self.paginate(entries, cursor)
            return RemoteListing([self._describe(child) for child in page], load_more)

        return RemoteListing([self._describe(path)])

    def fetch_temp_copy(self, url: str) -> TempCopy:
        source = self._local_path(url)
        if not source.is_file():
            raise TransportFetchError(f"File not found: {source}")
        target = self.new_temp_path(source.name)
        try:
            shutil.copyfile(source, target)
        except OSError as exc:
            self.cleanup_temp_file(target)
            raise TransportFetchError(f"Could not read {source}: {exc}") from exc
        return TempCopy(path=target, mime_type=guess_mime_type(source.name), size_bytes=target.stat().st_size)

    def check_availability(self, url: str) -> bool:
        return self._local_path(url).is_file()

    def supports_hosting_switch(self) -> bool:
        return False

    def should_be_local(self, mime_type: str = "") -> bool:
        return True

    @staticmethod
    def _local_path(url: str) -> Path:
        return Path(unquote(urlparse(url).path))

    def _describe(self, path: Path) -> SourceDescriptor:
        stat = path.stat()
        return SourceDescriptor(
            url=path.resolve().as_uri(),
            mime_type=guess_mime_type(path.name),
            size_bytes=stat.st_size,
            filename=path.name,
            should_be_local=True,
            last_modified=epoch_to_iso(stat.st_mtime),
        )
