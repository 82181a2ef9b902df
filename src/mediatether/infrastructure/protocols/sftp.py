from __future__ import annotations

import importlib.util
import logging
import posixpath
import stat
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator
from urllib.parse import ParseResult, quote, unquote, urlparse, urlunparse

from mediatether.core.errors import TransportFetchError
from mediatether.core.mime import guess_mime_type
from mediatether.core.time import epoch_to_iso
from mediatether.domain.models.descriptor import RemoteListing, SourceDescriptor, TempCopy
from mediatether.infrastructure.protocols.base import ProtocolHandler, Transport

if TYPE_CHECKING:
    import paramiko

logger = logging.getLogger(__name__)

DEFAULT_SFTP_PORT = 22


class SftpProtocolHandler(ProtocolHandler):
    transport = Transport.SFTP
    schemes = ("sftp",)

    def is_available(self) -> bool:
        return importlib.util.find_spec("paramiko") is not None

    def list_remote_files(self, cursor: str | None = None) -> RemoteListing:
        parsed = urlparse(self.url)
        path = unquote(parsed.path) or "/"
        with self._connect(parsed) as client:
            attrs = client.stat(path)
            if stat.S_ISDIR(attrs.st_mode or 0):
                entries = sorted(
                    (
                        entry
                        for entry in client.listdir_attr(path)
                        if not stat.S_ISDIR(entry.st_mode or 0) and not entry.filename.startswith(".")
                    ),
                    key=lambda entry: entry.filename,
                )
                page, load_more = self.paginate(entries, cursor)
                descriptors = [
                    self._describe(parsed, posixpath.join(path, entry.filename), entry) for entry in page
                ]
                return RemoteListing(descriptors, load_more)
            return RemoteListing([self._describe(parsed, path, attrs)])

    def fetch_temp_copy(self, url: str) -> TempCopy:
        parsed = urlparse(url)
        path = unquote(parsed.path)
        target = self.new_temp_path(path)
        try:
            with self._connect(parsed) as client:
                client.get(path, str(target))
        except (TransportFetchError, OSError):
            self.cleanup_temp_file(target)
            raise
        return TempCopy(path=target, mime_type=guess_mime_type(path), size_bytes=target.stat().st_size)

    def check_availability(self, url: str) -> bool:
        parsed = urlparse(url)
        try:
            with self._connect(parsed) as client:
                attrs = client.stat(unquote(parsed.path))
        except TransportFetchError as exc:
            logger.info("SFTP availability probe failed for %s: %s", url, exc)
            return False
        return not stat.S_ISDIR(attrs.st_mode or 0)

    def supports_hosting_switch(self) -> bool:
        return False

    def should_be_local(self, mime_type: str = "") -> bool:
        return True

    @contextmanager
    def _connect(self, parsed: ParseResult) -> Iterator[paramiko.SFTPClient]:
        import paramiko

        if self.credentials is None:
            raise TransportFetchError(f"SFTP access to {parsed.hostname} requires credentials")

        timeout = self.settings.transport_timeout_seconds
        transport: paramiko.Transport | None = None
        client: paramiko.SFTPClient | None = None
        try:
            transport = paramiko.Transport((parsed.hostname or "", parsed.port or DEFAULT_SFTP_PORT))
            transport.banner_timeout = timeout
            transport.auth_timeout = timeout
            transport.connect(username=self.credentials.login, password=self.credentials.password)
            client = paramiko.SFTPClient.from_transport(transport)
            if client is None:
                raise TransportFetchError(f"Could not open an SFTP session on {parsed.hostname}")
            yield client
        except (paramiko.SSHException, OSError) as exc:
            raise TransportFetchError(f"SFTP request to {parsed.hostname} failed: {exc}") from exc
        finally:
            try:
                if client is not None:
                    client.close()
            finally:
                if transport is not None:
                    transport.close()

    @staticmethod
    def _describe(parsed: ParseResult, path: str, attrs: paramiko.SFTPAttributes) -> SourceDescriptor:
        return SourceDescriptor(
            url=urlunparse(parsed._replace(path=quote(path))),
            mime_type=guess_mime_type(path),
            size_bytes=int(attrs.st_size or 0),
            filename=posixpath.basename(path),
            should_be_local=True,
            last_modified=epoch_to_iso(attrs.st_mtime) if attrs.st_mtime else None,
        )
