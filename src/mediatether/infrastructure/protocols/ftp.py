from __future__ import annotations

import ftplib
import logging
import posixpath
from contextlib import contextmanager
from typing import Iterator
from urllib.parse import ParseResult, quote, unquote, urlparse, urlunparse

from mediatether.core.errors import TransportFetchError
from mediatether.core.mime import guess_mime_type
from mediatether.domain.models.descriptor import RemoteListing, SourceDescriptor, TempCopy
from mediatether.infrastructure.protocols.base import ProtocolHandler, Transport

logger = logging.getLogger(__name__)

DEFAULT_FTP_PORT = 21


class FtpProtocolHandler(ProtocolHandler):
    transport = Transport.FTP
    schemes = ("ftp", "ftps")

    def list_remote_files(self, cursor: str | None = None) -> RemoteListing:
        parsed = urlparse(self.url)
        path = unquote(parsed.path) or "/"
        with self._connect(parsed) as ftp:
            if self._is_directory(ftp, path):
                names = self._list_file_names(ftp, path)
                page, load_more = self.paginate(names, cursor)
                descriptors = [
                    self._describe(ftp, parsed, posixpath.join(path, name)) for name in page
                ]
                return RemoteListing(descriptors, load_more)
            return RemoteListing([self._describe(ftp, parsed, path)])

    def fetch_temp_copy(self, url: str) -> TempCopy:
        parsed = urlparse(url)
        path = unquote(parsed.path)
        target = self.new_temp_path(path)
        try:
            with self._connect(parsed) as ftp, target.open("wb") as handle:
                ftp.retrbinary(f"RETR {path}", handle.write)
        except (TransportFetchError, OSError):
            self.cleanup_temp_file(target)
            raise
        return TempCopy(path=target, mime_type=guess_mime_type(path), size_bytes=target.stat().st_size)

    def check_availability(self, url: str) -> bool:
        parsed = urlparse(url)
        try:
            with self._connect(parsed) as ftp:
                ftp.voidcmd("TYPE I")
                return ftp.size(unquote(parsed.path)) is not None
        except TransportFetchError as exc:
            logger.info("FTP availability probe failed for %s: %s", url, exc)
            return False

    def supports_hosting_switch(self) -> bool:
        return False

    def should_be_local(self, mime_type: str = "") -> bool:
        return True

    @contextmanager
    def _connect(self, parsed: ParseResult) -> Iterator[ftplib.FTP]:
        ftp: ftplib.FTP = (
            ftplib.FTP_TLS(timeout=self.settings.transport_timeout_seconds)
            if parsed.scheme.lower() == "ftps"
            else ftplib.FTP(timeout=self.settings.transport_timeout_seconds)
        )
        try:
            ftp.connect(parsed.hostname or "", parsed.port or DEFAULT_FTP_PORT)
            if self.credentials is not None:
                ftp.login(self.credentials.login, self.credentials.password)
            else:
                ftp.login()
            if isinstance(ftp, ftplib.FTP_TLS):
                ftp.prot_p()
            yield ftp
        except ftplib.all_errors as exc:
            raise TransportFetchError(f"FTP request to {parsed.hostname} failed: {exc}") from exc
        finally:
            if ftp.sock is None:
                ftp.close()
            else:
                try:
                    ftp.quit()
                except ftplib.all_errors:
                    ftp.close()

    @staticmethod
    def _is_directory(ftp: ftplib.FTP, path: str) -> bool:
        current = ftp.pwd()
        try:
            ftp.cwd(path)
        except ftplib.error_perm:
            return False
        ftp.cwd(current)
        return True

    @staticmethod
    def _list_file_names(ftp: ftplib.FTP, path: str) -> list[str]:
        try:
            entries = list(ftp.mlsd(path, facts=["type"]))
        except ftplib.error_perm:
            # Servers without MLSD only give bare names.
            names = [posixpath.basename(name) for name in ftp.nlst(path)]
            return sorted(name for name in names if name not in {".", ".."} and not name.startswith("."))
        return sorted(
            name for name, facts in entries if facts.get("type") == "file" and not name.startswith(".")
        )

    def _describe(self, ftp: ftplib.FTP, parsed: ParseResult, path: str) -> SourceDescriptor:
        return SourceDescriptor(
            url=urlunparse(parsed._replace(path=quote(path))),
            mime_type=guess_mime_type(path),
            size_bytes=self._size_of(ftp, path),
            filename=posixpath.basename(path),
            should_be_local=True,
            last_modified=self._modified_at(ftp, path),
        )

    @staticmethod
    def _size_of(ftp: ftplib.FTP, path: str) -> int:
        try:
            ftp.voidcmd("TYPE I")
            size = ftp.size(path)
        except ftplib.error_perm as exc:
            logger.info("FTP SIZE refused for %s: %s", path, exc)
            return 0
        return int(size or 0)

    @staticmethod
    def _modified_at(ftp: ftplib.FTP, path: str) -> str | None:
        try:
            response = ftp.voidcmd(f"MDTM {path}")
        except ftplib.error_perm:
            return None
        stamp = response.split()[-1]
        if len(stamp) < 14 or not stamp[:14].isdigit():
            return None
        return f"{stamp[0:4]}-{stamp[4:6]}-{stamp[6:8]}T{stamp[8:10]}:{stamp[10:12]}:{stamp[12:14]}+00:00"
