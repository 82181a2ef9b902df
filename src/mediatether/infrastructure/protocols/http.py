from __future__ import annotations

import base64
import logging
import re
import shutil
import urllib.request
from dataclasses import dataclass
from email.message import Message
from email.utils import parsedate_to_datetime
from http.client import HTTPResponse
from urllib.error import HTTPError, URLError
from urllib.parse import urldefrag, urljoin

from mediatether import __version__
from mediatether.core.errors import TransportFetchError
from mediatether.core.mime import normalize_mime_type
from mediatether.domain.models.descriptor import RemoteListing, SourceDescriptor, TempCopy
from mediatether.infrastructure.protocols.base import ProtocolHandler, Transport

logger = logging.getLogger(__name__)

ALLOWED_STATUS_CODES = {200}
DIRECTORY_MIME_TYPE = "text/html"
MAX_INDEX_BYTES = 5 * 1024 * 1024
LINK_RE = re.compile(r'<a href="(.+?)">', re.IGNORECASE)


@dataclass(slots=True)
class _UrlInfo:
    url: str
    mime_type: str
    size_bytes: int
    filename: str | None
    last_modified: str | None


class _NoRedirect(urllib.request.HTTPRedirectHandler):
    def redirect_request(self, req, fp, code, msg, headers, newurl):  # type: ignore[override]
        return None


class HttpProtocolHandler(ProtocolHandler):
    transport = Transport.HTTP
    schemes = ("http", "https")

    def list_remote_files(self, cursor: str | None = None) -> RemoteListing:
        info = self._probe(self.url)
        if info.mime_type != DIRECTORY_MIME_TYPE:
            return RemoteListing([self._describe(info)])

        links = self._index_links(self.url)
        page, load_more = self.paginate(links, cursor)
        descriptors: list[SourceDescriptor] = []
        for link in page:
            try:
                linked = self._probe(link)
            except TransportFetchError as exc:
                logger.info("Skipping unreachable link %s: %s", link, exc)
                continue
            if linked.mime_type == DIRECTORY_MIME_TYPE:
                logger.debug("Skipping nested index %s", link)
                continue
            descriptors.append(self._describe(linked))
        return RemoteListing(descriptors, load_more)

    def fetch_temp_copy(self, url: str) -> TempCopy:
        target = self.new_temp_path(url.rsplit("/", 1)[-1])
        try:
            with self._open(url, method="GET") as response, target.open("wb") as handle:
                shutil.copyfileobj(response, handle)
                mime_type = normalize_mime_type(response.headers.get("Content-Type"))
        except (TransportFetchError, OSError):
            self.cleanup_temp_file(target)
            raise
        return TempCopy(path=target, mime_type=mime_type, size_bytes=target.stat().st_size)

    def check_availability(self, url: str) -> bool:
        try:
            self._probe(url)
        except TransportFetchError as exc:
            logger.info("HTTP availability probe failed for %s: %s", url, exc)
            return False
        return True

    def should_be_local(self, mime_type: str = "") -> bool:
        if self.credentials is not None:
            return True
        return self.settings.force_local_for_plain_http and self.url.lower().startswith("http://")

    def _probe(self, url: str) -> _UrlInfo:
        with self._open(url, method="HEAD") as response:
            headers = response.headers
        mime_type = normalize_mime_type(headers.get("Content-Type"))
        if not mime_type:
            raise TransportFetchError(f"{url} did not report a content type")
        return _UrlInfo(
            url=url,
            mime_type=mime_type,
            size_bytes=self._content_length(headers),
            filename=headers.get_filename(),
            last_modified=self._last_modified(headers),
        )

    def _open(self, url: str, *, method: str) -> HTTPResponse:
        request = urllib.request.Request(
            url,
            method=method,
            headers={"User-Agent": f"mediatether/{__version__}"},
        )
        if self.credentials is not None:
            token = f"{self.credentials.login}:{self.credentials.password}".encode("utf-8")
            request.add_header("Authorization", "Basic " + base64.b64encode(token).decode("ascii"))
        opener = urllib.request.build_opener(_NoRedirect)
        try:
            response = opener.open(request, timeout=self.settings.transport_timeout_seconds)
        except HTTPError as exc:
            raise TransportFetchError(f"{method} {url} returned HTTP {exc.code}") from exc
        except (URLError, OSError) as exc:
            raise TransportFetchError(f"{method} {url} failed: {exc}") from exc
        if response.status not in ALLOWED_STATUS_CODES:
            response.close()
            raise TransportFetchError(f"{method} {url} returned HTTP {response.status}")
        return response

    def _index_links(self, url: str) -> list[str]:
        with self._open(url, method="GET") as response:
            charset = response.headers.get_content_charset() or "utf-8"
            body = response.read(MAX_INDEX_BYTES).decode(charset, errors="replace")

        base = url if url.endswith("/") else url + "/"
        links: list[str] = []
        for href in LINK_RE.findall(body):
            href = href.strip()
            if not href or href.startswith(("?", "#", "mailto:", "javascript:", "../")):
                continue
            resolved = urldefrag(urljoin(base, href))[0]
            # Only files below the listed directory belong to it.
            if not resolved.startswith(base) or resolved == base or resolved in links:
                continue
            links.append(resolved)
        return links

    def _describe(self, info: _UrlInfo) -> SourceDescriptor:
        return SourceDescriptor(
            url=info.url,
            mime_type=info.mime_type,
            size_bytes=info.size_bytes,
            filename=info.filename,
            should_be_local=self.should_be_local(info.mime_type),
            last_modified=info.last_modified,
        )

    @staticmethod
    def _content_length(headers: Message) -> int:
        raw = headers.get("Content-Length")
        try:
            return max(int(raw), 0) if raw is not None else 0
        except ValueError:
            return 0

    @staticmethod
    def _last_modified(headers: Message) -> str | None:
        raw = headers.get("Last-Modified")
        if not raw:
            return None
        try:
            return parsedate_to_datetime(raw).isoformat()
        except (TypeError, ValueError):
            return None
