from __future__ import annotations

import io
from email.message import Message
from pathlib import Path

import pytest

from mediatether.core.config import Settings
from mediatether.core.errors import TransportFetchError
from mediatether.domain.models.resource import Credentials
from mediatether.infrastructure.protocols.http import HttpProtocolHandler

INDEX = """
<html><body>
<a href="../">Parent</a>
<a href="a.pdf">a.pdf</a>
<a href="sub/b.png">b.png</a>
<a href="https://elsewhere.example/c.pdf">c.pdf</a>
<a href="broken.pdf">broken.pdf</a>
<a href="a.pdf#page=2">a.pdf again</a>
<a href="nested/">nested</a>
</body></html>
"""

PAGES: dict[str, tuple[str, bytes]] = {
    "https://files.example/pub/": ("text/html; charset=utf-8", INDEX.encode("utf-8")),
    "https://files.example/pub/a.pdf": ("application/pdf", b"%PDF-1.4"),
    "https://files.example/pub/sub/b.png": ("image/png", b"\x89PNG\r\n\x1a\n"),
    "https://files.example/pub/nested/": ("text/html", b"<html></html>"),
}


class _FakeResponse(io.BytesIO):
    def __init__(self, content_type: str, body: bytes) -> None:
        super().__init__(body)
        self.status = 200
        self.headers = Message()
        self.headers["Content-Type"] = content_type
        self.headers["Content-Length"] = str(len(body))


def _handler(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, url: str, **settings) -> HttpProtocolHandler:
    handler = HttpProtocolHandler(url, settings=Settings(**settings), temp_dir=tmp_path)

    def fake_open(target: str, *, method: str) -> _FakeResponse:
        if target not in PAGES:
            raise TransportFetchError(f"{method} {target} returned HTTP 404")
        content_type, body = PAGES[target]
        return _FakeResponse(content_type, body)

    monkeypatch.setattr(handler, "_open", fake_open)
    return handler


def test_directory_index_lists_files_below_base(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    handler = _handler(tmp_path, monkeypatch, "https://files.example/pub/")

    listing = handler.list_remote_files()

    assert [d.url for d in listing.descriptors] == [
        "https://files.example/pub/a.pdf",
        "https://files.example/pub/sub/b.png",
    ]
    assert listing.descriptors[0].mime_type == "application/pdf"
    assert listing.descriptors[0].size_bytes == 8
    assert listing.load_more is None


def test_single_file_url_is_described_directly(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    handler = _handler(tmp_path, monkeypatch, "https://files.example/pub/a.pdf")

    listing = handler.list_remote_files()

    assert len(listing.descriptors) == 1
    assert listing.descriptors[0].should_be_local is False


def test_fetch_streams_into_temp_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    handler = _handler(tmp_path, monkeypatch, "https://files.example/pub/")

    copy = handler.fetch_temp_copy("https://files.example/pub/sub/b.png")

    assert copy.mime_type == "image/png"
    assert copy.path.read_bytes() == b"\x89PNG\r\n\x1a\n"
    handler.cleanup_temp_file(copy.path)
    assert not copy.path.exists()


def test_should_be_local_rules(tmp_path: Path) -> None:
    plain = HttpProtocolHandler("http://files.example/a.pdf", settings=Settings(), temp_dir=tmp_path)
    assert plain.should_be_local() is False

    forced = HttpProtocolHandler(
        "http://files.example/a.pdf",
        settings=Settings(force_local_for_plain_http=True),
        temp_dir=tmp_path,
    )
    assert forced.should_be_local() is True

    secure = HttpProtocolHandler("https://files.example/a.pdf", settings=Settings(), temp_dir=tmp_path)
    secure.set_credentials(Credentials("alice", "pw"))
    assert secure.should_be_local() is True


def test_availability_probe_reports_failures(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    handler = _handler(tmp_path, monkeypatch, "https://files.example/pub/")

    assert handler.check_availability("https://files.example/pub/a.pdf") is True
    assert handler.check_availability("https://files.example/pub/gone.pdf") is False
