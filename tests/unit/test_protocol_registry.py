from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeHandler

from mediatether.core.config import Settings
from mediatether.core.errors import UnsupportedTransport
from mediatether.domain.models.resource import Credentials
from mediatether.infrastructure.protocols.file import FileProtocolHandler
from mediatether.infrastructure.protocols.ftp import FtpProtocolHandler
from mediatether.infrastructure.protocols.http import HttpProtocolHandler
from mediatether.infrastructure.protocols.registry import ProtocolRegistry
from mediatether.infrastructure.protocols.sftp import SftpProtocolHandler


class RecordingSink:
    def __init__(self) -> None:
        self.entries: list[tuple[str, str, str]] = []

    def record(self, message: str, url: str = "", level: str = "info", verbosity: int = 0) -> None:
        self.entries.append((message, url, level))


class UnavailableHandler(FakeHandler):
    def is_available(self) -> bool:
        return False


def _registry(tmp_path: Path, sink: RecordingSink | None = None) -> ProtocolRegistry:
    return ProtocolRegistry(settings=Settings(), temp_dir=tmp_path / "tmp", log_sink=sink)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("file:///srv/media/a.pdf", FileProtocolHandler),
        ("ftp://ftp.example.org/pub/", FtpProtocolHandler),
        ("FTPS://ftp.example.org/pub/", FtpProtocolHandler),
        ("http://example.org/a.png", HttpProtocolHandler),
        ("https://example.org/files/", HttpProtocolHandler),
        ("sftp://files.example.org/home/a.pdf", SftpProtocolHandler),
    ],
)
def test_resolve_picks_handler_by_scheme(tmp_path: Path, url: str, expected: type) -> None:
    handler = _registry(tmp_path).resolve(url)
    assert type(handler) is expected
    assert handler.url == url


def test_unknown_scheme_is_unsupported_and_every_rejection_is_logged(tmp_path: Path) -> None:
    sink = RecordingSink()
    registry = _registry(tmp_path, sink)

    with pytest.raises(UnsupportedTransport):
        registry.resolve("gopher://example.org/a.pdf")

    rejected = [message for message, _url, _level in sink.entries if "rejected" in message]
    assert len(rejected) == len(registry.handler_classes)
    assert sink.entries[-1][2] == "error"


def test_unavailable_handler_is_skipped_with_reason(tmp_path: Path) -> None:
    sink = RecordingSink()
    registry = _registry(tmp_path, sink)
    registry.register(UnavailableHandler, first=True)
    registry.register(FakeHandler)

    handler = registry.resolve("fake://host/a.pdf")

    assert type(handler) is FakeHandler
    assert any(
        message.startswith("UnavailableHandler rejected: transport unavailable") for message, _u, _l in sink.entries
    )


def test_credentials_are_bound_per_resolution(tmp_path: Path) -> None:
    registry = _registry(tmp_path)
    registry.register(FakeHandler, first=True)

    with_creds = registry.resolve("fake://host/a.pdf", Credentials("alice", "pw"))
    without = registry.resolve("fake://host/a.pdf")

    assert with_creds.credentials == Credentials("alice", "pw")
    assert without.credentials is None
    assert with_creds.supports_hosting_switch() is False
    assert without.supports_hosting_switch() is True


def test_paginate_uses_offset_cursor(tmp_path: Path) -> None:
    handler = FakeHandler("fake://host/", settings=Settings(listing_page_size=3), temp_dir=tmp_path)
    items = list(range(7))

    assert handler.paginate(items, None) == ([0, 1, 2], "3")
    assert handler.paginate(items, "3") == ([3, 4, 5], "6")
    assert handler.paginate(items, "6") == ([6], None)
    assert handler.paginate(items, "junk") == ([0, 1, 2], "3")
