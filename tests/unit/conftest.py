from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from mediatether.application.container import Engine, build_engine
from mediatether.application.services.project_service import ProjectService
from mediatether.core.config import AppPaths, Settings
from mediatether.core.errors import TransportFetchError
from mediatether.domain.models.descriptor import RemoteListing, SourceDescriptor, TempCopy
from mediatether.infrastructure.protocols.base import ProtocolHandler, Transport

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\n%%EOF\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@dataclass
class FakeRemote:
    """In-memory remote collection served by ``FakeHandler``."""

    files: dict[str, tuple[bytes, str]] = field(default_factory=dict)
    reported_mime: dict[str, str] = field(default_factory=dict)
    fail_listing: bool = False
    fetches: list[str] = field(default_factory=list)

    def put(self, url: str, payload: bytes, mime_type: str) -> None:
        self.files[url] = (payload, mime_type)

    def remove(self, url: str) -> None:
        self.files.pop(url, None)


class FakeHandler(ProtocolHandler):
    transport = Transport.HTTP
    schemes = ("fake",)
    remote: FakeRemote = FakeRemote()

    def list_remote_files(self, cursor: str | None = None) -> RemoteListing:
        if self.remote.fail_listing:
            raise TransportFetchError(f"listing of {self.url} failed")
        if not self.url.endswith("/"):
            if self.url not in self.remote.files:
                raise TransportFetchError(f"{self.url} not found")
            return RemoteListing([self._describe(self.url)])
        urls = sorted(url for url in self.remote.files if url.startswith(self.url))
        page, load_more = self.paginate(urls, cursor)
        return RemoteListing([self._describe(url) for url in page], load_more)

    def fetch_temp_copy(self, url: str) -> TempCopy:
        if url not in self.remote.files:
            raise TransportFetchError(f"{url} not found")
        self.remote.fetches.append(url)
        payload, mime_type = self.remote.files[url]
        target = self.new_temp_path(url)
        target.write_bytes(payload)
        return TempCopy(
            path=target,
            mime_type=self.remote.reported_mime.get(url, mime_type),
            size_bytes=len(payload),
        )

    def check_availability(self, url: str) -> bool:
        return url in self.remote.files

    def _describe(self, url: str) -> SourceDescriptor:
        payload, mime_type = self.remote.files[url]
        return SourceDescriptor(url=url, mime_type=mime_type, size_bytes=len(payload))


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_paths(tmp_path: Path) -> AppPaths:
    tether_dir = tmp_path / ".tether"
    return AppPaths(
        project_root=tmp_path,
        tether_dir=tether_dir,
        db_path=tether_dir / "tether.db",
        archive_dir=tether_dir / "archive",
        cache_dir=tether_dir / "proxy",
        temp_dir=tether_dir / "tmp",
    )


def bootstrap_engine(
    tmp_path: Path,
    remote: FakeRemote,
    settings: Settings | None = None,
    *,
    monotonic: FakeClock | None = None,
    wall_clock: FakeClock | None = None,
) -> Engine:
    paths = make_paths(tmp_path)
    ProjectService(paths).init_project()
    FakeHandler.remote = remote
    engine = build_engine(
        paths,
        settings or Settings(),
        monotonic=monotonic or FakeClock(),
        wall_clock=wall_clock or FakeClock(),
    )
    engine.registry.register(FakeHandler, first=True)
    return engine


@pytest.fixture
def remote(monkeypatch: pytest.MonkeyPatch) -> FakeRemote:
    fake = FakeRemote()
    monkeypatch.setattr(FakeHandler, "remote", fake)
    return fake


@pytest.fixture
def engine(tmp_path: Path, remote: FakeRemote) -> Engine:
    return bootstrap_engine(tmp_path, remote)
