from __future__ import annotations

import os
from pathlib import Path

import pytest
from conftest import PDF_BYTES, PNG_BYTES, FakeClock, FakeRemote, bootstrap_engine

from mediatether.application.container import Engine
from mediatether.core.errors import CacheMiss
from mediatether.core.hashing import compute_text_digest

IMAGE_URL = "fake://host/img/photo.png"
DAY = 24 * 3600


def _engine_with_image(tmp_path: Path, remote: FakeRemote, clock: FakeClock) -> Engine:
    engine = bootstrap_engine(tmp_path, remote, wall_clock=clock)
    remote.put(IMAGE_URL, PNG_BYTES, "image/png")
    assert engine.pipeline.import_from_url(IMAGE_URL)
    return engine


def test_import_primes_cache_for_proxied_kinds(tmp_path: Path, remote: FakeRemote) -> None:
    clock = FakeClock()
    engine = _engine_with_image(tmp_path, remote, clock)
    record = engine.resource_repo.get_by_uri(IMAGE_URL)
    assert record is not None

    path = engine.proxy_cache.cache_path(record)
    assert path.name == compute_text_digest(IMAGE_URL, "md5") + ".png"
    assert path.read_bytes() == PNG_BYTES
    assert path.stat().st_mtime == pytest.approx(clock.now)
    assert remote.fetches == [IMAGE_URL]


def test_cache_is_fresh_until_ttl_and_refreshed_after(tmp_path: Path, remote: FakeRemote) -> None:
    clock = FakeClock()
    engine = _engine_with_image(tmp_path, remote, clock)
    record = engine.resource_repo.get_by_uri(IMAGE_URL)
    assert record is not None

    clock.advance(DAY - 1)
    served = engine.proxy_cache.resolve(record)
    assert not served.stale
    assert remote.fetches == [IMAGE_URL]

    clock.advance(2)
    served = engine.proxy_cache.resolve(record)
    assert not served.stale
    assert remote.fetches == [IMAGE_URL, IMAGE_URL]
    assert served.path.stat().st_mtime == pytest.approx(clock.now)


def test_refresh_rejects_transport_mime_mismatch(tmp_path: Path, remote: FakeRemote) -> None:
    clock = FakeClock()
    engine = _engine_with_image(tmp_path, remote, clock)
    record = engine.resource_repo.get_by_uri(IMAGE_URL)
    assert record is not None
    cached = engine.proxy_cache.cache_path(record)
    before = cached.stat().st_mtime

    remote.put(IMAGE_URL, b"\xff\xd8\xff\xe0 new jpeg", "image/png")
    remote.reported_mime[IMAGE_URL] = "image/jpeg"
    clock.advance(DAY + 1)

    assert engine.proxy_cache.refresh(record) is False
    assert cached.read_bytes() == PNG_BYTES
    assert cached.stat().st_mtime == before


def test_refresh_rejects_content_that_is_not_what_it_claims(tmp_path: Path, remote: FakeRemote) -> None:
    clock = FakeClock()
    engine = _engine_with_image(tmp_path, remote, clock)
    record = engine.resource_repo.get_by_uri(IMAGE_URL)
    assert record is not None

    remote.put(IMAGE_URL, b"<html><body>login required</body></html>", "image/png")
    clock.advance(DAY + 1)

    served = engine.proxy_cache.resolve(record)

    assert served.stale
    assert served.path.read_bytes() == PNG_BYTES
    assert list(engine.paths.temp_dir.iterdir()) == []


def test_resolve_raises_cache_miss_without_any_copy(engine: Engine, remote: FakeRemote) -> None:
    remote.put("fake://host/docs/a.pdf", PDF_BYTES, "application/pdf")
    engine.pipeline.run("fake://host/docs/a.pdf")
    record = engine.resource_repo.get_by_uri("fake://host/docs/a.pdf")
    assert record is not None
    assert not engine.proxy_cache.cache_path(record).exists()

    remote.remove("fake://host/docs/a.pdf")
    with pytest.raises(CacheMiss):
        engine.proxy_cache.resolve(record)


def test_resolve_address_sets_inline_headers(engine: Engine, remote: FakeRemote) -> None:
    remote.put("fake://host/docs/a.pdf", PDF_BYTES, "application/pdf")
    engine.pipeline.run("fake://host/docs/a.pdf")

    served = engine.proxy_cache.resolve_address("a.pdf")

    assert b"".join(served.iter_bytes()) == PDF_BYTES
    assert served.headers == {
        "Content-Type": "application/pdf",
        "Content-Disposition": 'inline; filename="a.pdf"',
        "Content-Length": str(len(PDF_BYTES)),
    }
    with pytest.raises(CacheMiss):
        engine.proxy_cache.resolve_address("missing.pdf")


def test_purge_clears_cache_directory(tmp_path: Path, remote: FakeRemote) -> None:
    engine = _engine_with_image(tmp_path, remote, FakeClock())
    record = engine.resource_repo.get_by_uri(IMAGE_URL)
    assert record is not None

    assert engine.proxy_cache.purge() == 1
    assert not engine.proxy_cache.is_cached(record)


def test_old_mtime_makes_entry_stale(tmp_path: Path, remote: FakeRemote) -> None:
    clock = FakeClock()
    engine = _engine_with_image(tmp_path, remote, clock)
    record = engine.resource_repo.get_by_uri(IMAGE_URL)
    assert record is not None
    path = engine.proxy_cache.cache_path(record)

    os.utime(path, (clock.now - DAY - 5, clock.now - DAY - 5))

    assert not engine.proxy_cache.is_cached(record)


def test_ensure_skips_fresh_entries_and_refresh_always_refetches(tmp_path: Path, remote: FakeRemote) -> None:
    clock = FakeClock()
    engine = _engine_with_image(tmp_path, remote, clock)
    record = engine.resource_repo.get_by_uri(IMAGE_URL)
    assert record is not None

    assert engine.proxy_cache.ensure(record)
    assert remote.fetches == [IMAGE_URL]

    assert engine.proxy_cache.refresh(record)
    assert remote.fetches == [IMAGE_URL, IMAGE_URL]

    clock.advance(DAY + 1)
    assert engine.proxy_cache.ensure(record)
    assert remote.fetches == [IMAGE_URL, IMAGE_URL, IMAGE_URL]
