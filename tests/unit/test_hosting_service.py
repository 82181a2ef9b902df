from __future__ import annotations

from pathlib import Path

import pytest
from conftest import PDF_BYTES, PNG_BYTES, FakeRemote

from mediatether.application.container import Engine
from mediatether.core.errors import HostingSwitchError
from mediatether.domain.models.resource import Credentials, StorageMode

URL = "fake://host/docs/a.pdf"


def test_switch_to_embedded_and_back(engine: Engine, remote: FakeRemote) -> None:
    remote.put(URL, PDF_BYTES, "application/pdf")
    engine.pipeline.run(URL)
    record = engine.resource_repo.get_by_uri(URL)
    assert record is not None
    assert engine.proxy_cache.refresh(record)
    assert engine.hosting.can_switch(record)

    embedded = engine.hosting.switch(record, StorageMode.EMBEDDED)

    assert embedded.storage_mode is StorageMode.EMBEDDED
    archived = engine.paths.archive_dir / (embedded.archived_relpath or "")
    assert archived.read_bytes() == PDF_BYTES
    assert not engine.proxy_cache.cache_path(record).exists()
    assert engine.resource_repo.get_by_id(record.id).storage_mode is StorageMode.EMBEDDED

    referenced = engine.hosting.switch(embedded, StorageMode.REFERENCED)

    assert referenced.storage_mode is StorageMode.REFERENCED
    assert referenced.archived_relpath is None
    assert not archived.exists()


def test_switch_is_blocked_for_credentialed_resources(engine: Engine, remote: FakeRemote) -> None:
    remote.put(URL, PDF_BYTES, "application/pdf")
    engine.pipeline.run(URL, Credentials("alice", "pw"))
    record = engine.resource_repo.get_by_uri(URL)
    assert record is not None

    assert not engine.hosting.can_switch(record)
    with pytest.raises(HostingSwitchError):
        engine.hosting.switch_to_embedded(record)


def test_local_files_cannot_become_referenced(engine: Engine, tmp_path: Path) -> None:
    source = tmp_path / "logo.png"
    source.write_bytes(PNG_BYTES)
    engine.pipeline.run(source.as_uri())
    record = engine.resource_repo.get_by_uri(source.resolve().as_uri())
    assert record is not None and record.is_embedded

    with pytest.raises(HostingSwitchError):
        engine.hosting.switch_to_referenced(record)


def test_forced_local_kind_stays_embedded(engine: Engine, remote: FakeRemote) -> None:
    remote.put(URL, PDF_BYTES, "application/pdf")
    engine.pipeline.run(URL)
    record = engine.resource_repo.get_by_uri(URL)
    assert record is not None
    embedded = engine.hosting.switch_to_embedded(record)

    engine.mime_policy.register_local_predicate(lambda mime: mime == "application/pdf")
    with pytest.raises(HostingSwitchError):
        engine.hosting.switch_to_referenced(embedded)


def test_unreachable_source_keeps_embedded_copy(engine: Engine, remote: FakeRemote) -> None:
    remote.put(URL, PDF_BYTES, "application/pdf")
    engine.pipeline.run(URL)
    record = engine.resource_repo.get_by_uri(URL)
    assert record is not None
    embedded = engine.hosting.switch_to_embedded(record)

    remote.remove(URL)
    with pytest.raises(HostingSwitchError):
        engine.hosting.switch_to_referenced(embedded)
    assert (engine.paths.archive_dir / (embedded.archived_relpath or "")).exists()
