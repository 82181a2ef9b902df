from __future__ import annotations

from pathlib import Path

from conftest import PDF_BYTES, PNG_BYTES, FakeHandler, FakeRemote, make_paths
from fastapi.testclient import TestClient

from mediatether.core.config import Settings
from mediatether.web.app import create_app


def _client(tmp_path: Path, remote: FakeRemote) -> TestClient:
    app = create_app(make_paths(tmp_path), Settings())
    app.state.engine.registry.register(FakeHandler, first=True)
    return TestClient(app)


def test_import_list_proxy_and_delete(tmp_path: Path, remote: FakeRemote) -> None:
    remote.put("fake://host/docs/a.pdf", PDF_BYTES, "application/pdf")
    client = _client(tmp_path, remote)

    r = client.post("/api/import", json={"url": "fake://host/docs/a.pdf"})
    assert r.status_code == 200
    payload = r.json()
    assert payload["ok"] is True
    assert payload["results"][0]["kind"] == "success"

    r = client.get("/api/resources")
    assert r.status_code == 200
    items = r.json()["items"]
    assert len(items) == 1
    assert items[0]["display_name"] == "a.pdf"
    assert items[0]["storage_mode"] == "referenced"
    assert "credentials_cipher" not in items[0]

    r = client.get("/proxy/a.pdf")
    assert r.status_code == 200
    assert r.content == PDF_BYTES
    assert r.headers["content-type"] == "application/pdf"
    assert r.headers["content-disposition"] == 'inline; filename="a.pdf"'

    r = client.delete(f"/api/resources/{items[0]['id']}")
    assert r.status_code == 200
    assert client.get("/api/resources").json()["count"] == 0
    assert client.delete(f"/api/resources/{items[0]['id']}").status_code == 404


def test_proxy_unknown_address_is_404(tmp_path: Path, remote: FakeRemote) -> None:
    client = _client(tmp_path, remote)
    assert client.get("/proxy/nothing.png").status_code == 404


def test_import_with_unsupported_scheme_is_400(tmp_path: Path, remote: FakeRemote) -> None:
    client = _client(tmp_path, remote)
    r = client.post("/api/import", json={"url": "gopher://host/a.pdf"})
    assert r.status_code == 400


def test_groups_sync_and_status(tmp_path: Path, remote: FakeRemote) -> None:
    remote.put("fake://host/img/a.png", PNG_BYTES, "image/png")
    remote.put("fake://host/img/b.png", PNG_BYTES, "image/png")
    client = _client(tmp_path, remote)

    r = client.post("/api/groups", json={"name": "images", "url": "fake://host/img/"})
    assert r.status_code == 200
    group_id = r.json()["group"]["id"]
    assert "credentials_cipher" not in r.json()["group"]
    assert "sync_owner" not in r.json()["group"]

    assert client.post("/api/groups", json={"name": "images", "url": "fake://host/img/"}).status_code == 400
    assert client.get("/api/groups").json()["count"] == 1

    r = client.post(f"/api/groups/{group_id}/sync")
    assert r.status_code == 202

    status = client.get(f"/api/groups/{group_id}/status").json()
    assert status["running"] is False
    assert status["last_synced_at"] is not None
    assert client.get("/api/resources", params={"group_id": group_id}).json()["count"] == 2

    assert client.post("/api/groups/unknown/sync").status_code == 404

    r = client.post("/api/cache/purge")
    assert r.status_code == 200
    assert r.json()["removed"] == 2
