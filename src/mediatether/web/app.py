from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from mediatether import __version__
from mediatether.application.container import build_engine
from mediatether.application.services.import_service import ImportContext
from mediatether.application.services.project_service import ProjectService
from mediatether.core.config import AppPaths, Settings
from mediatether.core.errors import (
    CacheMiss,
    SourceGroupError,
    SyncAlreadyRunning,
    TetherError,
    UnsupportedTransport,
)
from mediatether.domain.models.resource import Credentials, ResourceRecord
from mediatether.domain.models.sync import SourceGroup

logger = logging.getLogger(__name__)


class ImportRequest(BaseModel):
    url: str
    login: str | None = None
    password: str | None = None
    update: bool = False


class SourceGroupRequest(BaseModel):
    name: str
    url: str
    interval_seconds: int = 86_400
    delete_unused: bool = True
    login: str | None = None
    password: str | None = None


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return _jsonable(asdict(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


def _resource_payload(record: ResourceRecord) -> dict[str, Any]:
    payload = _jsonable(record)
    payload.pop("credentials_cipher", None)
    payload["has_credentials"] = record.has_credentials
    return payload


def _group_payload(group: SourceGroup) -> dict[str, Any]:
    payload = _jsonable(group)
    payload.pop("credentials_cipher", None)
    payload.pop("sync_owner", None)
    return payload


def create_app(paths: AppPaths, settings: Settings | None = None) -> FastAPI:
    app = FastAPI(title="mediatether", version=__version__)

    ProjectService(paths).init_project()
    engine = build_engine(paths, settings)
    app.state.engine = engine

    @app.get("/api/health")
    def api_health() -> dict[str, Any]:
        return {"ok": True, "version": __version__, "db_path": str(paths.db_path)}

    @app.get("/proxy/{display_name}")
    def proxy(display_name: str) -> StreamingResponse:
        try:
            cached = engine.proxy_cache.resolve_address(display_name)
        except CacheMiss as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except UnsupportedTransport as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return StreamingResponse(
            cached.iter_bytes(),
            media_type=cached.record.mime_type,
            headers=cached.headers,
        )

    @app.post("/api/import")
    def api_import(req: ImportRequest) -> dict[str, Any]:
        credentials = Credentials.from_parts(req.login, req.password)
        try:
            report = engine.pipeline.run_all(
                req.url,
                credentials,
                context=ImportContext(check_duplicates=not req.update),
            )
        except UnsupportedTransport as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "ok": report.ok,
            "listed": report.listed,
            "listing_failed": report.listing_failed,
            "deferred": report.deferred,
            "deferred_urls": report.deferred_urls,
            "results": _jsonable(report.results),
        }

    @app.get("/api/resources")
    def api_resources(
        limit: int = Query(default=100, ge=1, le=5000),
        group_id: str | None = None,
    ) -> dict[str, Any]:
        records = engine.resources.list(limit=limit, group_id=group_id)
        return {"count": len(records), "items": [_resource_payload(r) for r in records]}

    @app.delete("/api/resources/{resource_id}")
    def api_delete_resource(resource_id: str) -> dict[str, Any]:
        record = engine.resources.get(resource_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Resource not found: {resource_id}")
        engine.resources.delete(record)
        return {"ok": True, "deleted": resource_id}

    @app.post("/api/groups")
    def api_create_group(req: SourceGroupRequest) -> dict[str, Any]:
        try:
            group = engine.groups.create(
                req.name,
                req.url,
                credentials=Credentials.from_parts(req.login, req.password),
                interval_seconds=req.interval_seconds,
                delete_unused=req.delete_unused,
            )
        except SourceGroupError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"ok": True, "group": _group_payload(group)}

    @app.get("/api/groups")
    def api_groups() -> dict[str, Any]:
        groups = engine.groups.list()
        return {"count": len(groups), "items": [_group_payload(g) for g in groups]}

    def _run_sync(group_id: str) -> None:
        try:
            engine.sync.sync_group(group_id)
        except TetherError as exc:
            logger.error("Background sync of %s failed: %s", group_id, exc)

    @app.post("/api/groups/{group_id}/sync", status_code=202)
    def api_sync_group(group_id: str, background_tasks: BackgroundTasks) -> dict[str, Any]:
        try:
            group = engine.groups.get(group_id)
        except SourceGroupError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        if engine.sync.is_running(group.id):
            raise HTTPException(
                status_code=409,
                detail=str(SyncAlreadyRunning(f"Source group {group.name} is already being synchronized")),
            )
        background_tasks.add_task(_run_sync, group.id)
        return {"ok": True, "group_id": group.id, "scheduled": True}

    @app.get("/api/groups/{group_id}/status")
    def api_group_status(group_id: str) -> dict[str, Any]:
        try:
            group = engine.groups.get(group_id)
        except SourceGroupError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        job = engine.sync.progress(group.id)
        return {
            "group_id": group.id,
            "running": engine.sync.is_running(group.id),
            "job": _jsonable(job) if job is not None else None,
            "last_synced_at": group.last_synced_at,
        }

    @app.post("/api/cache/purge")
    def api_cache_purge() -> dict[str, Any]:
        return {"ok": True, "removed": engine.proxy_cache.purge()}

    return app
