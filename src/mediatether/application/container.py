from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Sequence

from mediatether.application.services.availability_service import AvailabilityService
from mediatether.application.services.deferred_queue_service import DeferredQueueService
from mediatether.application.services.hosting_service import HostingService
from mediatether.application.services.import_service import ImportPipeline
from mediatether.application.services.mime_policy_service import LocalHostingPredicate, MimePolicyService
from mediatether.application.services.proxy_cache_service import ProxyCacheService
from mediatether.application.services.resource_service import ResourceService
from mediatether.application.services.scheduler_service import SchedulerService
from mediatether.application.services.source_group_service import SourceGroupService
from mediatether.application.services.sync_service import SyncService
from mediatether.core.config import AppPaths, Settings, load_settings
from mediatether.core.log_sink import LogSink, LoggingLogSink
from mediatether.infrastructure.archive.store import ArchiveStore
from mediatether.infrastructure.db.repos.import_queue_repo import ImportQueueRepo
from mediatether.infrastructure.db.repos.resource_repo import ResourceRepo
from mediatether.infrastructure.db.repos.source_group_repo import SourceGroupRepo
from mediatether.infrastructure.protocols.base import ProtocolHandler
from mediatether.infrastructure.protocols.registry import DEFAULT_HANDLERS, ProtocolRegistry
from mediatether.infrastructure.vault.credential_vault import CredentialVault, PlainCredentialVault


@dataclass(slots=True)
class Engine:
    paths: AppPaths
    settings: Settings
    resource_repo: ResourceRepo
    registry: ProtocolRegistry
    mime_policy: MimePolicyService
    proxy_cache: ProxyCacheService
    pipeline: ImportPipeline
    deferred_queue: DeferredQueueService
    resources: ResourceService
    groups: SourceGroupService
    sync: SyncService
    hosting: HostingService
    availability: AvailabilityService
    scheduler: SchedulerService


def build_engine(
    paths: AppPaths,
    settings: Settings | None = None,
    *,
    handlers: Sequence[type[ProtocolHandler]] = DEFAULT_HANDLERS,
    local_predicates: Sequence[LocalHostingPredicate] = (),
    vault: CredentialVault | None = None,
    log_sink: LogSink | None = None,
    monotonic: Callable[[], float] = time.monotonic,
    wall_clock: Callable[[], float] = time.time,
) -> Engine:
    """Construct every engine component once and wire them together."""
    settings = settings or load_settings()
    vault = vault or PlainCredentialVault()
    log_sink = log_sink or LoggingLogSink()

    resource_repo = ResourceRepo(paths.db_path)
    archive_store = ArchiveStore(paths.archive_dir)
    registry = ProtocolRegistry(
        settings=settings,
        temp_dir=paths.temp_dir,
        handlers=handlers,
        vault=vault,
        log_sink=log_sink,
    )
    mime_policy = MimePolicyService(settings, local_predicates=local_predicates)
    proxy_cache = ProxyCacheService(
        cache_dir=paths.cache_dir,
        registry=registry,
        mime_policy=mime_policy,
        resource_repo=resource_repo,
        archive_store=archive_store,
        log_sink=log_sink,
        clock=wall_clock,
    )
    deferred_queue = DeferredQueueService(
        ImportQueueRepo(paths.db_path),
        vault,
        batch_size=settings.queue_batch_size,
    )
    pipeline = ImportPipeline(
        registry=registry,
        resource_repo=resource_repo,
        archive_store=archive_store,
        mime_policy=mime_policy,
        settings=settings,
        vault=vault,
        deferred_queue=deferred_queue,
        proxy_cache=proxy_cache,
        log_sink=log_sink,
        clock=monotonic,
    )
    resources = ResourceService(resource_repo, archive_store, proxy_cache, log_sink=log_sink)
    groups = SourceGroupService(SourceGroupRepo(paths.db_path), resources, vault)
    sync = SyncService(
        pipeline=pipeline,
        resource_repo=resource_repo,
        resource_service=resources,
        group_service=groups,
        delete_unused=settings.sync_delete_unused,
        lease_seconds=settings.sync_lease_seconds,
        log_sink=log_sink,
        clock=monotonic,
        wall_clock=wall_clock,
    )
    hosting = HostingService(
        registry=registry,
        resource_repo=resource_repo,
        archive_store=archive_store,
        proxy_cache=proxy_cache,
        mime_policy=mime_policy,
        log_sink=log_sink,
    )
    availability = AvailabilityService(
        registry=registry,
        resource_repo=resource_repo,
        mime_policy=mime_policy,
        log_sink=log_sink,
    )
    scheduler = SchedulerService(
        group_service=groups,
        sync_service=sync,
        availability_service=availability,
        deferred_queue=deferred_queue,
        pipeline=pipeline,
    )
    return Engine(
        paths=paths,
        settings=settings,
        resource_repo=resource_repo,
        registry=registry,
        mime_policy=mime_policy,
        proxy_cache=proxy_cache,
        pipeline=pipeline,
        deferred_queue=deferred_queue,
        resources=resources,
        groups=groups,
        sync=sync,
        hosting=hosting,
        availability=availability,
        scheduler=scheduler,
    )
