from __future__ import annotations

import logging
from typing import Sequence

from mediatether.application.services.import_service import ExecutionBudget, ImportContext, ImportPipeline
from mediatether.core.errors import ExecutionBudgetExceeded, TetherError
from mediatether.core.ids import new_uuid
from mediatether.core.time import now_utc_iso
from mediatether.domain.models.queue import DeferredEntry
from mediatether.domain.models.resource import Credentials
from mediatether.domain.models.results import ImportReport, ResultKind, UrlResult
from mediatether.infrastructure.db.repos.import_queue_repo import ImportQueueRepo
from mediatether.infrastructure.vault.credential_vault import CredentialVault, open_credentials, seal_credentials

logger = logging.getLogger(__name__)

STATE_NEW = "new"
STATE_ERROR = "error"


class DeferredQueueService:
    """Persistent hand-off for files an import batch had no time left to process."""

    def __init__(self, queue_repo: ImportQueueRepo, vault: CredentialVault, *, batch_size: int = 10) -> None:
        self.queue_repo = queue_repo
        self.vault = vault
        self.batch_size = batch_size

    def defer(
        self,
        urls: Sequence[str],
        credentials: Credentials | None = None,
        *,
        source_group_id: str | None = None,
    ) -> list[DeferredEntry]:
        cipher = seal_credentials(self.vault, credentials)
        now = now_utc_iso()
        entries = [
            DeferredEntry(
                id=new_uuid(),
                url=url,
                state=STATE_NEW,
                created_at=now,
                credentials_cipher=cipher,
                source_group_id=source_group_id,
            )
            for url in urls
        ]
        self.queue_repo.insert_many(entries)
        logger.info("Deferred %d file(s) to the import queue", len(entries))
        return entries

    def defer_listing(
        self,
        url: str,
        cursor: str,
        credentials: Credentials | None = None,
        *,
        source_group_id: str | None = None,
    ) -> DeferredEntry:
        """Queue the listing pages of ``url`` from ``cursor`` onwards."""
        entry = DeferredEntry(
            id=new_uuid(),
            url=url,
            state=STATE_NEW,
            created_at=now_utc_iso(),
            credentials_cipher=seal_credentials(self.vault, credentials),
            source_group_id=source_group_id,
            cursor=cursor,
        )
        self.queue_repo.insert_many([entry])
        logger.info("Deferred the listing of %s from %s to the import queue", url, cursor)
        return entry

    def list(self, *, state: str | None = None, limit: int = 100) -> list[DeferredEntry]:
        return self.queue_repo.list(state=state, limit=limit)

    def delete(self, entry_id: str) -> None:
        self.queue_repo.delete(entry_id)

    def clear(self) -> int:
        return self.queue_repo.clear()

    def process(
        self,
        pipeline: ImportPipeline,
        *,
        limit: int | None = None,
        budget: ExecutionBudget | None = None,
    ) -> ImportReport:
        """Import up to ``limit`` waiting entries.

        Imported entries leave the queue; failed ones stay with state ``error``.
        The shared ``budget`` stops the run early, leaving the rest queued.
        Listing continuations run under that same budget, so a continuation cut
        short re-queues its own remainder before it leaves the queue.
        """
        report = ImportReport(url="queue")
        budget = budget or ExecutionBudget.from_settings(pipeline.settings, pipeline.clock)
        budget.start()
        for entry in self.queue_repo.list(state=STATE_NEW, limit=limit or self.batch_size):
            try:
                budget.check()
            except ExecutionBudgetExceeded as exc:
                logger.warning("%s; leaving remaining queue entries for the next run", exc)
                report.deferred = True
                break
            credentials = open_credentials(self.vault, entry.credentials_cipher)
            context = ImportContext(
                cursor=entry.cursor,
                source_group_id=entry.source_group_id,
                check_duplicates=entry.source_group_id is None,
                budget=ExecutionBudget() if entry.cursor is None else budget,
            )
            try:
                if entry.cursor is None:
                    entry_report = pipeline.run(entry.url, credentials, context=context)
                else:
                    entry_report = pipeline.run_all(entry.url, credentials, context=context)
            except TetherError as exc:
                self.queue_repo.mark_error(entry.id, str(exc))
                report.results.append(UrlResult(entry.url, ResultKind.ERROR, str(exc)))
                continue

            report.merge(entry_report)
            if entry_report.errors and not entry_report.ok:
                self.queue_repo.mark_error(entry.id, entry_report.errors[0].message)
            else:
                self.queue_repo.delete(entry.id)
        return report
