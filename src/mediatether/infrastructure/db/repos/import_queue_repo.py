from __future__ import annotations

from pathlib import Path

from mediatether.domain.models.queue import DeferredEntry
from mediatether.infrastructure.db.sqlite import get_connection


class ImportQueueRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert_many(self, entries: list[DeferredEntry]) -> None:
        if not entries:
            return
        with get_connection(self.db_path) as conn:
            conn.executemany(
                """
                INSERT INTO import_queue (
                    id,
                    url,
                    credentials_cipher,
                    source_group_id,
                    cursor,
                    state,
                    error_message,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        entry.id,
                        entry.url,
                        entry.credentials_cipher,
                        entry.source_group_id,
                        entry.cursor,
                        entry.state,
                        entry.error_message,
                        entry.created_at,
                    )
                    for entry in entries
                ],
            )
            conn.commit()

    def list(self, *, state: str | None = None, limit: int = 100) -> list[DeferredEntry]:
        with get_connection(self.db_path) as conn:
            if state is None:
                rows = conn.execute(
                    "SELECT * FROM import_queue ORDER BY created_at, rowid LIMIT ?",
                    (limit,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM import_queue WHERE state = ? ORDER BY created_at, rowid LIMIT ?",
                    (state, limit),
                ).fetchall()
        return [self._to_model(row) for row in rows]

    def mark_error(self, entry_id: str, message: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                "UPDATE import_queue SET state = 'error', error_message = ? WHERE id = ?",
                (message, entry_id),
            )
            conn.commit()

    def delete(self, entry_id: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute("DELETE FROM import_queue WHERE id = ?", (entry_id,))
            conn.commit()

    def clear(self) -> int:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM import_queue")
            conn.commit()
        return cursor.rowcount

    @staticmethod
    def _to_model(row) -> DeferredEntry:
        return DeferredEntry(
            id=row["id"],
            url=row["url"],
            state=row["state"],
            created_at=row["created_at"],
            credentials_cipher=row["credentials_cipher"],
            source_group_id=row["source_group_id"],
            cursor=row["cursor"],
            error_message=row["error_message"],
        )
