from __future__ import annotations

import sqlite3
from pathlib import Path

from mediatether.core.errors import SourceGroupError
from mediatether.domain.models.sync import SourceGroup
from mediatether.infrastructure.db.sqlite import get_connection


class SourceGroupRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert(self, group: SourceGroup) -> None:
        try:
            with get_connection(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO source_groups (
                        id,
                        name,
                        url,
                        credentials_cipher,
                        interval_seconds,
                        delete_unused,
                        created_at,
                        last_synced_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        group.id,
                        group.name,
                        group.url,
                        group.credentials_cipher,
                        group.interval_seconds,
                        1 if group.delete_unused else 0,
                        group.created_at,
                        group.last_synced_at,
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise SourceGroupError(f"Source group already exists: {group.name}") from exc

    def delete(self, group_id: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute("DELETE FROM source_groups WHERE id = ?", (group_id,))
            conn.commit()

    def mark_synced(self, group_id: str, synced_at: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                "UPDATE source_groups SET last_synced_at = ? WHERE id = ?",
                (synced_at, group_id),
            )
            conn.commit()

    def claim_sync(self, group_id: str, owner: str, started_at: str, *, stale_before: str) -> bool:
        """Take the sync lease of a group unless another live lease holds it."""
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE source_groups
                SET sync_owner = ?, sync_started_at = ?
                WHERE id = ? AND (sync_owner IS NULL OR sync_started_at < ?)
                """,
                (owner, started_at, group_id, stale_before),
            )
            conn.commit()
        return cursor.rowcount == 1

    def release_sync(self, group_id: str, owner: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                "UPDATE source_groups SET sync_owner = NULL, sync_started_at = NULL WHERE id = ? AND sync_owner = ?",
                (group_id, owner),
            )
            conn.commit()

    def get_by_id(self, group_id: str) -> SourceGroup | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM source_groups WHERE id = ?", (group_id,)).fetchone()
        return self._to_model(row) if row else None

    def get_by_name(self, name: str) -> SourceGroup | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM source_groups WHERE name = ?", (name,)).fetchone()
        return self._to_model(row) if row else None

    def list(self) -> list[SourceGroup]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute("SELECT * FROM source_groups ORDER BY name").fetchall()
        return [self._to_model(row) for row in rows]

    @staticmethod
    def _to_model(row) -> SourceGroup:
        return SourceGroup(
            id=row["id"],
            name=row["name"],
            url=row["url"],
            credentials_cipher=row["credentials_cipher"],
            interval_seconds=row["interval_seconds"],
            delete_unused=bool(row["delete_unused"]),
            created_at=row["created_at"],
            last_synced_at=row["last_synced_at"],
            sync_owner=row["sync_owner"],
            sync_started_at=row["sync_started_at"],
        )
