from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Iterable

from mediatether.core.errors import PersistenceError
from mediatether.domain.models.resource import ResourceRecord, StorageMode
from mediatether.infrastructure.db.sqlite import get_connection

_COLUMNS = (
    "id",
    "source_uri",
    "display_name",
    "mime_type",
    "size_bytes",
    "storage_mode",
    "available",
    "credentials_cipher",
    "source_group_id",
    "sync_marker",
    "import_marker",
    "archived_relpath",
    "digest_sha256",
    "last_modified",
    "imported_at",
    "updated_at",
)


class ResourceRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert(self, record: ResourceRecord) -> None:
        placeholders = ", ".join("?" for _ in _COLUMNS)
        try:
            with get_connection(self.db_path) as conn:
                conn.execute(
                    f"INSERT INTO resources ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                    self._to_row(record),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not store resource {record.source_uri}: {exc}") from exc

    def update(self, record: ResourceRecord) -> None:
        assignments = ", ".join(f"{column} = ?" for column in _COLUMNS[1:])
        try:
            with get_connection(self.db_path) as conn:
                conn.execute(
                    f"UPDATE resources SET {assignments} WHERE id = ?",
                    (*self._to_row(record)[1:], record.id),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not update resource {record.id}: {exc}") from exc

    def delete(self, resource_id: str) -> None:
        try:
            with get_connection(self.db_path) as conn:
                conn.execute("DELETE FROM resources WHERE id = ?", (resource_id,))
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not delete resource {resource_id}: {exc}") from exc

    def get_by_id(self, resource_id: str) -> ResourceRecord | None:
        return self._fetch_one("SELECT * FROM resources WHERE id = ?", (resource_id,))

    def get_by_uri(self, source_uri: str) -> ResourceRecord | None:
        return self._fetch_one("SELECT * FROM resources WHERE source_uri = ?", (source_uri,))

    def get_by_display_name(self, display_name: str) -> ResourceRecord | None:
        return self._fetch_one("SELECT * FROM resources WHERE display_name = ?", (display_name,))

    def display_name_taken(self, display_name: str, *, exclude_id: str | None = None) -> bool:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT id FROM resources WHERE display_name = ? AND id != ?",
                (display_name, exclude_id or ""),
            ).fetchone()
        return row is not None

    def count_by_digest(self, digest_sha256: str) -> int:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM resources WHERE digest_sha256 = ?",
                (digest_sha256,),
            ).fetchone()
        return int(row[0])

    def list(self, limit: int = 100, *, group_id: str | None = None) -> list[ResourceRecord]:
        if group_id is not None:
            return self._fetch_all(
                """
                SELECT * FROM resources
                WHERE source_group_id = ?
                ORDER BY imported_at DESC, display_name
                LIMIT ?
                """,
                (group_id, limit),
            )
        return self._fetch_all(
            "SELECT * FROM resources ORDER BY imported_at DESC, display_name LIMIT ?",
            (limit,),
        )

    def list_by_group(self, group_id: str) -> list[ResourceRecord]:
        return self._fetch_all(
            "SELECT * FROM resources WHERE source_group_id = ? ORDER BY display_name",
            (group_id,),
        )

    def list_referenced(self) -> list[ResourceRecord]:
        return self._fetch_all(
            "SELECT * FROM resources WHERE storage_mode = ? ORDER BY imported_at",
            (StorageMode.REFERENCED.value,),
        )

    def list_unsynced_in_group(self, group_id: str) -> list[ResourceRecord]:
        return self._fetch_all(
            """
            SELECT * FROM resources
            WHERE source_group_id = ? AND sync_marker IS NULL
            ORDER BY display_name
            """,
            (group_id,),
        )

    def clear_sync_markers(self, group_id: str) -> int:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE resources SET sync_marker = NULL WHERE source_group_id = ?",
                (group_id,),
            )
            conn.commit()
        return cursor.rowcount

    def set_sync_marker(self, resource_id: str, *, marker: str, group_id: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                UPDATE resources
                SET sync_marker = ?, source_group_id = ?
                WHERE id = ?
                """,
                (marker, group_id, resource_id),
            )
            conn.commit()

    def clear_import_markers(self, resource_ids: Iterable[str]) -> None:
        ids = list(resource_ids)
        if not ids:
            return
        with get_connection(self.db_path) as conn:
            conn.executemany(
                "UPDATE resources SET import_marker = 0 WHERE id = ?",
                [(resource_id,) for resource_id in ids],
            )
            conn.commit()

    def set_available(self, resource_id: str, available: bool, *, updated_at: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                "UPDATE resources SET available = ?, updated_at = ? WHERE id = ?",
                (1 if available else 0, updated_at, resource_id),
            )
            conn.commit()

    def _fetch_one(self, sql: str, params: tuple) -> ResourceRecord | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(sql, params).fetchone()
        return self._to_model(row) if row else None

    def _fetch_all(self, sql: str, params: tuple) -> list[ResourceRecord]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._to_model(row) for row in rows]

    @staticmethod
    def _to_row(record: ResourceRecord) -> tuple:
        return (
            record.id,
            record.source_uri,
            record.display_name,
            record.mime_type,
            record.size_bytes,
            record.storage_mode.value,
            1 if record.available else 0,
            record.credentials_cipher,
            record.source_group_id,
            record.sync_marker,
            1 if record.import_marker else 0,
            record.archived_relpath,
            record.digest_sha256,
            record.last_modified,
            record.imported_at,
            record.updated_at,
        )

    @staticmethod
    def _to_model(row) -> ResourceRecord:
        return ResourceRecord(
            id=row["id"],
            source_uri=row["source_uri"],
            display_name=row["display_name"],
            mime_type=row["mime_type"],
            size_bytes=row["size_bytes"],
            storage_mode=StorageMode(row["storage_mode"]),
            available=bool(row["available"]),
            credentials_cipher=row["credentials_cipher"],
            source_group_id=row["source_group_id"],
            sync_marker=row["sync_marker"],
            import_marker=bool(row["import_marker"]),
            archived_relpath=row["archived_relpath"],
            digest_sha256=row["digest_sha256"],
            last_modified=row["last_modified"],
            imported_at=row["imported_at"],
            updated_at=row["updated_at"],
        )
