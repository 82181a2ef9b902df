from __future__ import annotations

import threading
import time
from pathlib import Path

from mediatether.infrastructure.db.sqlite import get_connection, initialize_schema


def test_connection_enables_wal_and_busy_timeout(tmp_path: Path) -> None:
    db_path = tmp_path / "tether.db"
    initialize_schema(db_path)

    with get_connection(db_path) as conn:
        journal_mode = conn.execute("PRAGMA journal_mode;").fetchone()[0]
        busy_timeout = conn.execute("PRAGMA busy_timeout;").fetchone()[0]
        foreign_keys = conn.execute("PRAGMA foreign_keys;").fetchone()[0]

    assert str(journal_mode).lower() == "wal"
    assert int(busy_timeout) >= 30_000
    assert int(foreign_keys) == 1


def test_busy_timeout_comes_from_environment(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("TETHER_SQLITE_BUSY_TIMEOUT_MS", "1234")
    db_path = tmp_path / "tether.db"
    initialize_schema(db_path)

    with get_connection(db_path) as conn:
        assert int(conn.execute("PRAGMA busy_timeout;").fetchone()[0]) == 1234


def test_initialize_schema_migrates_older_databases(tmp_path: Path) -> None:
    db_path = tmp_path / "tether.db"
    with get_connection(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE resources (
                id TEXT PRIMARY KEY,
                source_uri TEXT NOT NULL UNIQUE,
                display_name TEXT NOT NULL UNIQUE,
                mime_type TEXT NOT NULL,
                size_bytes INTEGER NOT NULL DEFAULT 0,
                storage_mode TEXT NOT NULL,
                available INTEGER NOT NULL DEFAULT 1,
                credentials_cipher TEXT,
                source_group_id TEXT,
                sync_marker TEXT,
                import_marker INTEGER NOT NULL DEFAULT 0,
                archived_relpath TEXT,
                digest_sha256 TEXT,
                imported_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.commit()

    initialize_schema(db_path)
    initialize_schema(db_path)

    with get_connection(db_path) as conn:
        columns = {row["name"] for row in conn.execute("PRAGMA table_info(resources)").fetchall()}
        tables = {row["name"] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert "last_modified" in columns
    assert {"resources", "source_groups", "import_queue"} <= tables


def test_write_waits_for_lock_instead_of_failing_immediately(tmp_path: Path) -> None:
    db_path = tmp_path / "tether.db"
    initialize_schema(db_path)

    writer_1 = get_connection(db_path)
    writer_1.execute("BEGIN IMMEDIATE;")
    writer_1.execute(
        "INSERT INTO import_queue (id, url, state, created_at) VALUES (?, ?, 'new', ?)",
        ("first", "fake://host/a.pdf", "2024-01-01T00:00:00+00:00"),
    )

    out: dict[str, object] = {}

    def _writer_2() -> None:
        started = time.perf_counter()
        try:
            with get_connection(db_path) as conn_2:
                conn_2.execute(
                    "INSERT INTO import_queue (id, url, state, created_at) VALUES (?, ?, 'new', ?)",
                    ("second", "fake://host/b.pdf", "2024-01-01T00:00:01+00:00"),
                )
                conn_2.commit()
            out["ok"] = True
        except Exception as exc:  # pragma: no cover
            out["ok"] = False
            out["error"] = str(exc)
        finally:
            out["elapsed"] = time.perf_counter() - started

    t = threading.Thread(target=_writer_2)
    t.start()
    time.sleep(0.25)
    writer_1.commit()
    writer_1.close()
    t.join(timeout=5)

    assert out.get("ok") is True, str(out.get("error"))
    assert float(out.get("elapsed", 0.0)) >= 0.2

    with get_connection(db_path) as conn:
        count = conn.execute("SELECT COUNT(*) FROM import_queue").fetchone()[0]
    assert int(count) == 2
