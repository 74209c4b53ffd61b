"""SQLite database layer for show/creator records, features, and batch status."""

import json
import sqlite3
from datetime import datetime, timedelta
from pathlib import Path

from podmatch.core.schemas import CandidateRecord, CreatorRecord, ProcessingStatus

_SHOWS_TABLE = """
CREATE TABLE IF NOT EXISTS shows (
    id              TEXT PRIMARY KEY,
    title           TEXT NOT NULL DEFAULT '',
    categories_json TEXT NOT NULL DEFAULT '[]',
    payload_json    TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
"""

_CREATORS_TABLE = """
CREATE TABLE IF NOT EXISTS creators (
    id              TEXT PRIMARY KEY,
    payload_json    TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
"""

_FEATURES_TABLE = """
CREATE TABLE IF NOT EXISTS features (
    entity_id       TEXT NOT NULL,
    kind            TEXT NOT NULL,
    features_json   TEXT NOT NULL,
    analyzed_at     TEXT NOT NULL,
    PRIMARY KEY (entity_id, kind)
);
"""

_STATUS_TABLE = """
CREATE TABLE IF NOT EXISTS processing_status (
    key             TEXT PRIMARY KEY,
    status          TEXT NOT NULL,
    progress        REAL NOT NULL DEFAULT 0.0,
    processed_count INTEGER NOT NULL DEFAULT 0,
    total_count     INTEGER NOT NULL DEFAULT 0,
    error           TEXT,
    updated_at      TEXT NOT NULL
);
"""

SHOW_FEATURES = "show"
CREATOR_FEATURES = "creator"


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # Stores call in from worker threads, serialized by their own lock.
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_SHOWS_TABLE)
    conn.execute(_CREATORS_TABLE)
    conn.execute(_FEATURES_TABLE)
    conn.execute(_STATUS_TABLE)
    conn.commit()
    return conn


def upsert_shows(conn: sqlite3.Connection, records: list[CandidateRecord]) -> int:
    """Insert or replace show records. Returns the number written."""
    now = datetime.now().isoformat()
    conn.executemany(
        """
        INSERT INTO shows (id, title, categories_json, payload_json, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            title = excluded.title,
            categories_json = excluded.categories_json,
            payload_json = excluded.payload_json,
            updated_at = excluded.updated_at
        """,
        [
            (r.id, r.title, json.dumps(r.categories), r.model_dump_json(), now)
            for r in records
        ],
    )
    conn.commit()
    return len(records)


def get_show(conn: sqlite3.Connection, show_id: str) -> CandidateRecord | None:
    """Return the stored show record, or None."""
    row = conn.execute(
        "SELECT payload_json FROM shows WHERE id = ?", (show_id,),
    ).fetchone()
    if row is None:
        return None
    return CandidateRecord.model_validate_json(row["payload_json"])


def list_show_ids(
    conn: sqlite3.Connection,
    topics: list[str] | None = None,
    exclude_ids: list[str] | None = None,
) -> list[str]:
    """Return show ids whose categories contain every topic, minus exclusions."""
    wanted = {t.lower().strip() for t in topics or [] if t.strip()}
    excluded = set(exclude_ids or [])
    ids: list[str] = []
    for row in conn.execute("SELECT id, categories_json FROM shows ORDER BY id"):
        if row["id"] in excluded:
            continue
        if wanted:
            categories = {str(c).lower().strip() for c in json.loads(row["categories_json"])}
            if not wanted <= categories:
                continue
        ids.append(row["id"])
    return ids


def upsert_creator(conn: sqlite3.Connection, record: CreatorRecord) -> None:
    """Insert or replace a creator record."""
    conn.execute(
        """
        INSERT INTO creators (id, payload_json, updated_at) VALUES (?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            payload_json = excluded.payload_json,
            updated_at = excluded.updated_at
        """,
        (record.id, record.model_dump_json(), datetime.now().isoformat()),
    )
    conn.commit()


def get_creator(conn: sqlite3.Connection, creator_id: str) -> CreatorRecord | None:
    """Return the stored creator record, or None."""
    row = conn.execute(
        "SELECT payload_json FROM creators WHERE id = ?", (creator_id,),
    ).fetchone()
    if row is None:
        return None
    return CreatorRecord.model_validate_json(row["payload_json"])


def save_features(
    conn: sqlite3.Connection,
    entity_id: str,
    kind: str,
    features_json: str,
    analyzed_at: datetime,
) -> None:
    """Store (or replace) the analyzed features of an entity."""
    conn.execute(
        """
        INSERT INTO features (entity_id, kind, features_json, analyzed_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(entity_id, kind) DO UPDATE SET
            features_json = excluded.features_json,
            analyzed_at = excluded.analyzed_at
        """,
        (entity_id, kind, features_json, analyzed_at.isoformat()),
    )
    conn.commit()


def load_features(
    conn: sqlite3.Connection,
    entity_id: str,
    kind: str,
    ttl_days: int | None = None,
) -> str | None:
    """Return stored features JSON, or None if missing or older than ttl_days."""
    if ttl_days is None:
        row = conn.execute(
            "SELECT features_json FROM features WHERE entity_id = ? AND kind = ?",
            (entity_id, kind),
        ).fetchone()
    else:
        cutoff = (datetime.now() - timedelta(days=ttl_days)).isoformat()
        row = conn.execute(
            """
            SELECT features_json FROM features
            WHERE entity_id = ? AND kind = ? AND analyzed_at >= ?
            """,
            (entity_id, kind, cutoff),
        ).fetchone()
    if row is None:
        return None
    return str(row["features_json"])


def list_features(conn: sqlite3.Connection, kind: str) -> list[tuple[str, str]]:
    """Return (entity_id, features_json) pairs for every analyzed entity of a kind."""
    rows = conn.execute(
        "SELECT entity_id, features_json FROM features WHERE kind = ? ORDER BY entity_id",
        (kind,),
    ).fetchall()
    return [(row["entity_id"], row["features_json"]) for row in rows]


def put_status(conn: sqlite3.Connection, key: str, status: ProcessingStatus) -> None:
    """Write a processing status, replacing whatever was there (last writer wins)."""
    conn.execute(
        """
        INSERT INTO processing_status
            (key, status, progress, processed_count, total_count, error, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            status = excluded.status,
            progress = excluded.progress,
            processed_count = excluded.processed_count,
            total_count = excluded.total_count,
            error = excluded.error,
            updated_at = excluded.updated_at
        """,
        (
            key,
            status.status,
            status.progress,
            status.processed_count,
            status.total_count,
            status.error,
            status.updated_at.isoformat(),
        ),
    )
    conn.commit()


def get_status(conn: sqlite3.Connection, key: str) -> ProcessingStatus | None:
    """Return the stored processing status, or None."""
    row = conn.execute(
        "SELECT * FROM processing_status WHERE key = ?", (key,),
    ).fetchone()
    if row is None:
        return None
    return ProcessingStatus(
        status=row["status"],
        progress=row["progress"],
        processed_count=row["processed_count"],
        total_count=row["total_count"],
        error=row["error"],
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )
