"""SQLite-backed content store -- upsert-by-key document storage for scraped records.

Single WAL-mode database holding one row per ContentRecord, keyed by
``unique_key``. Thread-safe via per-thread connections, so async callers
can hand blocking calls to ``asyncio.to_thread``.

Merge contract for upserts: the row identified by ``unique_key`` is created
or overwritten field by field (last write wins). The key never changes, and
``canonical_id`` is kept when the incoming record has none, so a later
scrape does not erase a match made by reconciliation.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from .errors import StoreUnavailable
from .models import AudioFormat, ContentRecord

log = logger.bind(stage="store")

_SCHEMA = """\
PRAGMA journal_mode=WAL;
PRAGMA busy_timeout=5000;

CREATE TABLE IF NOT EXISTS content (
    unique_key    TEXT PRIMARY KEY,
    origin_id     TEXT NOT NULL,
    title         TEXT NOT NULL,
    author        TEXT NOT NULL,
    narrator      TEXT,
    audio_format  TEXT NOT NULL DEFAULT 'unknown',
    bitrate_kbps  INTEGER,
    size_bytes    INTEGER NOT NULL DEFAULT 0,
    source_id     TEXT NOT NULL,
    locator       TEXT NOT NULL,
    canonical_id  TEXT,
    scraped_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_content_source ON content(source_id);
CREATE INDEX IF NOT EXISTS idx_content_scraped ON content(scraped_at);
CREATE INDEX IF NOT EXISTS idx_content_canonical ON content(canonical_id);
CREATE INDEX IF NOT EXISTS idx_content_origin ON content(source_id, origin_id);
"""

_COLUMNS = (
    "unique_key",
    "origin_id",
    "title",
    "author",
    "narrator",
    "audio_format",
    "bitrate_kbps",
    "size_bytes",
    "source_id",
    "locator",
    "canonical_id",
    "scraped_at",
)

# Columns usable in find()/count() filters and ordering
_FILTER_COLUMNS = frozenset(_COLUMNS)


def _build_upsert_sql() -> str:
    assignments = []
    for column in _COLUMNS:
        if column == "unique_key":
            continue
        if column == "canonical_id":
            assignments.append(
                "canonical_id = COALESCE(excluded.canonical_id, content.canonical_id)"
            )
        else:
            assignments.append(f"{column} = excluded.{column}")
    placeholders = ", ".join("?" for _ in _COLUMNS)
    return (
        f"INSERT INTO content ({', '.join(_COLUMNS)}) VALUES ({placeholders}) "
        f"ON CONFLICT(unique_key) DO UPDATE SET {', '.join(assignments)}"
    )


_UPSERT_SQL = _build_upsert_sql()


def _to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _from_iso(value: str) -> datetime:
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%fZ").replace(
        tzinfo=timezone.utc
    )


def _record_to_row(record: ContentRecord) -> tuple:
    return (
        record.unique_key,
        record.origin_id,
        record.title,
        record.author,
        record.narrator,
        str(record.audio_format),
        record.bitrate_kbps,
        record.size_bytes,
        record.source_id,
        record.locator,
        record.canonical_id,
        _to_iso(record.scraped_at),
    )


def _row_to_record(row: sqlite3.Row) -> ContentRecord:
    return ContentRecord(
        unique_key=row["unique_key"],
        origin_id=row["origin_id"],
        title=row["title"],
        author=row["author"],
        narrator=row["narrator"],
        audio_format=AudioFormat(row["audio_format"]),
        bitrate_kbps=row["bitrate_kbps"],
        size_bytes=row["size_bytes"],
        source_id=row["source_id"],
        locator=row["locator"],
        canonical_id=row["canonical_id"],
        scraped_at=_from_iso(row["scraped_at"]),
    )


def _where(filters: dict[str, Any] | None) -> tuple[str, list[Any]]:
    """Build an equality WHERE clause. A None value matches NULL."""
    if not filters:
        return "", []
    clauses = []
    params: list[Any] = []
    for column, value in filters.items():
        if column not in _FILTER_COLUMNS:
            raise ValueError(f"Unknown filter column: {column}")
        if value is None:
            clauses.append(f"{column} IS NULL")
        else:
            clauses.append(f"{column} = ?")
            params.append(str(value) if isinstance(value, AudioFormat) else value)
    return " WHERE " + " AND ".join(clauses), params


class ContentStore:
    """SQLite-backed document store for ContentRecords.

    Thread-safe: each thread gets its own connection via threading.local().
    Every connection is also tracked so close() can release those opened by
    worker threads. Every sqlite3 failure surfaces as StoreUnavailable.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._local = threading.local()
        self._conns: set[sqlite3.Connection] = set()
        self._conns_lock = threading.Lock()
        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create a per-thread SQLite connection."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            with self._conns_lock:
                if conn in self._conns:
                    return conn
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # close() may run on another thread
            conn = sqlite3.connect(str(self.db_path), timeout=10.0, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.create_function("casefold", 1, _casefold, deterministic=True)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
        except (OSError, sqlite3.Error) as e:
            raise StoreUnavailable(f"Cannot open {self.db_path}: {e}") from e
        self._local.conn = conn
        with self._conns_lock:
            self._conns.add(conn)
        return conn

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        conn = self._get_conn()
        try:
            conn.executescript(_SCHEMA)
            conn.commit()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Schema init failed: {e}") from e

    def close(self) -> None:
        """Close every connection opened by any thread."""
        with self._conns_lock:
            conns, self._conns = self._conns, set()
        for conn in conns:
            conn.close()
        self._local.conn = None
        if conns:
            log.debug(f"Closed {len(conns)} connections")

    # -- Writes --

    def upsert_one(self, record: ContentRecord) -> None:
        self.upsert_many([record])

    def upsert_many(self, records: Iterable[ContentRecord]) -> int:
        """Upsert records by unique_key. Returns the number of rows written."""
        rows = [_record_to_row(r) for r in records]
        if not rows:
            return 0
        conn = self._get_conn()
        try:
            with conn:
                conn.executemany(_UPSERT_SQL, rows)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Upsert failed: {e}") from e
        log.debug(f"Upserted {len(rows)} records")
        return len(rows)

    def set_canonical_id(self, unique_key: str, canonical_id: str) -> None:
        conn = self._get_conn()
        try:
            with conn:
                conn.execute(
                    "UPDATE content SET canonical_id = ? WHERE unique_key = ?",
                    (canonical_id, unique_key),
                )
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Update failed: {e}") from e

    # -- Reads --

    def get(self, unique_key: str) -> ContentRecord | None:
        found = self.find({"unique_key": unique_key}, limit=1)
        return found[0] if found else None

    def find(
        self,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[ContentRecord]:
        """Equality-filtered query. Without order_by, rows come in store order."""
        where, params = _where(filters)
        sql = "SELECT * FROM content" + where
        if order_by is not None:
            if order_by not in _FILTER_COLUMNS:
                raise ValueError(f"Unknown sort column: {order_by}")
            sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}, rowid"
        else:
            sql += " ORDER BY rowid"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return self._query(sql, params)

    def search(self, text: str, limit: int | None = None) -> list[ContentRecord]:
        """Case-insensitive substring match on title, author, or narrator.

        Both sides go through str.casefold; SQLite's lower() folds ASCII only.
        """
        needle = f"%{_escape_like(text.casefold())}%"
        sql = (
            "SELECT * FROM content WHERE "
            "casefold(title) LIKE ? ESCAPE '\\' OR "
            "casefold(author) LIKE ? ESCAPE '\\' OR "
            "casefold(coalesce(narrator, '')) LIKE ? ESCAPE '\\' "
            "ORDER BY rowid"
        )
        params: list[Any] = [needle, needle, needle]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return self._query(sql, params)

    def count(self, filters: dict[str, Any] | None = None) -> int:
        where, params = _where(filters)
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT COUNT(*) FROM content" + where, params).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Count failed: {e}") from e
        return int(row[0])

    def _query(self, sql: str, params: list[Any]) -> list[ContentRecord]:
        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Query failed: {e}") from e
        return [_row_to_record(r) for r in rows]


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None
