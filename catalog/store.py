"""Indexed local catalog database with full-text search."""
from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from core.db import connect, pragma_optimize, transaction

from .types import CatalogItem, CatalogStats, UpsertResult

LOGGER = logging.getLogger("mediacatalog.catalog.store")

DEFAULT_STORE_BATCH_SIZE = 1000
SECONDS_PER_DAY = 24 * 60 * 60

# item_pk is an explicit rowid alias so VACUUM cannot renumber the rows the
# FTS table points at.
_ITEMS_SCHEMA = """
CREATE TABLE IF NOT EXISTS items (
    item_pk INTEGER PRIMARY KEY,
    id TEXT NOT NULL UNIQUE,
    kind TEXT NOT NULL DEFAULT 'movie',
    title TEXT NOT NULL,
    channel TEXT,
    topic TEXT,
    description TEXT,
    date_ts INTEGER,
    duration_sec INTEGER,
    url_video TEXT,
    url_website TEXT,
    is_hd INTEGER NOT NULL DEFAULT 0,
    has_subtitles INTEGER NOT NULL DEFAULT 0,
    category TEXT,
    poster TEXT,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_items_date ON items(date_ts DESC);
CREATE INDEX IF NOT EXISTS idx_items_channel ON items(channel);
CREATE INDEX IF NOT EXISTS idx_items_category ON items(category);
CREATE INDEX IF NOT EXISTS idx_items_channel_date ON items(channel, date_ts DESC);
"""

_FTS_SCHEMA = """
CREATE VIRTUAL TABLE IF NOT EXISTS items_fts USING fts5(
    title,
    channel,
    topic,
    description,
    tokenize='unicode61 remove_diacritics 2'
);
"""

_ITEM_COLUMNS = (
    "id, kind, title, channel, topic, description, date_ts, duration_sec, "
    "url_video, url_website, is_hd, has_subtitles, category, poster, created_at, updated_at"
)

_INSERT_SQL = """
INSERT INTO items(
    id, kind, title, channel, topic, description, date_ts, duration_sec,
    url_video, url_website, is_hd, has_subtitles, category, poster, created_at, updated_at
) VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
"""

_OVERWRITE_SQL = """
UPDATE items SET
    kind=?, title=?, channel=?, topic=?, description=?, date_ts=?, duration_sec=?,
    url_video=?, url_website=?, is_hd=?, has_subtitles=?, category=?, poster=?, updated_at=?
WHERE item_pk=?
"""


def ensure_schema(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.executescript(_ITEMS_SCHEMA)
    cur.executescript(_FTS_SCHEMA)
    conn.commit()


def _row_to_item(row: Sequence[object]) -> CatalogItem:
    return CatalogItem(
        id=str(row[0]),
        kind=str(row[1]),
        title=str(row[2]),
        channel=row[3],  # type: ignore[arg-type]
        topic=row[4],  # type: ignore[arg-type]
        description=row[5],  # type: ignore[arg-type]
        date_ts=row[6],  # type: ignore[arg-type]
        duration_sec=row[7],  # type: ignore[arg-type]
        url_video=row[8],  # type: ignore[arg-type]
        url_website=row[9],  # type: ignore[arg-type]
        is_hd=bool(row[10]),
        has_subtitles=bool(row[11]),
        category=row[12],  # type: ignore[arg-type]
        poster=row[13],  # type: ignore[arg-type]
        created_at=row[14],  # type: ignore[arg-type]
        updated_at=row[15],  # type: ignore[arg-type]
    )


def _fts_query(term: str) -> str:
    tokens = [token.replace('"', '""') for token in str(term).split() if token.strip()]
    return " ".join(f'"{token}"' for token in tokens)


class CatalogStore:
    """Owns the ``items`` table and its ``items_fts`` full-text index.

    Every write that touches ``items`` updates ``items_fts`` inside the same
    transaction. Batches commit independently, so a reader running during an
    import can see rows from both before and after the current cycle.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        overwrite_on_conflict: bool = False,
        batch_size: int = DEFAULT_STORE_BATCH_SIZE,
        clock: Optional[Callable[[], float]] = None,
        owns_connection: bool = False,
        create_schema: bool = True,
    ) -> None:
        self._conn = conn
        self._overwrite = bool(overwrite_on_conflict)
        self._batch_size = max(1, int(batch_size))
        self._clock = clock or time.time
        self._owns_connection = owns_connection
        if create_schema:
            ensure_schema(self._conn)

    @classmethod
    def open(cls, db_path: str | Path, **kwargs: object) -> "CatalogStore":
        conn = connect(db_path, read_only=False)
        try:
            return cls(conn, owns_connection=True, **kwargs)  # type: ignore[arg-type]
        except Exception:
            conn.close()
            raise

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        if self._owns_connection:
            self._conn.close()

    def __enter__(self) -> "CatalogStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    def _now(self) -> int:
        return int(self._clock())

    def _write_item(self, cur: sqlite3.Cursor, item: CatalogItem, now: int) -> bool:
        """Write one item; return True when it was newly inserted."""

        existing = cur.execute("SELECT item_pk FROM items WHERE id = ?", (item.id,)).fetchone()
        if existing is None:
            cur.execute(
                _INSERT_SQL,
                (
                    item.id,
                    item.kind,
                    item.title,
                    item.channel,
                    item.topic,
                    item.description,
                    item.date_ts,
                    item.duration_sec,
                    item.url_video,
                    item.url_website,
                    int(bool(item.is_hd)),
                    int(bool(item.has_subtitles)),
                    item.category,
                    item.poster,
                    now,
                    now,
                ),
            )
            cur.execute(
                "INSERT INTO items_fts(rowid, title, channel, topic, description) VALUES(?,?,?,?,?)",
                (cur.lastrowid, item.title, item.channel or "", item.topic or "", item.description or ""),
            )
            return True

        item_pk = int(existing[0])
        if not self._overwrite:
            cur.execute("UPDATE items SET updated_at = ? WHERE item_pk = ?", (now, item_pk))
            return False
        cur.execute(
            _OVERWRITE_SQL,
            (
                item.kind,
                item.title,
                item.channel,
                item.topic,
                item.description,
                item.date_ts,
                item.duration_sec,
                item.url_video,
                item.url_website,
                int(bool(item.is_hd)),
                int(bool(item.has_subtitles)),
                item.category,
                item.poster,
                now,
                item_pk,
            ),
        )
        cur.execute("DELETE FROM items_fts WHERE rowid = ?", (item_pk,))
        cur.execute(
            "INSERT INTO items_fts(rowid, title, channel, topic, description) VALUES(?,?,?,?,?)",
            (item_pk, item.title, item.channel or "", item.topic or "", item.description or ""),
        )
        return False

    def upsert_one(self, item: CatalogItem) -> bool:
        with transaction(self._conn):
            return self._write_item(self._conn.cursor(), item, self._now())

    def upsert_bulk(self, items: Iterable[CatalogItem], batch_size: Optional[int] = None) -> UpsertResult:
        """Upsert *items* in all-or-nothing batches of ``batch_size``."""

        size = max(1, int(batch_size or self._batch_size))
        pending = list(items)
        result = UpsertResult()
        for start in range(0, len(pending), size):
            batch = pending[start : start + size]
            now = self._now()
            inserted = 0
            with transaction(self._conn):
                cur = self._conn.cursor()
                for item in batch:
                    if self._write_item(cur, item, now):
                        inserted += 1
            result.inserted += inserted
            result.updated += len(batch) - inserted
            result.batches += 1
        LOGGER.debug(
            "Upserted %s items (%s new, %s existing) in %s batches",
            len(pending),
            result.inserted,
            result.updated,
            result.batches,
        )
        return result

    def prune_older_than(self, max_age_days: int, *, now: Optional[float] = None) -> int:
        """Delete items dated before the cutoff; undated items are kept."""

        current = self._clock() if now is None else now
        cutoff = int(current) - int(max_age_days) * SECONDS_PER_DAY
        with transaction(self._conn):
            cur = self._conn.cursor()
            cur.execute(
                "DELETE FROM items_fts WHERE rowid IN (SELECT item_pk FROM items WHERE date_ts < ?)",
                (cutoff,),
            )
            cur.execute("DELETE FROM items WHERE date_ts < ?", (cutoff,))
            deleted = cur.rowcount
        LOGGER.info("Pruned %s items older than %s days", deleted, max_age_days)
        return int(deleted)

    # ------------------------------------------------------------------
    def count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) FROM items").fetchone()
        return int(row[0]) if row else 0

    def get_item(self, item_id: str) -> Optional[CatalogItem]:
        row = self._conn.execute(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE id = ?",
            (item_id,),
        ).fetchone()
        return _row_to_item(row) if row else None

    def search(self, term: str, *, limit: int = 20) -> List[CatalogItem]:
        query = _fts_query(term)
        if not query:
            return []
        columns = ", ".join(f"items.{name.strip()}" for name in _ITEM_COLUMNS.split(","))
        rows = self._conn.execute(
            f"""
            SELECT {columns}
            FROM items_fts
            JOIN items ON items.item_pk = items_fts.rowid
            WHERE items_fts MATCH ?
            ORDER BY bm25(items_fts), items.date_ts DESC
            LIMIT ?
            """,
            (query, max(1, int(limit))),
        ).fetchall()
        return [_row_to_item(row) for row in rows]

    def stats(self, *, top_channels: int = 10) -> CatalogStats:
        total, max_date = self._conn.execute("SELECT COUNT(*), MAX(date_ts) FROM items").fetchone()
        by_category = {
            str(category): int(count)
            for category, count in self._conn.execute(
                """
                SELECT category, COUNT(*) FROM items
                WHERE category IS NOT NULL
                GROUP BY category
                ORDER BY COUNT(*) DESC, category
                """
            ).fetchall()
        }
        by_channel = [
            (str(channel), int(count))
            for channel, count in self._conn.execute(
                """
                SELECT channel, COUNT(*) FROM items
                GROUP BY channel
                ORDER BY COUNT(*) DESC, channel
                LIMIT ?
                """,
                (max(1, int(top_channels)),),
            ).fetchall()
        ]
        return CatalogStats(
            total_count=int(total or 0),
            max_date_ts=int(max_date) if max_date is not None else None,
            by_category=by_category,
            by_channel=by_channel,
        )

    def optimize(self) -> None:
        pragma_optimize(self._conn)


__all__ = ["CatalogStore", "DEFAULT_STORE_BATCH_SIZE", "ensure_schema"]
