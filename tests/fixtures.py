"""Synthetic upstream snapshots for catalog and updater tests."""
from __future__ import annotations

import bz2
import sqlite3
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

__all__ = [
    "DAY",
    "FILM_COLUMNS",
    "FIXED_NOW",
    "build_snapshot",
    "compressed_snapshot",
    "film_row",
]

# 2025-10-09T09:46:40Z
FIXED_NOW = 1_760_003_200
DAY = 24 * 60 * 60

FILM_COLUMNS: Sequence[str] = (
    "id INTEGER PRIMARY KEY AUTOINCREMENT",
    "channelid INTEGER",
    "thema TEXT",
    "titel TEXT",
    "beschreibung TEXT",
    "timestamp",
    "dauer TEXT",
    "url TEXT",
    "url_website TEXT",
    "url_video_hd TEXT",
    "url_subtitle TEXT",
)


def film_row(
    title: Optional[str],
    *,
    channel: object = 1,
    topic: Optional[str] = None,
    ts: object = FIXED_NOW - DAY,
    url: Optional[str] = None,
    website: Optional[str] = "auto",
    **extra: object,
) -> Dict[str, object]:
    slug = (title or "untitled").lower().replace(" ", "-")
    row: Dict[str, object] = {
        "channelid": channel,
        "thema": topic,
        "titel": title,
        "beschreibung": f"About {title}" if title else None,
        "timestamp": ts,
        "dauer": "00:45:00",
        "url": url if url is not None else f"https://media.example/{slug}.mp4",
        "url_website": f"https://www.example/{slug}" if website == "auto" else website,
    }
    row.update(extra)
    return row


def build_snapshot(
    path: Path,
    rows: Iterable[Mapping[str, object]],
    *,
    table: str = "film",
    columns: Sequence[str] = FILM_COLUMNS,
    extra_tables: Optional[Mapping[str, int]] = None,
) -> Path:
    """Create a SQLite snapshot at *path* holding *rows* in *table*.

    ``extra_tables`` adds small side tables with the given row counts so
    primary-table detection has something to choose from.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        path.unlink()
    conn = sqlite3.connect(path)
    try:
        conn.execute(f'CREATE TABLE "{table}" ({", ".join(columns)})')
        for row in rows:
            keys: List[str] = list(row.keys())
            placeholders = ", ".join("?" for _ in keys)
            conn.execute(
                f'INSERT INTO "{table}" ({", ".join(keys)}) VALUES ({placeholders})',
                [row[key] for key in keys],
            )
        for name, count in (extra_tables or {}).items():
            conn.execute(f'CREATE TABLE "{name}" (id INTEGER PRIMARY KEY, label TEXT)')
            conn.executemany(
                f'INSERT INTO "{name}" (label) VALUES (?)',
                [(f"{name}-{index}",) for index in range(count)],
            )
        conn.commit()
    finally:
        conn.close()
    return path


def compressed_snapshot(tmp_path: Path, rows: Iterable[Mapping[str, object]], **kwargs: object) -> bytes:
    """Return the bz2-compressed bytes of a snapshot built from *rows*."""

    plain = build_snapshot(tmp_path / "upstream" / "snapshot.db", rows, **kwargs)  # type: ignore[arg-type]
    return bz2.compress(plain.read_bytes())
