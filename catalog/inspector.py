"""Schema discovery for upstream snapshot databases."""
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from core.db import connect, quote_identifier

from .errors import SchemaError
from .types import ColumnInfo, SnapshotSchema, TableInfo

LOGGER = logging.getLogger("mediacatalog.catalog.inspector")

SAMPLE_ROWS = 3


def list_user_tables(conn: sqlite3.Connection) -> List[tuple[str, Optional[str]]]:
    """Return ``(name, create_sql)`` for every table except SQLite internals."""

    rows = conn.execute(
        """
        SELECT name, sql FROM sqlite_master
        WHERE type='table' AND name NOT LIKE 'sqlite_%'
        ORDER BY name
        """
    ).fetchall()
    return [(str(row[0]), row[1]) for row in rows]


def count_rows(conn: sqlite3.Connection, table: str) -> int:
    row = conn.execute(f"SELECT COUNT(*) FROM {quote_identifier(table)}").fetchone()
    return int(row[0]) if row else 0


def table_columns(conn: sqlite3.Connection, table: str) -> List[ColumnInfo]:
    columns: List[ColumnInfo] = []
    for cid, name, col_type, notnull, _default, pk in conn.execute(
        f"PRAGMA table_info({quote_identifier(table)})"
    ).fetchall():
        columns.append(
            ColumnInfo(
                name=str(name),
                type=str(col_type or ""),
                not_null=bool(notnull),
                primary_key=bool(pk),
            )
        )
    return columns


def guess_primary_table(row_counts: Mapping[str, int]) -> Optional[str]:
    """Pick the table with the most rows; ``None`` when every table is empty.

    Ties keep the first table in iteration order.
    """

    best: Optional[str] = None
    best_rows = 0
    for name, count in row_counts.items():
        if count > best_rows:
            best_rows = count
            best = name
    return best


def inspect_snapshot(path: str | Path, *, sample_rows: int = SAMPLE_ROWS) -> SnapshotSchema:
    """Describe every user table of the snapshot at *path* (opened read-only)."""

    conn = connect(path, read_only=True)
    try:
        schema = SnapshotSchema()
        for name, create_sql in list_user_tables(conn):
            schema.tables[name] = TableInfo(
                name=name,
                columns=table_columns(conn, name),
                row_count=count_rows(conn, name),
                create_sql=create_sql,
            )
        schema.primary_table = guess_primary_table(schema.row_counts)
        if schema.primary_table and sample_rows > 0:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(
                f"SELECT * FROM {quote_identifier(schema.primary_table)} LIMIT ?",
                (int(sample_rows),),
            )
            schema.sample = [dict(row) for row in cursor.fetchall()]
    finally:
        conn.close()

    primary = schema.primary()
    LOGGER.info(
        "Snapshot inspected: %s tables, primary=%s (%s rows)",
        len(schema.tables),
        schema.primary_table,
        primary.row_count if primary else 0,
    )
    return schema


def validate_required_columns(schema: SnapshotSchema, required: Iterable[str]) -> TableInfo:
    """Ensure the primary table carries every *required* column name.

    Names are compared case-insensitively; :class:`SchemaError` lists
    exactly the absent ones.
    """

    primary = schema.primary()
    required_list = list(required)
    if primary is None:
        raise SchemaError(required_list)
    available = {name.casefold() for name in primary.column_names()}
    missing = [name for name in required_list if name.casefold() not in available]
    if missing:
        raise SchemaError(missing, table=primary.name)
    return primary


def describe(schema: SnapshotSchema) -> Dict[str, object]:
    return {
        "primary_table": schema.primary_table,
        "tables": {
            name: {"rows": table.row_count, "columns": table.column_names()}
            for name, table in schema.tables.items()
        },
    }


__all__ = [
    "count_rows",
    "describe",
    "guess_primary_table",
    "inspect_snapshot",
    "list_user_tables",
    "table_columns",
    "validate_required_columns",
]
