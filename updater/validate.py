"""Gate staged snapshots before they replace the production copy."""
from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from catalog.inspector import count_rows, guess_primary_table, list_user_tables, table_columns
from catalog.timestamps import parse_timestamp
from core.db import connect, integrity_check, quote_identifier

LOGGER = logging.getLogger("mediacatalog.updater.validate")

FRESHNESS_COLUMNS: tuple[str, ...] = ("timestamp", "datum", "date", "time", "aired")
SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    row_count: int = 0
    max_timestamp: Optional[int] = None
    primary_table: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, object]:
        return {
            "valid": self.valid,
            "row_count": self.row_count,
            "max_timestamp": self.max_timestamp,
            "primary_table": self.primary_table,
            "errors": list(self.errors),
        }


def _probe_max_timestamp(
    conn: sqlite3.Connection,
    table: str,
    candidates: Sequence[str],
) -> Optional[int]:
    available = {info.name.casefold(): info.name for info in table_columns(conn, table)}
    best: Optional[int] = None
    for candidate in candidates:
        column = available.get(candidate.casefold())
        if column is None:
            continue
        row = conn.execute(
            f"SELECT MAX({quote_identifier(column)}) FROM {quote_identifier(table)}"
        ).fetchone()
        value = parse_timestamp(row[0]) if row else None
        if value is not None and (best is None or value > best):
            best = value
    return best


def _check(
    conn: sqlite3.Connection,
    result: ValidationResult,
    *,
    check_freshness: bool,
    max_age_days: int,
    now: Optional[float],
    freshness_columns: Sequence[str],
) -> None:
    report = integrity_check(conn)
    if report != ["ok"]:
        result.errors.append("integrity check failed: " + "; ".join(report[:5]))
        return

    tables = [name for name, _sql in list_user_tables(conn)]
    if not tables:
        result.errors.append("snapshot contains no tables")
        return

    row_counts = {name: count_rows(conn, name) for name in tables}
    primary = guess_primary_table(row_counts)
    if primary is None:
        result.errors.append("primary table is empty")
        return
    result.primary_table = primary
    result.row_count = row_counts[primary]

    if not check_freshness:
        return
    result.max_timestamp = _probe_max_timestamp(conn, primary, freshness_columns)
    current = time.time() if now is None else now
    cutoff = current - int(max_age_days) * SECONDS_PER_DAY
    if result.max_timestamp is None:
        result.errors.append(
            f"no timestamp column found in {primary} (tried {', '.join(freshness_columns)})"
        )
    elif result.max_timestamp < cutoff:
        result.errors.append(f"newest entry {result.max_timestamp} is older than {max_age_days} days")


def validate_snapshot(
    path: str | Path,
    *,
    check_freshness: bool = False,
    max_age_days: int = 90,
    now: Optional[float] = None,
    freshness_columns: Sequence[str] = FRESHNESS_COLUMNS,
) -> ValidationResult:
    """Check the snapshot at *path* without modifying it.

    Expected failures come back as ``valid=False`` with reasons in
    ``errors``; SQLite and filesystem faults are reported the same way.
    """

    snapshot = Path(path)
    result = ValidationResult(valid=False)
    if not snapshot.is_file():
        result.errors.append(f"snapshot not found: {snapshot}")
    else:
        try:
            conn = connect(snapshot, read_only=True)
            try:
                _check(
                    conn,
                    result,
                    check_freshness=check_freshness,
                    max_age_days=max_age_days,
                    now=now,
                    freshness_columns=freshness_columns,
                )
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as exc:
            result.errors.append(f"cannot read snapshot: {exc}")

    result.valid = not result.errors
    if result.valid:
        LOGGER.info("Snapshot %s valid: %s rows in %s", snapshot.name, result.row_count, result.primary_table)
    else:
        LOGGER.warning("Snapshot %s rejected: %s", snapshot.name, result.errors)
    return result


__all__ = ["FRESHNESS_COLUMNS", "ValidationResult", "validate_snapshot"]
