"""Read-only status report built from cycle state and catalog stats."""
from __future__ import annotations

import logging
import sqlite3
import time
from typing import Dict, Optional

from catalog.store import CatalogStore
from core.context import AppContext
from core.db import connect

from .state import StateStore

LOGGER = logging.getLogger("mediacatalog.updater.status")


def collect_status(context: AppContext, *, now: Optional[float] = None) -> Dict[str, object]:
    current = time.time() if now is None else now
    state = StateStore(context.state_path).load()
    payload: Dict[str, object] = {
        "working_dir": str(context.working_dir),
        "source_url": context.source.url,
        "state": state.as_dict(),
        "needs_refresh": state.needs_refresh(context.source.refresh_max_age_s, now=current),
        "snapshot": {
            "path": str(context.snapshot_path),
            "exists": context.snapshot_path.exists(),
            "bytes": context.snapshot_path.stat().st_size if context.snapshot_path.exists() else 0,
        },
        "catalog": None,
    }

    db_path = context.catalog_db_path
    if not db_path.exists():
        return payload
    try:
        conn = connect(db_path, read_only=True)
    except sqlite3.Error as exc:
        LOGGER.warning("Catalog store unavailable: %s", exc)
        payload["catalog_error"] = str(exc)
        return payload
    try:
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        }
        if "items" in tables:
            store = CatalogStore(conn, create_schema=False)
            payload["catalog"] = store.stats(top_channels=context.importer.stats_top_channels).as_dict()
    except sqlite3.Error as exc:
        LOGGER.warning("Catalog store unreadable: %s", exc)
        payload["catalog_error"] = str(exc)
    finally:
        conn.close()
    return payload


__all__ = ["collect_status"]
