from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .settings_schema import SETTINGS_VALIDATOR

from .paths import DEFAULT_SNAPSHOT_NAME, get_default_settings_paths

__all__ = [
    "DEFAULT_SETTINGS",
    "SETTINGS_VERSION",
    "ImporterSettings",
    "SourceSettings",
    "load_settings",
    "merge_defaults",
]

SETTINGS_VERSION = 1

DEFAULT_SOURCE_URL = "https://liste.mediathekview.de/filmliste-v2.db.bz2"


DEFAULT_SETTINGS: Dict[str, Any] = {
    "version": SETTINGS_VERSION,
    "source": {
        "url": DEFAULT_SOURCE_URL,
        "snapshot_name": DEFAULT_SNAPSHOT_NAME,
        "timeout_s": 120,
        "chunk_bytes": 1024 * 1024,
        "user_agent": "mediacatalog-sync/0.1",
        "check_freshness": False,
        "max_age_days": 90,
        "refresh_max_age_s": 6 * 60 * 60,
    },
    "importer": {
        "batch_size": 5000,
        "store_batch_size": 1000,
        "retention_days": 90,
        "categories_path": None,
        "overwrite_on_conflict": False,
        "required_fields": ["title"],
        "stats_top_channels": 10,
    },
    "logging": {
        "level": "INFO",
        "json_file": True,
    },
}


@dataclass(slots=True)
class SourceSettings:
    url: str = DEFAULT_SOURCE_URL
    snapshot_name: str = DEFAULT_SNAPSHOT_NAME
    timeout_s: float = 120.0
    chunk_bytes: int = 1024 * 1024
    user_agent: str = "mediacatalog-sync/0.1"
    check_freshness: bool = False
    max_age_days: int = 90
    refresh_max_age_s: int = 6 * 60 * 60

    @classmethod
    def from_mapping(cls, mapping: Dict[str, object] | None) -> "SourceSettings":
        data = dict(mapping or {})
        return cls(
            url=str(data.get("url") or DEFAULT_SOURCE_URL),
            snapshot_name=str(data.get("snapshot_name") or DEFAULT_SNAPSHOT_NAME),
            timeout_s=max(1.0, float(data.get("timeout_s", 120) or 120)),
            chunk_bytes=max(4096, int(data.get("chunk_bytes", 1024 * 1024) or 1024 * 1024)),
            user_agent=str(data.get("user_agent") or "mediacatalog-sync/0.1"),
            check_freshness=bool(data.get("check_freshness", False)),
            max_age_days=max(1, int(data.get("max_age_days", 90) or 90)),
            refresh_max_age_s=max(0, int(data.get("refresh_max_age_s", 21600) or 0)),
        )


@dataclass(slots=True)
class ImporterSettings:
    batch_size: int = 5000
    store_batch_size: int = 1000
    retention_days: int = 90
    categories_path: Optional[str] = None
    overwrite_on_conflict: bool = False
    required_fields: Tuple[str, ...] = ("title",)
    stats_top_channels: int = 10

    @classmethod
    def from_mapping(cls, mapping: Dict[str, object] | None) -> "ImporterSettings":
        data = dict(mapping or {})
        required = data.get("required_fields")
        if isinstance(required, (list, tuple)):
            required_fields = tuple(str(name).strip() for name in required if str(name).strip())
        else:
            required_fields = ("title",)
        categories_path = data.get("categories_path")
        return cls(
            batch_size=max(1, int(data.get("batch_size", 5000) or 5000)),
            store_batch_size=max(1, int(data.get("store_batch_size", 1000) or 1000)),
            retention_days=max(1, int(data.get("retention_days", 90) or 90)),
            categories_path=str(categories_path) if categories_path else None,
            overwrite_on_conflict=bool(data.get("overwrite_on_conflict", False)),
            required_fields=required_fields,
            stats_top_channels=max(1, int(data.get("stats_top_channels", 10) or 10)),
        )


def merge_defaults(data: Dict[str, Any]) -> Dict[str, Any]:
    def _merge(default: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key, value in default.items():
            if isinstance(value, dict):
                current = payload.get(key)
                if isinstance(current, dict):
                    result[key] = _merge(value, current)
                else:
                    result[key] = _merge(value, {})
            elif isinstance(value, list):
                current = payload.get(key)
                result[key] = list(current) if isinstance(current, list) else list(value)
            else:
                result[key] = payload.get(key, value)
        for key, value in payload.items():
            if key not in result:
                result[key] = value
        return result

    return _merge(DEFAULT_SETTINGS, data or {})


def _apply_migrations(settings: Dict[str, Any]) -> Dict[str, Any]:
    version = settings.get("version")
    try:
        version_int = int(version)
    except (TypeError, ValueError):
        version_int = 0
    if version_int < SETTINGS_VERSION:
        settings["version"] = SETTINGS_VERSION
    return settings


def _log_unknown_keys(settings: Dict[str, Any], working_dir: Path) -> None:
    unknown = list(SETTINGS_VALIDATOR.unknown_keys(settings))
    if not unknown:
        return
    logs_dir = working_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    payload = {
        "ts": time.time(),
        "unknown": unknown,
    }
    target = logs_dir / "settings_unknown.json"
    try:
        with open(target, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
    except OSError:
        return


def load_settings(working_dir: Path) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for candidate in get_default_settings_paths(working_dir):
        try:
            with open(candidate, "r", encoding="utf-8") as handle:
                loaded = json.load(handle)
        except FileNotFoundError:
            continue
        except json.JSONDecodeError:
            continue
        except OSError:
            continue
        if isinstance(loaded, dict):
            data = loaded
            break
    merged = merge_defaults(data)
    merged = _apply_migrations(merged)
    merged.setdefault("working_dir", str(working_dir))
    _log_unknown_keys(merged, working_dir)
    return merged
