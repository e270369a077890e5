from __future__ import annotations

import os
import re
from pathlib import Path

__all__ = [
    "DEFAULT_SNAPSHOT_NAME",
    "ensure_working_dir_structure",
    "get_catalog_db_path",
    "get_data_dir",
    "get_default_settings_paths",
    "get_logs_dir",
    "get_snapshot_path",
    "get_source_dir",
    "get_staging_dir",
    "get_state_path",
    "resolve_working_dir",
    "safe_label",
]

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_SNAPSHOT_NAME = "filmliste-v2.db"


def _expand_path(value: str) -> Path:
    expanded = os.path.expandvars(os.path.expanduser(value))
    return Path(expanded).resolve()


def _ensure_writable_dir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    test_file = path / f".write_test_{os.getpid()}"
    try:
        with open(test_file, "w", encoding="utf-8") as handle:
            handle.write("ok")
        test_file.unlink(missing_ok=True)
        return True
    except OSError:
        try:
            if test_file.exists():
                test_file.unlink()
        except OSError:  # pragma: no cover - best effort cleanup
            pass
        return False


def resolve_working_dir() -> Path:
    """Resolve the working directory, creating it if required.

    ``MEDIACATALOG_HOME`` wins when it points to a writable location,
    otherwise ``~/.mediacatalog`` is used.
    """

    env_home = os.environ.get("MEDIACATALOG_HOME")
    if env_home:
        candidate = _expand_path(env_home)
        if _ensure_writable_dir(candidate):
            return candidate

    fallback = Path.home() / ".mediacatalog"
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


def get_data_dir(working_dir: Path) -> Path:
    return working_dir / "data"


def get_source_dir(working_dir: Path) -> Path:
    return get_data_dir(working_dir) / "source"


def get_staging_dir(working_dir: Path) -> Path:
    # Staging must share a filesystem with the production snapshot so the
    # promotion is a single rename.
    return get_source_dir(working_dir) / "tmp"


_SAFE_LABEL_PATTERN = re.compile(r"[^A-Za-z0-9_.-]+")


def safe_label(label: str) -> str:
    """Return a filesystem-safe file name for a snapshot label."""

    cleaned = _SAFE_LABEL_PATTERN.sub("_", str(label).strip())
    return cleaned or "snapshot.db"


def get_snapshot_path(working_dir: Path, snapshot_name: str = DEFAULT_SNAPSHOT_NAME) -> Path:
    return get_source_dir(working_dir) / safe_label(snapshot_name)


def get_catalog_db_path(working_dir: Path) -> Path:
    return get_data_dir(working_dir) / "app" / "catalog.db"


def get_state_path(working_dir: Path) -> Path:
    return get_data_dir(working_dir) / "meta" / "state.json"


def get_logs_dir(working_dir: Path) -> Path:
    return working_dir / "logs"


def ensure_working_dir_structure(working_dir: Path) -> None:
    for directory in (
        working_dir,
        get_data_dir(working_dir),
        get_source_dir(working_dir),
        get_staging_dir(working_dir),
        get_catalog_db_path(working_dir).parent,
        get_state_path(working_dir).parent,
        get_logs_dir(working_dir),
    ):
        directory.mkdir(parents=True, exist_ok=True)


def get_default_settings_paths(working_dir: Path) -> list[Path]:
    """Return the search order for settings.json files."""

    return [working_dir / "settings.json", _PROJECT_ROOT / "settings.json"]
