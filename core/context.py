"""Process-wide context handed explicitly to the sync components."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .paths import (
    ensure_working_dir_structure,
    get_catalog_db_path,
    get_logs_dir,
    get_snapshot_path,
    get_staging_dir,
    get_state_path,
    resolve_working_dir,
)
from .settings import ImporterSettings, SourceSettings, load_settings

__all__ = ["AppContext", "build_context"]


@dataclass(slots=True)
class AppContext:
    """Settings and resolved locations for one process.

    Built once at start-up; nothing in the packages reads global state.
    """

    working_dir: Path
    settings: Dict[str, Any] = field(default_factory=dict)
    source: SourceSettings = field(default_factory=SourceSettings)
    importer: ImporterSettings = field(default_factory=ImporterSettings)

    @property
    def snapshot_path(self) -> Path:
        return get_snapshot_path(self.working_dir, self.source.snapshot_name)

    @property
    def staging_dir(self) -> Path:
        return get_staging_dir(self.working_dir)

    @property
    def catalog_db_path(self) -> Path:
        return get_catalog_db_path(self.working_dir)

    @property
    def state_path(self) -> Path:
        return get_state_path(self.working_dir)

    @property
    def logs_dir(self) -> Path:
        return get_logs_dir(self.working_dir)


def build_context(
    working_dir: Optional[Path] = None,
    *,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
) -> AppContext:
    """Load settings for *working_dir* and return a ready context.

    ``overrides`` is merged section by section over the loaded settings
    (``{"source": {"url": ...}}``) without being persisted.
    """

    base = Path(working_dir) if working_dir is not None else resolve_working_dir()
    ensure_working_dir_structure(base)
    settings = load_settings(base)
    for section, values in (overrides or {}).items():
        current = settings.get(section)
        if isinstance(current, dict) and isinstance(values, dict):
            current.update(values)
        else:
            settings[section] = values
    return AppContext(
        working_dir=base,
        settings=settings,
        source=SourceSettings.from_mapping(settings.get("source")),
        importer=ImporterSettings.from_mapping(settings.get("importer")),
    )
