"""Value types shared by the catalog import pipeline."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

DEFAULT_KIND = "movie"
UNCATEGORIZED = "uncategorized"

# Logical fields in the order they are projected from the snapshot.
LOGICAL_FIELDS: Tuple[str, ...] = (
    "title",
    "channel",
    "topic",
    "description",
    "date_ts",
    "duration",
    "url_video",
    "url_website",
    "is_hd",
    "has_subtitles",
)


@dataclass(slots=True)
class CatalogItem:
    id: str
    title: str
    channel: str
    kind: str = DEFAULT_KIND
    topic: Optional[str] = None
    description: Optional[str] = None
    date_ts: Optional[int] = None
    duration_sec: Optional[int] = None
    url_video: Optional[str] = None
    url_website: Optional[str] = None
    is_hd: bool = False
    has_subtitles: bool = False
    category: Optional[str] = None
    poster: Optional[str] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ColumnInfo:
    name: str
    type: str = ""
    not_null: bool = False
    primary_key: bool = False


@dataclass(slots=True)
class TableInfo:
    name: str
    columns: List[ColumnInfo] = field(default_factory=list)
    row_count: int = 0
    create_sql: Optional[str] = None

    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]


@dataclass(slots=True)
class SnapshotSchema:
    tables: Dict[str, TableInfo] = field(default_factory=dict)
    primary_table: Optional[str] = None
    sample: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def row_counts(self) -> Dict[str, int]:
        return {name: table.row_count for name, table in self.tables.items()}

    def primary(self) -> Optional[TableInfo]:
        if self.primary_table is None:
            return None
        return self.tables.get(self.primary_table)


@dataclass(slots=True)
class ColumnMapping:
    """Logical field name to source column name; ``None`` when unresolved."""

    fields: Dict[str, Optional[str]] = field(default_factory=dict)

    def get(self, logical: str) -> Optional[str]:
        return self.fields.get(logical)

    def resolved(self) -> Dict[str, str]:
        return {logical: column for logical, column in self.fields.items() if column}

    def missing(self, required: Iterable[str]) -> List[str]:
        return [name for name in required if not self.fields.get(name)]


@dataclass(slots=True)
class UpsertResult:
    inserted: int = 0
    updated: int = 0
    batches: int = 0


@dataclass(slots=True)
class CatalogStats:
    total_count: int = 0
    max_date_ts: Optional[int] = None
    by_category: Dict[str, int] = field(default_factory=dict)
    by_channel: List[Tuple[str, int]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_count": self.total_count,
            "max_date_ts": self.max_date_ts,
            "by_category": dict(self.by_category),
            "by_channel": [{"channel": name, "count": count} for name, count in self.by_channel],
        }


__all__ = [
    "CatalogItem",
    "CatalogStats",
    "ColumnInfo",
    "ColumnMapping",
    "DEFAULT_KIND",
    "LOGICAL_FIELDS",
    "SnapshotSchema",
    "TableInfo",
    "UNCATEGORIZED",
    "UpsertResult",
]
