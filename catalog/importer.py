"""Import an upstream snapshot into the catalog store."""
from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from core.db import connect, quote_identifier

from .channels import resolve_channel, resolve_logo
from .classifier import Classifier
from .errors import RowTransformError, SchemaError
from .identity import compute_item_id
from .inspector import describe, inspect_snapshot
from .store import CatalogStore
from .timestamps import parse_duration, parse_timestamp, plausible_timestamp
from .types import DEFAULT_KIND, LOGICAL_FIELDS, CatalogItem, CatalogStats, ColumnMapping, SnapshotSchema

LOGGER = logging.getLogger("mediacatalog.catalog.importer")

DEFAULT_BATCH_SIZE = 5000
DEFAULT_RETENTION_DAYS = 90
DEFAULT_REQUIRED_FIELDS: Tuple[str, ...] = ("title",)

# Candidate source column names per logical field, tried in order.
COLUMN_CANDIDATES: Dict[str, Tuple[str, ...]] = {
    "title": ("title", "titel", "thema"),
    "channel": ("channel", "sender", "channelid"),
    "topic": ("topic", "thema", "showid"),
    "description": ("description", "beschreibung"),
    "date_ts": ("aired", "timestamp", "datum", "date", "zeit", "time"),
    "duration": ("duration", "dauer"),
    "url_video": ("url_video", "url", "url_video_hd"),
    "url_website": ("url_website", "website"),
    "is_hd": ("url_video_hd", "hd"),
    "has_subtitles": ("url_subtitle", "url_sub", "untertitel"),
}


def detect_column_mapping(
    columns: Iterable[str],
    candidates: Mapping[str, Sequence[str]] = COLUMN_CANDIDATES,
) -> ColumnMapping:
    """Resolve each logical field to the first matching source column.

    Matching is exact but case-insensitive; the actual source spelling is
    kept so the projection addresses the real column.
    """

    by_folded: Dict[str, str] = {}
    for name in columns:
        by_folded.setdefault(str(name).casefold(), str(name))
    fields: Dict[str, Optional[str]] = {}
    for logical in LOGICAL_FIELDS:
        fields[logical] = None
        for candidate in candidates.get(logical, ()):
            hit = by_folded.get(candidate.casefold())
            if hit is not None:
                fields[logical] = hit
                break
    return ColumnMapping(fields=fields)


def build_projection(table: str, mapping: ColumnMapping) -> str:
    parts = [
        f"{quote_identifier(column)} AS {quote_identifier(logical)}"
        for logical, column in mapping.resolved().items()
    ]
    if not parts:
        raise SchemaError(list(LOGICAL_FIELDS), table=table)
    return f"SELECT {', '.join(parts)} FROM {quote_identifier(table)}"


def _clean_text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class RowTransformer:
    """Turn projected source rows into :class:`CatalogItem` values."""

    def __init__(self, classifier: Classifier, *, clock: Optional[Callable[[], float]] = None) -> None:
        self._classifier = classifier
        self._clock = clock or time.time

    def transform(self, row: Mapping[str, object]) -> Optional[CatalogItem]:
        """Return the item for *row*, or ``None`` when the row is rejected.

        Rows need a title and at least one locator. Unexpected value errors
        are raised as :class:`RowTransformError`.
        """

        try:
            return self._transform(row)
        except (TypeError, ValueError, OverflowError) as exc:
            raise RowTransformError(f"cannot transform row: {exc}") from exc

    def _transform(self, row: Mapping[str, object]) -> Optional[CatalogItem]:
        title = _clean_text(row.get("title"))
        url_video = _clean_text(row.get("url_video"))
        url_website = _clean_text(row.get("url_website"))
        if not title or (not url_video and not url_website):
            return None

        channel = resolve_channel(row.get("channel"))
        topic = _clean_text(row.get("topic"))
        description = _clean_text(row.get("description"))
        date_ts = plausible_timestamp(parse_timestamp(row.get("date_ts")), now=self._clock())

        category = self._classifier.classify(
            {
                "title": title,
                "channel": channel,
                "topic": topic,
                "description": description,
            }
        )

        return CatalogItem(
            id=compute_item_id(channel, url_website, url_video, title, date_ts),
            kind=DEFAULT_KIND,
            title=title,
            channel=channel,
            topic=topic,
            description=description,
            date_ts=date_ts,
            duration_sec=parse_duration(row.get("duration")),
            url_video=url_video,
            url_website=url_website,
            is_hd=bool(row.get("is_hd")),
            has_subtitles=bool(row.get("has_subtitles")),
            category=category,
            poster=resolve_logo(channel),
        )


@dataclass(slots=True)
class ImportPlan:
    schema: SnapshotSchema
    table: str
    mapping: ColumnMapping
    query: str


@dataclass(slots=True)
class ImportResult:
    rows_read: int = 0
    imported: int = 0
    inserted: int = 0
    updated: int = 0
    rejected: int = 0
    failed: int = 0
    pruned: int = 0
    batches: int = 0
    duration_s: float = 0.0
    table: Optional[str] = None
    mapping: Dict[str, Optional[str]] = field(default_factory=dict)
    stats: CatalogStats = field(default_factory=CatalogStats)

    def as_dict(self) -> Dict[str, object]:
        return {
            "rows_read": self.rows_read,
            "imported": self.imported,
            "inserted": self.inserted,
            "updated": self.updated,
            "rejected": self.rejected,
            "failed": self.failed,
            "pruned": self.pruned,
            "batches": self.batches,
            "duration_s": round(self.duration_s, 3),
            "table": self.table,
            "mapping": dict(self.mapping),
            "stats": self.stats.as_dict(),
        }


class Importer:
    """Stream the primary table of a snapshot into a :class:`CatalogStore`.

    The snapshot is inspected at construction, so a snapshot without a
    title column raises :class:`SchemaError` before the store is touched.
    """

    def __init__(
        self,
        source_path: str | Path,
        store: CatalogStore,
        classifier: Classifier,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        store_batch_size: Optional[int] = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        required_fields: Sequence[str] = DEFAULT_REQUIRED_FIELDS,
        top_channels: int = 10,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.source_path = Path(source_path)
        self.store = store
        self.batch_size = max(1, int(batch_size))
        self.store_batch_size = store_batch_size
        self.retention_days = max(1, int(retention_days))
        self.required_fields = tuple(required_fields)
        self.top_channels = max(1, int(top_channels))
        self._clock = clock or time.time
        self.transformer = RowTransformer(classifier, clock=self._clock)
        self.import_plan = self.plan()

    def plan(self) -> ImportPlan:
        """Inspect the snapshot and resolve the column mapping.

        Raises :class:`SchemaError` before anything is written when a
        required logical field has no source column.
        """

        schema = inspect_snapshot(self.source_path)
        primary = schema.primary()
        if primary is None:
            raise SchemaError(self.required_fields)
        mapping = detect_column_mapping(primary.column_names())
        missing = mapping.missing(self.required_fields)
        if missing:
            raise SchemaError(missing, table=primary.name)
        LOGGER.info("Column mapping for %s: %s", primary.name, mapping.resolved())
        LOGGER.debug("Snapshot layout: %s", describe(schema))
        return ImportPlan(
            schema=schema,
            table=primary.name,
            mapping=mapping,
            query=build_projection(primary.name, mapping),
        )

    def run(self) -> ImportResult:
        started = time.monotonic()
        plan = self.import_plan
        result = ImportResult(table=plan.table, mapping=dict(plan.mapping.fields))

        conn = connect(self.source_path, read_only=True)
        conn.row_factory = sqlite3.Row
        conn.text_factory = decode_text
        try:
            batch: List[CatalogItem] = []
            for row in conn.execute(plan.query):
                result.rows_read += 1
                try:
                    item = self.transformer.transform(row_to_mapping(row))
                except RowTransformError as exc:
                    result.failed += 1
                    LOGGER.warning("Row skipped: %s", exc, extra={"row": _loggable(row)})
                    continue
                if item is None:
                    result.rejected += 1
                    continue
                batch.append(item)
                if len(batch) >= self.batch_size:
                    self._flush(batch, result)
            if batch:
                self._flush(batch, result)
        finally:
            conn.close()

        result.pruned = self.store.prune_older_than(self.retention_days, now=self._clock())
        result.stats = self.store.stats(top_channels=self.top_channels)
        result.duration_s = time.monotonic() - started
        LOGGER.info(
            "Import finished: read=%s imported=%s rejected=%s failed=%s pruned=%s total=%s in %.1fs",
            result.rows_read,
            result.imported,
            result.rejected,
            result.failed,
            result.pruned,
            result.stats.total_count,
            result.duration_s,
        )
        return result

    def _flush(self, batch: List[CatalogItem], result: ImportResult) -> None:
        upserted = self.store.upsert_bulk(batch, self.store_batch_size)
        result.imported += len(batch)
        result.inserted += upserted.inserted
        result.updated += upserted.updated
        result.batches += upserted.batches
        LOGGER.info("Import progress: %s rows read, %s imported", result.rows_read, result.imported)
        batch.clear()


def decode_text(raw: bytes) -> str:
    # Upstream text columns are not guaranteed to be valid UTF-8.
    return raw.decode("utf-8", "replace")


def row_to_mapping(row: sqlite3.Row) -> Dict[str, object]:
    return {key: row[key] for key in row.keys()}


def _loggable(row: sqlite3.Row) -> Dict[str, object]:
    payload: Dict[str, object] = {}
    for key in row.keys():
        value = row[key]
        payload[key] = value if isinstance(value, (int, float, str)) or value is None else repr(value)
    return payload


__all__ = [
    "COLUMN_CANDIDATES",
    "ImportPlan",
    "ImportResult",
    "Importer",
    "RowTransformer",
    "build_projection",
    "decode_text",
    "detect_column_mapping",
    "row_to_mapping",
]
