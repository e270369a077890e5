"""Fetch, validate, swap and import one upstream snapshot."""
from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional
from urllib.parse import urlparse

from catalog.classifier import Classifier
from catalog.importer import Importer, ImportResult
from catalog.store import CatalogStore
from core.context import AppContext

from .errors import SnapshotValidationError
from .fetch import Fetcher, decompress
from .logs import UpdateLogger
from .state import StateStore
from .validate import validate_snapshot

LOGGER = logging.getLogger("mediacatalog.updater.cycle")

COMPRESSED_SUFFIXES = (".bz2", ".gz", ".xz")


class CyclePhase(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DECOMPRESSING = "decompressing"
    VALIDATING = "validating"
    SWAPPING = "swapping"
    IMPORTING = "importing"


class CycleStatus(str, Enum):
    UPDATED = "updated"
    NOT_MODIFIED = "not_modified"
    VALIDATION_FAILED = "validation_failed"
    ERROR = "error"


@dataclass(slots=True)
class CycleResult:
    status: CycleStatus
    phase: CyclePhase = CyclePhase.IDLE
    errors: List[str] = field(default_factory=list)
    error: Optional[str] = None
    stats: Optional[Dict[str, object]] = None
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status in (CycleStatus.UPDATED, CycleStatus.NOT_MODIFIED)

    def as_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "status": self.status.value,
            "phase": self.phase.value,
            "duration_s": round(self.duration_s, 3),
        }
        if self.errors:
            payload["errors"] = list(self.errors)
        if self.error:
            payload["error"] = self.error
        if self.stats is not None:
            payload["stats"] = self.stats
        return payload


def compression_suffix(url: str) -> str:
    """Return the compression suffix of *url*'s path, ``.bz2`` by default."""

    path = urlparse(url).path.lower()
    for suffix in COMPRESSED_SUFFIXES:
        if path.endswith(suffix):
            return suffix
    return ".bz2"


class Updater:
    """Run update cycles against one working directory.

    Production data is only touched after a staged snapshot validated:
    the snapshot is promoted with a single ``os.replace`` and then merged
    into the catalog store. Cycles never raise; every outcome is a
    :class:`CycleResult`. The updater is not reentrant.
    """

    def __init__(
        self,
        context: AppContext,
        *,
        fetcher: Optional[Fetcher] = None,
        classifier: Optional[Classifier] = None,
        clock: Optional[Callable[[], float]] = None,
        logger: Optional[UpdateLogger] = None,
    ) -> None:
        self.context = context
        self._clock = clock or time.time
        self.fetcher = fetcher or Fetcher(
            chunk_bytes=context.source.chunk_bytes,
            user_agent=context.source.user_agent,
        )
        # A malformed category document fails here, not mid-cycle.
        self.classifier = classifier or Classifier.from_path(context.importer.categories_path)
        self.state_store = StateStore(context.state_path, clock=self._clock)
        self.logger = logger or UpdateLogger(context.logs_dir)
        self._lock = threading.Lock()
        self._phase = CyclePhase.IDLE

    @property
    def phase(self) -> CyclePhase:
        return self._phase

    def _enter(self, phase: CyclePhase) -> None:
        LOGGER.debug("Cycle phase %s -> %s", self._phase.value, phase.value)
        self._phase = phase

    # ------------------------------------------------------------------
    def run_cycle(self, *, url: Optional[str] = None) -> CycleResult:
        if not self._lock.acquire(blocking=False):
            LOGGER.warning("Update cycle already running; refusing concurrent start")
            return CycleResult(
                status=CycleStatus.ERROR,
                phase=self._phase,
                error="update cycle already running",
            )
        try:
            return self._run(url or self.context.source.url)
        finally:
            self._phase = CyclePhase.IDLE
            self._lock.release()

    def _run(self, url: str) -> CycleResult:
        started = time.monotonic()
        source = self.context.source
        staging = self.context.staging_dir
        download = staging / f"{source.snapshot_name}{compression_suffix(url)}"
        staged = staging / source.snapshot_name
        self._enter(CyclePhase.IDLE)

        try:
            self.logger.event(event="cycle_started", phase=self._phase.value, ok=True, url=url)
            state = self.state_store.load()
            self.state_store.mark_attempt(state)

            self._enter(CyclePhase.FETCHING)
            fetched = self.fetcher.fetch(
                url,
                download,
                headers=state.conditional_headers(),
                timeout_s=source.timeout_s,
            )
            if not fetched.downloaded:
                self.logger.event(event="fetch_not_modified", phase=self._phase.value, ok=True, url=url)
                return CycleResult(
                    status=CycleStatus.NOT_MODIFIED,
                    phase=self._phase,
                    duration_s=time.monotonic() - started,
                )
            self.logger.event(
                event="fetch_done",
                phase=self._phase.value,
                ok=True,
                bytes=fetched.size_bytes,
                etag=fetched.etag,
                last_modified=fetched.last_modified,
            )

            self._enter(CyclePhase.DECOMPRESSING)
            size = decompress(download, staged, chunk_bytes=source.chunk_bytes)
            self.logger.event(event="decompress_done", phase=self._phase.value, ok=True, bytes=size)

            self._enter(CyclePhase.VALIDATING)
            validation = validate_snapshot(
                staged,
                check_freshness=source.check_freshness,
                max_age_days=source.max_age_days,
                now=self._clock(),
            )
            if not validation.valid:
                self.logger.event(
                    event="validation_failed",
                    phase=self._phase.value,
                    ok=False,
                    errors=validation.errors,
                )
                return CycleResult(
                    status=CycleStatus.VALIDATION_FAILED,
                    phase=self._phase,
                    errors=list(validation.errors),
                    error=str(SnapshotValidationError(validation.errors)),
                    duration_s=time.monotonic() - started,
                )

            self._enter(CyclePhase.SWAPPING)
            production = self.context.snapshot_path
            production.parent.mkdir(parents=True, exist_ok=True)
            os.replace(staged, production)
            self.logger.event(
                event="snapshot_swapped",
                phase=self._phase.value,
                ok=True,
                path=str(production),
                rows=validation.row_count,
            )

            self._enter(CyclePhase.IMPORTING)
            imported = self._import(production)
            self.logger.event(event="import_done", phase=self._phase.value, ok=True, **imported.as_dict())

            watermark = validation.max_timestamp
            if watermark is None:
                watermark = imported.stats.max_date_ts
            self.state_store.mark_success(
                state,
                etag=fetched.etag,
                last_modified=fetched.last_modified,
                row_count=validation.row_count,
                max_timestamp=watermark,
                source_label=production.name,
            )
            duration = time.monotonic() - started
            self.logger.event(
                event="cycle_succeeded",
                phase=self._phase.value,
                ok=True,
                rows=validation.row_count,
                max_timestamp=watermark,
                duration_s=round(duration, 3),
            )
            return CycleResult(
                status=CycleStatus.UPDATED,
                phase=self._phase,
                stats=imported.as_dict(),
                duration_s=duration,
            )
        except Exception as exc:
            LOGGER.exception("Update cycle failed during %s", self._phase.value)
            self.logger.event(
                event="cycle_failed",
                phase=self._phase.value,
                ok=False,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return CycleResult(
                status=CycleStatus.ERROR,
                phase=self._phase,
                error=str(exc),
                duration_s=time.monotonic() - started,
            )
        finally:
            self._discard(download)
            self._discard(staged)

    def _import(self, snapshot: Path) -> ImportResult:
        settings = self.context.importer
        with CatalogStore.open(
            self.context.catalog_db_path,
            overwrite_on_conflict=settings.overwrite_on_conflict,
            batch_size=settings.store_batch_size,
            clock=self._clock,
        ) as store:
            importer = Importer(
                snapshot,
                store,
                self.classifier,
                batch_size=settings.batch_size,
                store_batch_size=settings.store_batch_size,
                retention_days=settings.retention_days,
                required_fields=settings.required_fields,
                top_channels=settings.stats_top_channels,
                clock=self._clock,
            )
            result = importer.run()
            store.optimize()
        return result

    def _discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            self.logger.warning("staging_cleanup_failed", path=str(path), error=str(exc))

    # ------------------------------------------------------------------
    def cleanup(self) -> int:
        """Remove leftover files from the staging directory; return the count."""

        staging = self.context.staging_dir
        if not staging.is_dir():
            return 0
        if not self._lock.acquire(blocking=False):
            LOGGER.warning("Skipping staging cleanup while a cycle is running")
            return 0
        removed = 0
        try:
            for entry in staging.iterdir():
                if not entry.is_file():
                    continue
                entry.unlink()
                removed += 1
        finally:
            self._lock.release()
        LOGGER.info("Removed %s staged files from %s", removed, staging)
        return removed


__all__ = [
    "CyclePhase",
    "CycleResult",
    "CycleStatus",
    "Updater",
    "compression_suffix",
]
