"""Persistence of update cycle metadata."""
from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from .errors import StateIOError

LOGGER = logging.getLogger("mediacatalog.updater.state")

STATE_SCHEMA_VERSION = 1


def _optional_int(value: object) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True)
class CycleState:
    """Outcome of past cycles; timestamps are epoch seconds."""

    last_success_at: Optional[int] = None
    last_attempt_at: Optional[int] = None
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    last_row_count: int = 0
    last_max_timestamp: Optional[int] = None
    source_label: Optional[str] = None
    schema_version: int = STATE_SCHEMA_VERSION

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CycleState":
        return cls(
            last_success_at=_optional_int(data.get("last_success_at")),
            last_attempt_at=_optional_int(data.get("last_attempt_at")),
            etag=_optional_str(data.get("etag")),
            last_modified=_optional_str(data.get("last_modified")),
            last_row_count=_optional_int(data.get("last_row_count")) or 0,
            last_max_timestamp=_optional_int(data.get("last_max_timestamp")),
            source_label=_optional_str(data.get("source_label")),
            schema_version=_optional_int(data.get("schema_version")) or STATE_SCHEMA_VERSION,
        )

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def conditional_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.etag:
            headers["If-None-Match"] = self.etag
        if self.last_modified:
            headers["If-Modified-Since"] = self.last_modified
        return headers

    def needs_refresh(self, max_age_seconds: float, *, now: Optional[float] = None) -> bool:
        if self.last_success_at is None:
            return True
        current = time.time() if now is None else now
        return (current - self.last_success_at) > max_age_seconds


class StateStore:
    """Read and write :class:`CycleState` as JSON at *path*."""

    def __init__(self, path: str | Path, *, clock: Optional[Callable[[], float]] = None) -> None:
        self.path = Path(path)
        self._clock = clock or time.time

    def load(self) -> CycleState:
        """Return the persisted state, or defaults when missing or unreadable."""

        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return CycleState()
        except OSError as exc:
            LOGGER.warning("State file %s unreadable, using defaults: %s", self.path, exc)
            return CycleState()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            LOGGER.warning("State file %s corrupt, using defaults: %s", self.path, exc)
            return CycleState()
        if not isinstance(data, dict):
            LOGGER.warning("State file %s has unexpected structure, using defaults", self.path)
            return CycleState()
        return CycleState.from_mapping(data)

    def save(self, state: CycleState) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(state.as_dict(), handle, ensure_ascii=False, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if tmp_path.exists():
                tmp_path.unlink()
            raise StateIOError(f"cannot write state file {self.path}: {exc}") from exc
        LOGGER.debug("State saved to %s", self.path)

    def mark_attempt(self, state: CycleState) -> CycleState:
        state.last_attempt_at = int(self._clock())
        self.save(state)
        return state

    def mark_success(
        self,
        state: CycleState,
        *,
        etag: Optional[str] = None,
        last_modified: Optional[str] = None,
        row_count: Optional[int] = None,
        max_timestamp: Optional[int] = None,
        source_label: Optional[str] = None,
    ) -> CycleState:
        now = int(self._clock())
        state.last_success_at = now
        state.last_attempt_at = now
        if etag:
            state.etag = etag
        if last_modified:
            state.last_modified = last_modified
        if row_count is not None:
            state.last_row_count = int(row_count)
        if max_timestamp is not None:
            state.last_max_timestamp = int(max_timestamp)
        if source_label:
            state.source_label = source_label
        self.save(state)
        return state


__all__ = ["CycleState", "STATE_SCHEMA_VERSION", "StateStore"]
