"""Timestamp and duration normalisation for upstream rows."""
from __future__ import annotations

import math
import time
from datetime import datetime, timezone
from typing import Optional

# 2000-01-01T00:00:00Z
MIN_PLAUSIBLE_TS = 946684800
FUTURE_TOLERANCE_S = 365 * 24 * 60 * 60

_GERMAN_FORMATS = (
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%d.%m.%Y",
)


def _from_datetime(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def parse_timestamp(value: object) -> Optional[int]:
    """Return *value* as epoch seconds, or ``None`` when it cannot be read.

    Accepts epoch numbers, numeric strings, ISO-8601 strings and German
    ``DD.MM.YYYY[ HH:MM[:SS]]`` dates. Naive datetimes are taken as UTC.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _from_datetime(value)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        pass
    else:
        return int(number) if math.isfinite(number) else None
    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return _from_datetime(datetime.fromisoformat(iso))
    except ValueError:
        pass
    for fmt in _GERMAN_FORMATS:
        try:
            return _from_datetime(datetime.strptime(text, fmt))
        except ValueError:
            continue
    return None


def plausible_timestamp(ts: Optional[int], *, now: Optional[float] = None) -> Optional[int]:
    """Drop timestamps before 2000 or more than a year in the future."""

    if ts is None:
        return None
    current = time.time() if now is None else now
    if ts < MIN_PLAUSIBLE_TS or ts > int(current) + FUTURE_TOLERANCE_S:
        return None
    return ts


def parse_duration(value: object) -> Optional[int]:
    """Return a duration in seconds from a number or ``[HH:]MM:SS`` text."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return int(value) if value >= 0 else None
    text = str(value).strip()
    if not text:
        return None
    if ":" in text:
        parts = text.split(":")
        if len(parts) > 3 or not all(part.strip().isdigit() for part in parts):
            return None
        seconds = 0
        for part in parts:
            seconds = seconds * 60 + int(part)
        return seconds
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return int(number)


__all__ = [
    "FUTURE_TOLERANCE_S",
    "MIN_PLAUSIBLE_TS",
    "parse_duration",
    "parse_timestamp",
    "plausible_timestamp",
]
