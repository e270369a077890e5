"""Content-addressed identifiers for catalog items."""
from __future__ import annotations

import hashlib
import re
from typing import Dict, Optional

ID_PREFIX = "de-mvw"

_HASH_PATTERN = re.compile(r"^[0-9a-f]{40}$", re.IGNORECASE)


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value)


def compute_item_id(
    channel: Optional[str],
    url_website: Optional[str],
    url_video: Optional[str],
    title: Optional[str],
    date_ts: Optional[int],
) -> str:
    """Return the stable identity of an item.

    The digest covers channel, the page locator (or the playable locator
    when there is no page), title and originating timestamp, so the same
    logical item gets the same id from every snapshot.
    """

    locator = url_website or url_video
    base = "|".join((_text(channel), _text(locator), _text(title), _text(date_ts)))
    digest = hashlib.sha1(base.encode("utf-8")).hexdigest()
    return f"{ID_PREFIX}:{digest}"


def parse_item_id(item_id: str) -> Optional[Dict[str, object]]:
    if not item_id or not item_id.startswith(f"{ID_PREFIX}:"):
        return None
    digest = item_id[len(ID_PREFIX) + 1 :]
    return {
        "prefix": ID_PREFIX,
        "hash": digest,
        "valid": bool(_HASH_PATTERN.match(digest)),
    }


def is_valid_item_id(item_id: str) -> bool:
    parsed = parse_item_id(item_id)
    return bool(parsed and parsed["valid"])


__all__ = ["ID_PREFIX", "compute_item_id", "is_valid_item_id", "parse_item_id"]
