"""Static channel tables for the upstream film list."""
from __future__ import annotations

from typing import Dict, Optional

UNKNOWN_CHANNEL = "Unknown"

CHANNEL_ID_MAP: Dict[int, str] = {
    1: "ARD",
    2: "ZDF",
    3: "arte",
    4: "3sat",
    5: "BR",
    6: "HR",
    7: "MDR",
    8: "NDR",
    9: "Radio Bremen TV",
    10: "RBB",
    11: "SR",
    12: "SWR",
    13: "WDR",
    14: "KIKA",
    15: "Phoenix",
    16: "tagesschau24",
    17: "ARD-alpha",
    18: "ONE",
    19: "ZDFneo",
    20: "ZDFinfo",
    21: "Funk",
    22: "DW (Deutsch)",
    23: "ORF",
    24: "SRF",
    25: "rbtv",
    26: "ServusTV",
    27: "KabelEins",
    28: "Sport1",
    29: "Eurosport",
    30: "DW (English)",
}

LOGO_BASE_URL = "https://raw.githubusercontent.com/jnk22/kodinerds-iptv/master/logos/tv"

CHANNEL_LOGOS: Dict[str, str] = {
    "ARD": f"{LOGO_BASE_URL}/ard.png",
    "Das Erste": f"{LOGO_BASE_URL}/ard.png",
    "tagesschau24": f"{LOGO_BASE_URL}/tagesschau24.png",
    "ARD-alpha": f"{LOGO_BASE_URL}/ardalpha.png",
    "ONE": f"{LOGO_BASE_URL}/one.png",
    "BR": f"{LOGO_BASE_URL}/br.png",
    "HR": f"{LOGO_BASE_URL}/hr.png",
    "MDR": f"{LOGO_BASE_URL}/mdr.png",
    "NDR": f"{LOGO_BASE_URL}/ndr.png",
    "RBB": f"{LOGO_BASE_URL}/rbb.png",
    "SR": f"{LOGO_BASE_URL}/sr.png",
    "SWR": f"{LOGO_BASE_URL}/swr.png",
    "WDR": f"{LOGO_BASE_URL}/wdr.png",
    "ZDF": f"{LOGO_BASE_URL}/zdf.png",
    "ZDFneo": f"{LOGO_BASE_URL}/zdfneo.png",
    "ZDFinfo": f"{LOGO_BASE_URL}/zdfinfo.png",
    "Phoenix": f"{LOGO_BASE_URL}/phoenix.png",
    "arte": f"{LOGO_BASE_URL}/arte.png",
    "3sat": f"{LOGO_BASE_URL}/3sat.png",
    "KIKA": f"{LOGO_BASE_URL}/kika.png",
}

_LOGOS_CASEFOLD: Dict[str, str] = {name.casefold(): url for name, url in CHANNEL_LOGOS.items()}


def resolve_channel(value: object) -> str:
    """Map an upstream channel value to a display label.

    Numeric ids go through :data:`CHANNEL_ID_MAP`; unknown ids get a
    synthesized ``"Channel <n>"`` label. Text values are kept as-is.
    """

    if value is None or isinstance(value, bool):
        return UNKNOWN_CHANNEL
    if isinstance(value, (int, float)):
        channel_id = int(value)
        return CHANNEL_ID_MAP.get(channel_id, f"Channel {channel_id}")
    text = str(value).strip()
    if not text:
        return UNKNOWN_CHANNEL
    if text.lstrip("-").isdigit():
        channel_id = int(text)
        return CHANNEL_ID_MAP.get(channel_id, f"Channel {channel_id}")
    return text


def resolve_logo(channel: Optional[str]) -> Optional[str]:
    if not channel:
        return None
    exact = CHANNEL_LOGOS.get(channel)
    if exact:
        return exact
    return _LOGOS_CASEFOLD.get(channel.casefold())


__all__ = [
    "CHANNEL_ID_MAP",
    "CHANNEL_LOGOS",
    "UNKNOWN_CHANNEL",
    "resolve_channel",
    "resolve_logo",
]
