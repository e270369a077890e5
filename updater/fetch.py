"""Conditional download and streaming decompression of upstream snapshots."""
from __future__ import annotations

import bz2
import gzip
import logging
import lzma
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, Mapping, Optional

import requests

from .errors import DecompressError, FetchError

LOGGER = logging.getLogger("mediacatalog.updater.fetch")

DEFAULT_TIMEOUT_S = 120.0
DEFAULT_CHUNK_BYTES = 1024 * 1024
DEFAULT_USER_AGENT = "mediacatalog-sync/0.1"


@dataclass(slots=True)
class FetchResult:
    downloaded: bool
    status: int
    size_bytes: int = 0
    etag: Optional[str] = None
    last_modified: Optional[str] = None

    @property
    def not_modified(self) -> bool:
        return not self.downloaded


def _part_path(path: Path) -> Path:
    return path.with_name(path.name + ".part")


class Fetcher:
    """Download snapshots over HTTP with ``If-None-Match``/``If-Modified-Since``."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        chunk_bytes: int = DEFAULT_CHUNK_BYTES,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.session = session or requests.Session()
        self.chunk_bytes = max(4096, int(chunk_bytes))
        self.user_agent = user_agent

    def fetch(
        self,
        url: str,
        destination: str | Path,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> FetchResult:
        """Fetch *url* into *destination*.

        A 304 answer returns ``downloaded=False`` without touching the
        filesystem. The body is streamed to a ``.part`` sibling and renamed
        into place once complete; the whole transfer must finish within
        ``timeout_s`` seconds.
        """

        target = Path(destination)
        request_headers: Dict[str, str] = {"User-Agent": self.user_agent}
        request_headers.update(headers or {})
        deadline = time.monotonic() + float(timeout_s)
        LOGGER.info("Fetching %s (conditional=%s)", url, sorted(headers or {}))

        try:
            response = self.session.get(url, headers=request_headers, stream=True, timeout=timeout_s)
        except requests.RequestException as exc:
            raise FetchError(f"request to {url} failed: {exc}") from exc

        try:
            if response.status_code == 304:
                LOGGER.info("Upstream not modified: %s", url)
                return FetchResult(
                    downloaded=False,
                    status=304,
                    etag=response.headers.get("ETag"),
                    last_modified=response.headers.get("Last-Modified"),
                )
            if not 200 <= response.status_code < 300:
                raise FetchError(
                    f"unexpected HTTP status {response.status_code} for {url}",
                    status=response.status_code,
                )

            target.parent.mkdir(parents=True, exist_ok=True)
            part = _part_path(target)
            size = 0
            try:
                with part.open("wb") as handle:
                    for chunk in response.iter_content(chunk_size=self.chunk_bytes):
                        if time.monotonic() > deadline:
                            raise FetchError(f"download of {url} exceeded {timeout_s:.0f}s")
                        if not chunk:
                            continue
                        handle.write(chunk)
                        size += len(chunk)
                os.replace(part, target)
            except requests.RequestException as exc:
                part.unlink(missing_ok=True)
                raise FetchError(f"download of {url} failed: {exc}") from exc
            except OSError as exc:
                part.unlink(missing_ok=True)
                raise FetchError(f"cannot write {target}: {exc}") from exc
            except FetchError:
                part.unlink(missing_ok=True)
                raise
        finally:
            response.close()

        LOGGER.info("Downloaded %s bytes from %s", size, url)
        return FetchResult(
            downloaded=True,
            status=response.status_code,
            size_bytes=size,
            etag=response.headers.get("ETag"),
            last_modified=response.headers.get("Last-Modified"),
        )


def _decompress_bz2(source: Path, handle: BinaryIO, chunk_bytes: int) -> None:
    # Concatenated bz2 streams are common for large dumps; restart the
    # decompressor on each stream boundary.
    decompressor = bz2.BZ2Decompressor()
    streams = 0
    in_stream = False
    with source.open("rb") as raw:
        while True:
            chunk = raw.read(chunk_bytes)
            if not chunk:
                break
            while chunk:
                in_stream = True
                handle.write(decompressor.decompress(chunk))
                if decompressor.eof:
                    streams += 1
                    in_stream = False
                    chunk = decompressor.unused_data
                    decompressor = bz2.BZ2Decompressor()
                else:
                    chunk = b""
    if in_stream:
        raise EOFError("compressed stream ended before the end-of-stream marker")
    if streams == 0:
        raise EOFError("compressed file is empty")


def decompress(
    source: str | Path,
    destination: str | Path,
    *,
    chunk_bytes: int = DEFAULT_CHUNK_BYTES,
) -> int:
    """Stream-decompress *source* into *destination* and return its size.

    The codec is chosen by suffix: ``.bz2``, ``.gz`` or ``.xz``.
    """

    src = Path(source)
    target = Path(destination)
    suffix = src.suffix.lower()
    if suffix not in {".bz2", ".gz", ".xz"}:
        raise DecompressError(f"unsupported compression suffix: {src.name}")
    target.parent.mkdir(parents=True, exist_ok=True)
    part = _part_path(target)
    try:
        with part.open("wb") as handle:
            if suffix == ".bz2":
                _decompress_bz2(src, handle, chunk_bytes)
            else:
                opener = gzip.open if suffix == ".gz" else lzma.open
                with opener(src, "rb") as stream:
                    shutil.copyfileobj(stream, handle, chunk_bytes)
        os.replace(part, target)
    except (OSError, EOFError, lzma.LZMAError) as exc:
        part.unlink(missing_ok=True)
        raise DecompressError(f"cannot decompress {src.name}: {exc}") from exc
    size = target.stat().st_size
    LOGGER.info("Decompressed %s to %s (%s bytes)", src.name, target.name, size)
    return size


__all__ = ["DEFAULT_TIMEOUT_S", "FetchResult", "Fetcher", "decompress"]
