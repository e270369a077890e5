"""Error hierarchy for snapshot update cycles."""
from __future__ import annotations

from typing import Iterable, List, Optional


class UpdateError(RuntimeError):
    """Base exception for update cycle failures."""


class FetchError(UpdateError):
    """Raised when the upstream snapshot cannot be downloaded."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class DecompressError(UpdateError):
    """Raised when a downloaded snapshot cannot be decompressed."""


class SnapshotValidationError(UpdateError):
    """Raised when a staged snapshot fails validation."""

    def __init__(self, errors: Iterable[str]) -> None:
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors) or "snapshot validation failed")


class StateIOError(UpdateError):
    """Raised when the cycle state cannot be written."""


__all__ = [
    "DecompressError",
    "FetchError",
    "SnapshotValidationError",
    "StateIOError",
    "UpdateError",
]
