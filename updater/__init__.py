"""Update cycles: conditional fetch, validation, atomic swap and import."""

from .cycle import CyclePhase, CycleResult, CycleStatus, Updater
from .errors import DecompressError, FetchError, SnapshotValidationError, StateIOError, UpdateError
from .fetch import Fetcher, FetchResult, decompress
from .state import CycleState, StateStore
from .validate import ValidationResult, validate_snapshot

__all__ = [
    "CyclePhase",
    "CycleResult",
    "CycleState",
    "CycleStatus",
    "DecompressError",
    "FetchError",
    "FetchResult",
    "Fetcher",
    "SnapshotValidationError",
    "StateIOError",
    "StateStore",
    "UpdateError",
    "Updater",
    "ValidationResult",
    "decompress",
    "validate_snapshot",
]
