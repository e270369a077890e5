"""Error hierarchy for catalog import operations."""
from __future__ import annotations

from typing import Iterable, List


class CatalogError(RuntimeError):
    """Base exception for catalog related failures."""


class SchemaError(CatalogError):
    """Raised when a snapshot lacks the columns needed for an import."""

    def __init__(self, missing: Iterable[str], *, table: str | None = None) -> None:
        self.missing: List[str] = list(missing)
        self.table = table
        where = f" in table {table}" if table else ""
        super().__init__(f"missing columns{where}: {', '.join(self.missing)}")


class RowTransformError(CatalogError):
    """Raised when a single source row cannot be normalised."""


class CategoryConfigError(CatalogError):
    """Raised when the category rule document cannot be loaded."""


__all__ = ["CatalogError", "CategoryConfigError", "RowTransformError", "SchemaError"]
