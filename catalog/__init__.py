"""Snapshot inspection, classification and the indexed catalog store."""

from .classifier import Classifier, load_rule_set
from .errors import CatalogError, CategoryConfigError, RowTransformError, SchemaError
from .importer import Importer, ImportResult
from .store import CatalogStore
from .types import CatalogItem, CatalogStats

__all__ = [
    "CatalogError",
    "CatalogItem",
    "CatalogStats",
    "CatalogStore",
    "CategoryConfigError",
    "Classifier",
    "ImportResult",
    "Importer",
    "RowTransformError",
    "SchemaError",
    "load_rule_set",
]
