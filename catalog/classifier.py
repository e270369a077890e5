"""Rule based category assignment."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import CategoryConfigError
from .types import UNCATEGORIZED

LOGGER = logging.getLogger("mediacatalog.catalog.classifier")

DEFAULT_CATEGORIES_PATH = Path(__file__).resolve().parent / "categories.json"

RuleField = Literal["title", "channel", "topic", "description"]


class CategoryRule(BaseModel):
    """One rule: the item field matches if it contains any pattern."""

    field: RuleField = Field(..., description="Item field the patterns are tested against.")
    match: List[str] = Field(..., min_length=1, description="Substring patterns, case-insensitive.")

    @field_validator("match")
    @classmethod
    def _strip_patterns(cls, value: List[str]) -> List[str]:
        patterns = [pattern for pattern in value if pattern and pattern.strip()]
        if not patterns:
            raise ValueError("match needs at least one non-empty pattern")
        return patterns


class CategoryDefinition(BaseModel):
    priority: int = Field(..., description="Higher priorities are evaluated first.")
    rules: List[CategoryRule] = Field(default_factory=list)


class CategoryRuleSet(BaseModel):
    senders: List[str] = Field(default_factory=list, description="Known channel labels.")
    categories: Dict[str, CategoryDefinition] = Field(default_factory=dict)

    def ordered(self) -> List[Tuple[str, CategoryDefinition]]:
        # sorted() is stable: equal priorities keep their declared order.
        return sorted(self.categories.items(), key=lambda entry: -entry[1].priority)


def load_rule_set(path: Optional[str | Path] = None) -> CategoryRuleSet:
    source = Path(path) if path else DEFAULT_CATEGORIES_PATH
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CategoryConfigError(f"cannot read category config {source}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise CategoryConfigError(f"invalid JSON in category config {source}: {exc}") from exc
    try:
        return CategoryRuleSet.model_validate(payload)
    except ValidationError as exc:
        raise CategoryConfigError(f"invalid category config {source}: {exc}") from exc


class Classifier:
    def __init__(self, rule_set: CategoryRuleSet) -> None:
        self._rule_set = rule_set
        self._ordered: List[Tuple[str, List[Tuple[str, Tuple[str, ...]]]]] = [
            (
                name,
                [
                    (rule.field, tuple(pattern.casefold() for pattern in rule.match))
                    for rule in definition.rules
                ],
            )
            for name, definition in rule_set.ordered()
        ]

    @classmethod
    def from_path(cls, path: Optional[str | Path] = None) -> "Classifier":
        return cls(load_rule_set(path))

    def classify(self, item: Mapping[str, object]) -> str:
        for name, rules in self._ordered:
            for field_name, patterns in rules:
                value = item.get(field_name)
                if value is None:
                    continue
                text = str(value).casefold()
                if not text:
                    continue
                if any(pattern in text for pattern in patterns):
                    return name
        return UNCATEGORIZED

    def senders(self) -> List[str]:
        return list(self._rule_set.senders)

    def categories(self) -> List[str]:
        return [name for name, _ in self._ordered]


__all__ = [
    "CategoryDefinition",
    "CategoryRule",
    "CategoryRuleSet",
    "Classifier",
    "DEFAULT_CATEGORIES_PATH",
    "load_rule_set",
]
