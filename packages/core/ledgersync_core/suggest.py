"""Category suggestion interface and a keyword-rule implementation."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Optional, Protocol

import yaml
from ledgersync_schemas import CandidateTransaction, FrozenModel
from pydantic import Field

from .parsers import clean_description

# Confidence assigned to rules learned from a reviewer's choice.
_LEARNED_CONFIDENCE = 90


class CategorySuggester(Protocol):
    """Suggests ``(category_id, confidence)`` for a candidate, or ``None``."""

    def suggest(self, candidate: CandidateTransaction) -> Optional[tuple[int, int]]: ...


class CategoryRule(FrozenModel):
    """Saved keyword rule stored on disk."""

    name: str
    pattern: str
    category_id: int = Field(gt=0)
    confidence: int = Field(default=95, ge=0, le=100)


def load_rules(path: Path) -> list[CategoryRule]:
    if not path.exists():
        return []
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not raw:
        return []
    return [CategoryRule.model_validate(item) for item in raw]


def save_rules(path: Path, rules: Iterable[CategoryRule]) -> None:
    serialisable = [rule.model_dump() for rule in rules]
    path.write_text(yaml.safe_dump(serialisable, sort_keys=False), encoding="utf-8")


def match_rule(
    rules: Iterable[CategoryRule], candidate: CandidateTransaction
) -> CategoryRule | None:
    description = clean_description(candidate.description) or candidate.description.lower()
    for rule in rules:
        if re.search(rule.pattern, description, flags=re.IGNORECASE):
            return rule
    return None


def create_rule_from_candidate(
    candidate: CandidateTransaction, category_id: int
) -> CategoryRule | None:
    tokens = [token for token in clean_description(candidate.description).split() if token]
    if not tokens:
        return None
    selected = tokens[:3]
    pattern = ".*".join(re.escape(token) for token in selected)
    return CategoryRule(
        name=candidate.description[:32],
        pattern=pattern,
        category_id=category_id,
        confidence=_LEARNED_CONFIDENCE,
    )


class RuleCategorySuggester:
    """Suggest categories from regex rules kept in a YAML file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._rules = load_rules(path)

    @property
    def rules(self) -> list[CategoryRule]:
        return list(self._rules)

    def suggest(self, candidate: CandidateTransaction) -> Optional[tuple[int, int]]:
        rule = match_rule(self._rules, candidate)
        if rule is None:
            return None
        return rule.category_id, rule.confidence

    def learn(self, candidate: CandidateTransaction, category_id: int) -> bool:
        """Remember a reviewer's category choice; returns ``True`` when a rule was added."""
        rule = create_rule_from_candidate(candidate, category_id)
        if rule is None:
            return False
        for existing in self._rules:
            if existing.pattern == rule.pattern and existing.category_id == rule.category_id:
                return False
        # Newest rules take precedence over older, possibly stale ones.
        self._rules.insert(0, rule)
        save_rules(self.path, self._rules)
        return True


__all__ = [
    "CategoryRule",
    "CategorySuggester",
    "RuleCategorySuggester",
    "create_rule_from_candidate",
    "load_rules",
    "match_rule",
    "save_rules",
]
