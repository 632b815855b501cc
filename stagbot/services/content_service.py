"""
stagbot.services.content_service — FAQ & Rules Data Files
==========================================================

Loads the numbered FAQ and rule lists shown by ``/faq`` and ``/rule``.
Both are JSON arrays; entries are validated once at start-up and any
malformed file is an :class:`~stagbot.errors.InvalidConfiguration`.

``data/faq.json``::

    [{"question": "...", "answer": "...", "category": "General"}]

``data/rules.json``::

    [{"description": "...", "severity": "High", "punishment": "Ban"}]
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, TypeVar

from stagbot.errors import InvalidConfiguration

logger = logging.getLogger(__name__)

E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class FaqEntry:
    question: str
    answer: str
    category: str | None = None


@dataclass(frozen=True, slots=True)
class RuleEntry:
    description: str
    severity: str
    punishment: str


class NumberedEntries(Generic[E]):
    """A 1-indexed, read-only list of entries."""

    def __init__(self, entries: Sequence[E]) -> None:
        self._entries = tuple(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, number: int) -> E | None:
        """Entry *number* (1-based), or ``None`` when out of range."""
        if number < 1 or number > len(self._entries):
            return None
        return self._entries[number - 1]


def _read_array(path: str | Path) -> list[dict]:
    data_path = Path(path)
    if not data_path.exists():
        logger.warning("Data file %s not found — no entries loaded", data_path)
        return []
    try:
        with open(data_path, encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise InvalidConfiguration(f"{data_path} is not valid JSON: {exc}") from exc
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise InvalidConfiguration(f"{data_path} must be a JSON array of objects")
    return data


def _require(item: dict, key: str, path: str | Path, index: int) -> str:
    value = item.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidConfiguration(f"{path} entry #{index}: missing '{key}'")
    return value


def load_faq(path: str | Path) -> NumberedEntries[FaqEntry]:
    entries = []
    for i, item in enumerate(_read_array(path), 1):
        category = item.get("category")
        entries.append(FaqEntry(
            question=_require(item, "question", path, i),
            answer=_require(item, "answer", path, i),
            category=str(category) if category else None,
        ))
    logger.info("Loaded %d FAQ entries from %s", len(entries), path)
    return NumberedEntries(entries)


def load_rules(path: str | Path) -> NumberedEntries[RuleEntry]:
    entries = []
    for i, item in enumerate(_read_array(path), 1):
        entries.append(RuleEntry(
            description=_require(item, "description", path, i),
            severity=_require(item, "severity", path, i),
            punishment=_require(item, "punishment", path, i),
        ))
    logger.info("Loaded %d rules from %s", len(entries), path)
    return NumberedEntries(entries)
