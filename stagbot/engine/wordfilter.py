"""
stagbot.engine.wordfilter — Banned-Word Matching
=================================================

Whole-word, case-insensitive matching against a plain-text word list
(one entry per line).  Pure calculation; the automod cog decides what to
do with a hit.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path


class WordFilter:
    """Compiled matcher for a set of banned words."""

    def __init__(self, words: Iterable[str]) -> None:
        cleaned = sorted({w.strip().lower() for w in words if w.strip()}, key=len, reverse=True)
        self.words: tuple[str, ...] = tuple(cleaned)
        if cleaned:
            alternation = "|".join(re.escape(w) for w in cleaned)
            self._pattern: re.Pattern[str] | None = re.compile(
                rf"\b(?:{alternation})\b", re.IGNORECASE,
            )
        else:
            self._pattern = None

    @classmethod
    def from_file(cls, path: str | Path) -> WordFilter:
        """Load a word list; a missing file yields an empty (inert) filter."""
        word_path = Path(path)
        if not word_path.exists():
            return cls([])
        lines = word_path.read_text(encoding="utf-8").splitlines()
        return cls(line for line in lines if not line.lstrip().startswith("#"))

    def find(self, text: str) -> str | None:
        """Return the first banned word found in *text*, or ``None``."""
        if self._pattern is None or not text:
            return None
        match = self._pattern.search(text)
        return match.group(0).lower() if match else None

    def __bool__(self) -> bool:
        return bool(self.words)
