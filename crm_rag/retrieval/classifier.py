"""
Query Intent Classifier
------------------------
Routes a free-text document question to one of three retrieval strategies:

  COMPREHENSIVE  -- the user wants coverage of everything ("total of all
                    invoices", "summarise every file").  Every file is
                    listed; no ranking.
  SPECIFIC_FILE  -- the user names a file ("what's in money.xlsx") or uses a
                    keyword strongly tied to one file.  Chunks from the
                    matching file are returned directly.
  SIMILARITY     -- anything else.  The query is embedded and chunks are
                    ranked by cosine similarity.

Keyword-based routes are cheap and deterministic, so they are checked
first; the embedding path is the fallback.  The keyword tables come from
ClassifierConfig.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger


class QueryIntent(str, Enum):
    COMPREHENSIVE = "comprehensive"
    SPECIFIC_FILE = "specific_file"
    SIMILARITY = "similarity"


@dataclass(frozen=True)
class Classification:
    intent: QueryIntent
    target_file: Optional[str] = None       # lowercase filename fragment


def _word_pattern(words) -> Optional[re.Pattern[str]]:
    words = [w.lower() for w in words if w]
    if not words:
        return None
    alternatives = "|".join(re.escape(w) for w in sorted(words, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})\b")


class QueryClassifier:
    """
    Usage:
        classifier = QueryClassifier.from_config(config.classifier)
        result = classifier.classify("what's in money.xlsx")
        result.intent       # QueryIntent.SPECIFIC_FILE
        result.target_file  # "money.xlsx"
    """

    def __init__(
        self,
        comprehensive_keywords: list[str],
        file_extensions: list[str],
        file_hints: dict[str, str],
    ) -> None:
        self.file_extensions = [e.lower() for e in file_extensions]
        self.file_hints = {k.lower(): v.lower() for k, v in file_hints.items()}
        self._comprehensive = _word_pattern(comprehensive_keywords)
        self._hints = _word_pattern(self.file_hints)

    @classmethod
    def from_config(cls, cfg) -> "QueryClassifier":
        """Build from a ClassifierConfig section."""
        return cls(
            comprehensive_keywords=cfg.comprehensive_keywords,
            file_extensions=cfg.file_extensions,
            file_hints=cfg.file_hints,
        )

    def classify(self, query: str) -> Classification:
        q = query.lower()

        if self._comprehensive and self._comprehensive.search(q):
            result = Classification(QueryIntent.COMPREHENSIVE)
        else:
            target = self._extension_target(q) or self._hint_target(q)
            if target:
                result = Classification(QueryIntent.SPECIFIC_FILE, target_file=target)
            else:
                result = Classification(QueryIntent.SIMILARITY)

        logger.debug(
            f"[QueryClassifier] {query[:60]!r} -> {result.intent.value}"
            + (f" (file~{result.target_file!r})" if result.target_file else "")
        )
        return result

    def _extension_target(self, q: str) -> Optional[str]:
        """Return the whitespace-delimited word containing a known file extension."""
        for ext in self.file_extensions:
            if ext not in q:
                continue
            for word in q.split():
                if ext in word:
                    # drop quotes/trailing punctuation around the file name
                    return word.strip("\"'`()[]{}<>,;:!?.")
        return None

    def _hint_target(self, q: str) -> Optional[str]:
        if not self._hints:
            return None
        match = self._hints.search(q)
        return self.file_hints[match.group(0)] if match else None
