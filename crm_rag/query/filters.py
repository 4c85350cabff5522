"""
Filter term extraction and record filtering.

A free-text request such as "show contacts at Acme with title director" is
reduced to the terms that can narrow a record set ({"acme", "director"}).
Stopwords cover articles, prepositions, request verbs and the record-type
nouns that are already implied once the record type is known.

Matching is loose (substring, any term, any searchable field).  For
contacts two cues narrow the matches when they can:
  " at "   -> keep company matches
  " with " -> keep title matches
"""
from __future__ import annotations

import re
from typing import Iterable, Sequence

from loguru import logger

from crm_rag.config import DEFAULT_STOPWORDS
from crm_rag.schemas import Contact, Record, RecordType

MIN_TERM_LENGTH = 3

_NON_WORD = re.compile(r"[^\w\s]")

_TYPE_WORDS: list[tuple[RecordType, str]] = [
    (RecordType.CONTACTS, "contact"),
    (RecordType.ACCOUNTS, "account"),
    (RecordType.DEALS, "deal"),
    (RecordType.ACTIVITIES, "activit"),
]


class FilterTerms(frozenset):
    """A frozenset of terms that also remembers first-appearance order."""

    ordered: tuple[str, ...]

    def __new__(cls, terms: Iterable[str] = ()):
        ordered = tuple(dict.fromkeys(terms))
        obj = super().__new__(cls, ordered)
        obj.ordered = ordered
        return obj

    def __repr__(self) -> str:
        return f"FilterTerms({list(self.ordered)!r})"


def extract_filter_terms(
    message: str,
    stopwords: Iterable[str] = DEFAULT_STOPWORDS,
    min_length: int = MIN_TERM_LENGTH,
) -> FilterTerms:
    """Lowercase, strip punctuation, split, drop short tokens and stopwords, dedupe."""
    stop = set(stopwords)
    words = _NON_WORD.sub(" ", message.lower()).split()
    return FilterTerms(w for w in words if len(w) >= min_length and w not in stop)


def detect_record_type(message: str) -> RecordType:
    """Pick the record type named in the message; contacts when none is named."""
    lowered = message.lower()
    for record_type, word in _TYPE_WORDS:
        if word in lowered:
            return record_type
    return RecordType.CONTACTS


def requested_all(message: str, terms: Sequence[str] | frozenset) -> bool:
    """True when the user asked for everything ("all", or "view" with no filters)."""
    lowered = message.lower()
    if re.search(r"\ball\b", lowered):
        return True
    return bool(re.search(r"\bview\b", lowered)) and not terms


def _any_term_in(terms: Iterable[str], value: str) -> bool:
    return any(term in value for term in terms)


def apply_filters(
    records: Sequence[Record],
    terms: frozenset,
    record_type: RecordType,
    message: str = "",
) -> list[Record]:
    """
    Return the records of `record_type` matched by any filter term.

    With no terms every record of that type is returned.  For contacts,
    `message` enables two preferences applied to the any-field matches:
    " at " keeps only company matches and " with " keeps only title matches,
    each only when at least one such match exists.  "contacts at ford" then
    returns the people working at Ford rather than someone named Ford.
    """
    typed = [r for r in records if r.record_type == record_type.value]
    if not terms:
        return typed

    matched = [
        r for r in typed
        if any(_any_term_in(terms, field) for field in r.searchable_fields())
    ]

    if record_type is RecordType.CONTACTS and message:
        lowered = f" {message.lower()} "
        if " at " in lowered:
            matched = _prefer(matched, terms, lambda c: c.company)
        if " with " in lowered:
            matched = _prefer(matched, terms, lambda c: c.title)

    logger.debug(
        f"[Filters] {record_type.value}: {len(records)} -> {len(matched)} "
        f"| terms={sorted(terms)}"
    )
    return matched


def _prefer(matched: list[Record], terms: Iterable[str], field) -> list[Record]:
    preferred = [
        r for r in matched
        if isinstance(r, Contact) and _any_term_in(terms, field(r).lower())
    ]
    return preferred or matched
