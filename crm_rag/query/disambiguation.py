"""Decide whether a filtered record set is answered directly or needs a narrower query."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence, Union

from loguru import logger

from crm_rag.schemas import FormattedRecord, Record, RecordType

CLARIFICATION_THRESHOLD = 3
SAMPLE_SIZE = 5
SAMPLE_NAMES = 3


@dataclass
class DirectResult:
    records: list[FormattedRecord]
    count: int


@dataclass
class ClarificationRequest:
    sample: list[FormattedRecord]
    count: int
    message: str = ""
    needs_clarification: bool = field(default=True, init=False)


RecordMatchResult = Union[DirectResult, ClarificationRequest]


def clarification_message(record_type: RecordType, matches: Sequence[Record]) -> str:
    names = [r.display_name for r in matches[:SAMPLE_NAMES] if r.display_name]
    return (
        f"I found {len(matches)} {record_type.value}. Could you be more specific? "
        "For example, you could search by name, company, or other details. "
        f"Here are some examples: {', '.join(names)}"
    )


def resolve_ambiguity(
    matches: Sequence[Record],
    requested_all: bool,
    record_type: RecordType = RecordType.CONTACTS,
    threshold: int = CLARIFICATION_THRESHOLD,
    sample_size: int = SAMPLE_SIZE,
) -> RecordMatchResult:
    """
    More than `threshold` matches without an explicit "all" -> ask the user
    to narrow the query, showing `sample_size` formatted records.
    Otherwise return every match.
    """
    if len(matches) > threshold and not requested_all:
        logger.info(
            f"[Disambiguation] {len(matches)} {record_type.value} matched; asking for clarification"
        )
        return ClarificationRequest(
            sample=[r.format() for r in matches[:sample_size]],
            count=len(matches),
            message=clarification_message(record_type, matches),
        )
    return DirectResult(records=[r.format() for r in matches], count=len(matches))
