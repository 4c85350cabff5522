"""
CRM Query Service
------------------
Answers structured record questions ("show contacts at Acme", "list deals
in negotiation"):

    message
      -> detect_record_type()       contacts / accounts / deals / activities
      -> RecordStore.get_records_by_team()
      -> extract_filter_terms() + apply_filters()
      -> resolve_ambiguity()        direct table vs. clarification prompt
      -> QueryResponse

Zero matches and over-broad matches are normal responses, not errors.  A
store failure is reported as an error response so the chat can continue.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from crm_rag.config import DEFAULT_STOPWORDS
from crm_rag.errors import StoreError
from crm_rag.query.disambiguation import (
    CLARIFICATION_THRESHOLD,
    SAMPLE_SIZE,
    ClarificationRequest,
    resolve_ambiguity,
)
from crm_rag.query.filters import (
    MIN_TERM_LENGTH,
    apply_filters,
    detect_record_type,
    extract_filter_terms,
    requested_all,
)
from crm_rag.schemas import FormattedRecord, RecordType
from crm_rag.storage.stores import RecordStore
from crm_rag.utils.helpers import truncate_text


@dataclass
class QueryResponse:
    message: str
    record_type: Optional[RecordType] = None
    records: list[FormattedRecord] = field(default_factory=list)
    count: int = 0
    needs_clarification: bool = False
    error: bool = False

    def to_dict(self) -> dict:
        data = None
        if self.records or self.count:
            data = {
                "records": [r.model_dump(exclude_none=True) for r in self.records],
                "type": self.record_type.value if self.record_type else None,
                "count": self.count,
                "display_format": "table",
            }
        return {
            "message": self.message,
            "data": data,
            "needs_clarification": self.needs_clarification,
            "error": self.error,
        }


class CRMQueryService:

    def __init__(
        self,
        store: RecordStore,
        stopwords: Optional[list[str]] = None,
        min_term_length: int = MIN_TERM_LENGTH,
        clarification_threshold: int = CLARIFICATION_THRESHOLD,
        sample_size: int = SAMPLE_SIZE,
    ) -> None:
        self.store = store
        self.stopwords = list(stopwords) if stopwords is not None else list(DEFAULT_STOPWORDS)
        self.min_term_length = min_term_length
        self.clarification_threshold = clarification_threshold
        self.sample_size = sample_size

    @classmethod
    def from_config(cls, store: RecordStore, cfg) -> "CRMQueryService":
        """Build from a QueryConfig section."""
        return cls(
            store,
            stopwords=cfg.stopwords,
            min_term_length=cfg.min_term_length,
            clarification_threshold=cfg.clarification_threshold,
            sample_size=cfg.sample_size,
        )

    def handle_database_query(self, message: str, team_id: str) -> QueryResponse:
        record_type = detect_record_type(message)
        logger.info(
            f"[CRMQuery] team={team_id} | type={record_type.value} | "
            f"message={truncate_text(message)!r}"
        )

        try:
            records = self.store.get_records_by_team(team_id, record_type)
        except StoreError as exc:
            logger.error(f"[CRMQuery] Record store failed: {exc}")
            return QueryResponse(
                message="I encountered an error while querying the database. Please try again.",
                record_type=record_type,
                error=True,
            )

        if not records:
            return QueryResponse(
                message=f"No {record_type.value} found for the specified criteria.",
                record_type=record_type,
            )

        terms = extract_filter_terms(message, self.stopwords, self.min_term_length)
        matches = apply_filters(records, terms, record_type, message)

        if not matches:
            return QueryResponse(
                message=f"No {record_type.value} found matching your filter criteria.",
                record_type=record_type,
            )

        result = resolve_ambiguity(
            matches,
            requested_all(message, terms),
            record_type=record_type,
            threshold=self.clarification_threshold,
            sample_size=self.sample_size,
        )

        if isinstance(result, ClarificationRequest):
            return QueryResponse(
                message=result.message,
                record_type=record_type,
                records=result.sample,
                count=result.count,
                needs_clarification=True,
            )

        if terms:
            text = f'Found {result.count} {record_type.value} matching "{" ".join(terms.ordered)}":'
        else:
            text = f"Found {result.count} {record_type.value}:"
        return QueryResponse(
            message=text,
            record_type=record_type,
            records=result.records,
            count=result.count,
        )
