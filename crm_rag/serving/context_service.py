"""
Document Context Service
-------------------------
The boundary between the chat layer and the retrieval pipeline:

    query
      |
      v
    DocumentRetriever (classify -> comprehensive / specific file / similarity)
      |
      v
    ContextAssembler (group by file, token budget, head/tail truncation)
      |
      v
    ContextResult

External-call failures (embedding service, document store) are caught here
and turned into an empty ContextResult so the conversation can continue
with a general-knowledge answer.  A DimensionMismatchError is a programming
error and is allowed to propagate.
"""
from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from crm_rag.errors import EmbeddingServiceError, StoreError
from crm_rag.retrieval.context import ContextAssembler, ContextResult, RetrievedChunk
from crm_rag.retrieval.retriever import DocumentRetriever
from crm_rag.storage.stores import DocumentStore
from crm_rag.utils.helpers import truncate_text


@dataclass
class DocumentStats:
    total_documents: int = 0
    total_chunks: int = 0
    total_embeddings: int = 0

    def to_dict(self) -> dict:
        return {
            "total_documents": self.total_documents,
            "total_chunks": self.total_chunks,
            "total_embeddings": self.total_embeddings,
        }


class DocumentContextService:
    """
    Usage:
        service = DocumentContextService(store, retriever, assembler)
        result = service.create_context("what's in money.xlsx", team_id="t1")
        if not result.has_context:
            ...  # answer from general knowledge
    """

    def __init__(
        self,
        store: DocumentStore,
        retriever: DocumentRetriever,
        assembler: ContextAssembler,
        max_results: int = 3,
    ) -> None:
        self.store = store
        self.retriever = retriever
        self.assembler = assembler
        self.max_results = max_results

    def create_context(self, query: str, team_id: str, max_results: int | None = None) -> ContextResult:
        """Build the context block for `query`; never raises for external failures."""
        limit = max_results or self.max_results
        logger.info(f"[ContextService] team={team_id} | query={truncate_text(query)!r}")
        try:
            classification, chunks = self.retriever.retrieve(query, team_id, limit)
        except (EmbeddingServiceError, StoreError) as exc:
            logger.warning(f"[ContextService] Retrieval failed, continuing without documents: {exc}")
            return ContextResult.empty()

        return self.assembler.assemble(chunks, mode=classification.intent)

    def search_documents(self, query: str, team_id: str, max_results: int = 5) -> list[RetrievedChunk]:
        """Raw retrieval without context assembly (empty list on failure)."""
        try:
            _, chunks = self.retriever.retrieve(query, team_id, max_results)
        except (EmbeddingServiceError, StoreError) as exc:
            logger.warning(f"[ContextService] Search failed: {exc}")
            return []
        return chunks

    def get_team_document_stats(self, team_id: str) -> DocumentStats:
        try:
            documents = self.store.get_team_documents(team_id)
            chunks = self.store.get_team_chunks(team_id)
        except StoreError as exc:
            logger.warning(f"[ContextService] Stats unavailable for team {team_id}: {exc}")
            return DocumentStats()
        return DocumentStats(
            total_documents=len(documents),
            total_chunks=len(chunks),
            total_embeddings=sum(1 for c in chunks if c.embedding),
        )
