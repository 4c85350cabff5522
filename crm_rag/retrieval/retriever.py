"""
Document Retriever
-------------------
Selects the chunks that ground an answer, using the strategy chosen by the
QueryClassifier:

  COMPREHENSIVE  one representative (first) chunk per file, similarity 1.0
  SPECIFIC_FILE  the leading chunks of files whose name contains the target,
                 similarity 1.0; falls through to SIMILARITY when no file
                 matches
  SIMILARITY     embed the query and rank every chunk by cosine similarity

The retriever is stateless per query; call retrieve() as often as needed.
Embedding failures propagate -- the context service decides how to degrade.
"""
from __future__ import annotations

from langsmith import traceable
from loguru import logger

from crm_rag.chunking.schemas import DocumentChunk
from crm_rag.embedding.embedder import Embedder
from crm_rag.retrieval.classifier import Classification, QueryClassifier, QueryIntent
from crm_rag.retrieval.context import RetrievedChunk
from crm_rag.retrieval.similarity import rank
from crm_rag.storage.stores import DocumentStore


def _to_retrieved(chunk: DocumentChunk, similarity: float) -> RetrievedChunk:
    return RetrievedChunk(
        file_name=chunk.file_name,
        file_type=chunk.file_type,
        chunk_text=chunk.text,
        similarity=similarity,
        chunk_index=chunk.chunk_index,
    )


class DocumentRetriever:

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder,
        classifier: QueryClassifier,
        max_chunks_per_file: int = 5,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.classifier = classifier
        self.max_chunks_per_file = max_chunks_per_file

    @traceable(name="retrieve_documents", run_type="retriever")
    def retrieve(
        self,
        query: str,
        team_id: str,
        max_results: int = 3,
    ) -> tuple[Classification, list[RetrievedChunk]]:
        """
        Return the routing decision and the chunks to assemble.

        Raises:
            EmbeddingServiceError: on the SIMILARITY path, if the query
                cannot be embedded.
            DimensionMismatchError: if stored vectors disagree with the
                query vector's length.
        """
        classification = self.classifier.classify(query)
        chunks = self.store.get_team_chunks(team_id)
        logger.debug(f"[Retriever] team={team_id} | {len(chunks)} chunks | {classification.intent.value}")

        if not chunks:
            logger.info(f"[Retriever] No chunks for team {team_id}")
            return classification, []

        if classification.intent is QueryIntent.COMPREHENSIVE:
            return classification, self._comprehensive(chunks, max_results)

        if classification.intent is QueryIntent.SPECIFIC_FILE:
            results = self._specific_file(chunks, classification.target_file or "")
            if results:
                return classification, results
            logger.info(
                f"[Retriever] No file matches {classification.target_file!r}; "
                "falling back to similarity search"
            )
            classification = Classification(QueryIntent.SIMILARITY)

        return classification, self._similarity(query, chunks, max_results)

    # --- Strategies -------------------------------------------------------------

    @staticmethod
    def _comprehensive(chunks: list[DocumentChunk], max_results: int) -> list[RetrievedChunk]:
        first_by_file: dict[str, DocumentChunk] = {}
        for chunk in chunks:
            current = first_by_file.get(chunk.file_name)
            if current is None or chunk.chunk_index < current.chunk_index:
                first_by_file[chunk.file_name] = chunk
        results = [_to_retrieved(c, 1.0) for c in first_by_file.values()][:max_results]
        logger.info(f"[Retriever] Comprehensive: {len(results)} of {len(first_by_file)} file(s)")
        return results

    def _specific_file(self, chunks: list[DocumentChunk], target: str) -> list[RetrievedChunk]:
        target = target.lower()
        matching = [c for c in chunks if target and target in c.file_name.lower()]
        matching.sort(key=lambda c: (c.file_name, c.chunk_index))
        limited = matching[: self.max_chunks_per_file]
        if limited:
            logger.info(
                f"[Retriever] Specific file {target!r}: {len(matching)} chunk(s), "
                f"using {len(limited)}"
            )
        return [_to_retrieved(c, 1.0) for c in limited]

    def _similarity(self, query: str, chunks: list[DocumentChunk], max_results: int) -> list[RetrievedChunk]:
        query_vec = self.embedder.embed_query(query)
        ranked = rank(query_vec, [(c, c.embedding) for c in chunks], top_k=max_results)
        if ranked:
            logger.info(
                f"[Retriever] Similarity: {len(ranked)} chunk(s) "
                f"(top score: {ranked[0].similarity:.4f})"
            )
        return [_to_retrieved(r.item, r.similarity) for r in ranked]
