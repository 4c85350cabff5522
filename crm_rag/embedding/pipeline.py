"""
Document Ingestion - Chunk, Embed, Store
------------------------------------------
Turns an uploaded or connected file's extracted text into a
ProcessedDocument and hands it to the DocumentStore:

    text -> clean -> TextChunker -> Embedder (one batched call)
         -> DocumentChunk[] -> ProcessedDocument -> store.replace_document()

Re-ingesting the same document id replaces the previous chunk set as a
whole.  An embedding failure aborts the ingestion and propagates: a
document is never stored with missing or placeholder vectors.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from crm_rag.chunking.chunker import TextChunker
from crm_rag.chunking.schemas import DocumentChunk, ProcessedDocument
from crm_rag.embedding.embedder import Embedder
from crm_rag.errors import DimensionMismatchError
from crm_rag.storage.stores import DocumentStore
from crm_rag.utils.helpers import clean_text

MIN_DOCUMENT_CHARS = 50


class DocumentTooShortError(ValueError):
    """Extracted text is too short to produce a single chunk."""


class DocumentIngestor:
    """
    Usage:
        ingestor = DocumentIngestor(chunker, embedder, store)
        doc = ingestor.ingest(team_id="t1", document_id="file-123",
                              file_name="money.xlsx", file_type="xlsx",
                              content=extracted_text)
    """

    def __init__(
        self,
        chunker: TextChunker,
        embedder: Embedder,
        store: Optional[DocumentStore] = None,
    ) -> None:
        self.chunker = chunker
        self.embedder = embedder
        self.store = store

    def process_document(
        self,
        team_id: str,
        document_id: str,
        file_name: str,
        file_type: str,
        content: str,
        folder_path: str = "",
        last_modified: Optional[datetime] = None,
    ) -> ProcessedDocument:
        """
        Chunk and embed a document without storing it.

        Raises:
            DocumentTooShortError: the text yields no chunk.
            EmbeddingServiceError: the embedding call failed.
        """
        last_modified = last_modified or datetime.now(timezone.utc)
        text = clean_text(content)
        logger.info(f"[Ingest] Processing {file_name!r} ({len(text)} characters)")

        if len(text) < MIN_DOCUMENT_CHARS:
            raise DocumentTooShortError(
                f"{file_name!r} has {len(text)} characters; at least {MIN_DOCUMENT_CHARS} required"
            )

        texts = self.chunker.split(text)
        if not texts:
            raise DocumentTooShortError(f"{file_name!r} produced no chunks")

        vectors = self.embedder.embed_texts(texts)
        logger.debug(f"[Ingest] {file_name!r}: {len(texts)} chunks, {len(vectors)} embeddings")

        chunks = [
            DocumentChunk(
                id=f"{document_id}_chunk_{i}",
                document_id=document_id,
                team_id=team_id,
                text=chunk_text,
                embedding=vector,
                file_name=file_name,
                file_type=file_type,
                folder_path=folder_path,
                chunk_index=i,
                total_chunks=len(texts),
                last_modified=last_modified,
            )
            for i, (chunk_text, vector) in enumerate(zip(texts, vectors))
        ]

        return ProcessedDocument(
            id=document_id,
            team_id=team_id,
            file_name=file_name,
            file_type=file_type,
            folder_path=folder_path,
            content=text,
            chunks=chunks,
            last_modified=last_modified,
        )

    def ingest(self, **kwargs) -> ProcessedDocument:
        """process_document() and then atomically replace it in the store."""
        if self.store is None:
            raise RuntimeError("DocumentIngestor has no store; use process_document()")
        document = self.process_document(**kwargs)

        existing = next(
            (c for c in self.store.get_team_chunks(document.team_id)
             if c.document_id != document.id and c.embedding),
            None,
        )
        if existing is not None and document.chunks:
            new_dim = len(document.chunks[0].embedding)
            if len(existing.embedding) != new_dim:
                raise DimensionMismatchError(len(existing.embedding), new_dim)

        self.store.replace_document(document)
        logger.info(
            f"[Ingest] Stored {document.file_name!r} | {document.chunk_count} chunks | "
            f"team={document.team_id}"
        )
        return document
