"""
Document schemas - the units that get chunked, embedded and stored.

A DocumentChunk carries its parent document's file metadata so a retrieved
chunk can be attributed to its source without a second lookup.
"""
from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field, computed_field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentChunk(BaseModel):
    """A contiguous slice of a source document plus its embedding."""

    # Identity
    id: str                              # "{document_id}_chunk_{chunk_index}"
    document_id: str
    team_id: str

    # Content
    text: str
    embedding: list[float] = Field(default_factory=list)

    # Provenance
    file_name: str
    file_type: str
    folder_path: str = ""
    chunk_index: int                     # 0-based position within the source
    total_chunks: int
    last_modified: datetime = Field(default_factory=_utcnow)

    model_config = {"frozen": True}


class ProcessedDocument(BaseModel):
    """A source file after ingestion: its content, metadata and chunks."""

    id: str
    team_id: str
    file_name: str
    file_type: str
    folder_path: str = ""
    content: str
    chunks: list[DocumentChunk] = Field(default_factory=list)
    last_modified: datetime = Field(default_factory=_utcnow)

    @computed_field
    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    @computed_field
    @property
    def embedding_count(self) -> int:
        return sum(1 for c in self.chunks if c.embedding)
