"""
Document, record and key-value stores.

The retrieval and query services never reach for a global client: they are
handed a store at construction time.  In-memory implementations back tests
and the CLI; JsonDocumentStore persists the corpus between runs.

Isolation and atomicity:
  - Every read is keyed by team_id; one team never sees another's data.
  - replace_document() swaps a document's whole chunk set under a lock, and
    readers receive snapshot lists, so a query never observes a
    half-ingested document.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from crm_rag.chunking.schemas import DocumentChunk, ProcessedDocument
from crm_rag.errors import StoreError
from crm_rag.schemas import Record, RecordType
from crm_rag.utils.helpers import load_json, save_json


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

class DocumentStore(ABC):
    """Read/replace access to a team's ingested documents and chunks."""

    @abstractmethod
    def get_team_chunks(self, team_id: str) -> list[DocumentChunk]:
        ...

    @abstractmethod
    def get_team_documents(self, team_id: str) -> list[ProcessedDocument]:
        ...

    @abstractmethod
    def replace_document(self, document: ProcessedDocument) -> None:
        """Insert a document, atomically replacing any earlier version and its chunks."""
        ...

    @abstractmethod
    def delete_document(self, team_id: str, document_id: str) -> bool:
        """Remove a document and its chunks. Returns False if it did not exist."""
        ...


class RecordStore(ABC):
    """Read-only access to a team's CRM records."""

    @abstractmethod
    def get_records_by_team(self, team_id: str, record_type: RecordType) -> list[Record]:
        ...


class KeyValueStore(ABC):
    """Small key-value abstraction for per-session state."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------

class InMemoryDocumentStore(DocumentStore):

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # team_id -> document_id -> ProcessedDocument
        self._documents: dict[str, dict[str, ProcessedDocument]] = {}

    def get_team_chunks(self, team_id: str) -> list[DocumentChunk]:
        with self._lock:
            docs = list(self._documents.get(team_id, {}).values())
        return [chunk for doc in docs for chunk in doc.chunks]

    def get_team_documents(self, team_id: str) -> list[ProcessedDocument]:
        with self._lock:
            docs = list(self._documents.get(team_id, {}).values())
        return sorted(docs, key=lambda d: d.last_modified, reverse=True)

    def replace_document(self, document: ProcessedDocument) -> None:
        with self._lock:
            team_docs = self._documents.setdefault(document.team_id, {})
            replaced = document.id in team_docs
            team_docs[document.id] = document
        logger.debug(
            f"[DocumentStore] {'Replaced' if replaced else 'Stored'} {document.file_name!r} "
            f"({document.chunk_count} chunks) for team {document.team_id}"
        )

    def delete_document(self, team_id: str, document_id: str) -> bool:
        with self._lock:
            removed = self._documents.get(team_id, {}).pop(document_id, None)
        return removed is not None


class JsonDocumentStore(InMemoryDocumentStore):
    """InMemoryDocumentStore that mirrors its contents to a JSON file."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._load()

    def replace_document(self, document: ProcessedDocument) -> None:
        super().replace_document(document)
        self._flush()

    def delete_document(self, team_id: str, document_id: str) -> bool:
        removed = super().delete_document(team_id, document_id)
        if removed:
            self._flush()
        return removed

    def _load(self) -> None:
        try:
            raw = load_json(self.path)
            docs = [ProcessedDocument.model_validate(d) for d in raw.get("documents", [])]
        except (OSError, ValueError, ValidationError) as exc:
            raise StoreError(f"Cannot load document store {self.path}: {exc}") from exc
        with self._lock:
            for doc in docs:
                self._documents.setdefault(doc.team_id, {})[doc.id] = doc
        logger.info(f"[DocumentStore] Loaded {len(docs)} documents from {self.path}")

    def _flush(self) -> None:
        with self._lock:
            docs = [d for team in self._documents.values() for d in team.values()]
            payload = {"documents": [d.model_dump(mode="json") for d in docs]}
        try:
            save_json(payload, self.path)
        except OSError as exc:
            raise StoreError(f"Cannot write document store {self.path}: {exc}") from exc


_RECORD_LIST = TypeAdapter(list[Record])


class InMemoryRecordStore(RecordStore):

    def __init__(self, records: Optional[list[Record]] = None) -> None:
        self._records: list[Record] = list(records or [])

    @classmethod
    def from_json(cls, path: str | Path, team_id: Optional[str] = None) -> "InMemoryRecordStore":
        """
        Load a CRM export: either a flat list of records, or an object with
        "contacts"/"accounts"/"deals"/"activities" lists.  Records without a
        team_id are assigned `team_id` when given.
        """
        try:
            raw = load_json(path)
        except (OSError, ValueError) as exc:
            raise StoreError(f"Cannot read CRM export {path}: {exc}") from exc

        if isinstance(raw, dict):
            items = []
            for rtype in RecordType:
                for item in raw.get(rtype.value, []):
                    items.append({"record_type": rtype.value, **item})
        else:
            items = list(raw)

        if team_id:
            items = [{**item, "team_id": item.get("team_id") or team_id} for item in items]

        try:
            records = _RECORD_LIST.validate_python(items)
        except ValidationError as exc:
            raise StoreError(f"Invalid CRM export {path}: {exc}") from exc

        logger.info(f"[RecordStore] Loaded {len(records)} records from {path}")
        return cls(records)

    def add(self, record: Record) -> None:
        self._records.append(record)

    def get_records_by_team(self, team_id: str, record_type: RecordType) -> list[Record]:
        return [
            r for r in self._records
            if r.team_id == team_id and r.record_type == record_type.value
        ]


class InMemoryKeyValueStore(KeyValueStore):

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)
