"""
CRM Assistant Pipeline
-----------------------
Wires every component from one AppConfig and exposes the two chat paths:

    document question                       structured CRM question
        |                                          |
        v                                          v
    DocumentContextService.create_context    CRMQueryService
        |                                    .handle_database_query
        v                                          |
    ContextualGenerator.generate                   v
        |                                     QueryResponse
        v
    AssistantResult (answer + context metadata + timings)

Stores, the OpenAI client and the session history store are injectable so
the same wiring runs against in-memory fakes in tests.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from langsmith import traceable
from loguru import logger

from crm_rag.chunking.chunker import TextChunker
from crm_rag.config import AppConfig
from crm_rag.embedding.embedder import Embedder
from crm_rag.embedding.pipeline import DocumentIngestor
from crm_rag.generation.generator import ContextualGenerator, GeneratedAnswer
from crm_rag.query.service import CRMQueryService
from crm_rag.retrieval.classifier import QueryClassifier
from crm_rag.retrieval.context import ContextAssembler, ContextResult
from crm_rag.retrieval.retriever import DocumentRetriever
from crm_rag.serving.context_service import DocumentContextService
from crm_rag.storage.stores import (
    DocumentStore,
    InMemoryKeyValueStore,
    InMemoryRecordStore,
    JsonDocumentStore,
    KeyValueStore,
    RecordStore,
)


@dataclass
class AssistantResult:
    """Full output of one document-grounded chat turn.  Timings in ms."""

    query: str
    answer: GeneratedAnswer
    context: ContextResult
    retrieval_ms: float = 0.0
    generation_ms: float = 0.0

    @property
    def total_ms(self) -> float:
        return self.retrieval_ms + self.generation_ms

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            **self.answer.to_dict(),
            "context": self.context.to_dict(),
            "latency_ms": {
                "retrieval": round(self.retrieval_ms, 1),
                "generation": round(self.generation_ms, 1),
                "total": round(self.total_ms, 1),
            },
            "estimated_cost_usd": round(self.answer.estimated_cost_usd, 6),
        }


class CRMAssistant:
    """
    Usage:
        assistant = CRMAssistant(load_config())
        assistant.ingestor.ingest(team_id="t1", document_id="d1", ...)
        result = assistant.ask("what's in money.xlsx", team_id="t1")
        reply = assistant.crm_query("show contacts at Acme", team_id="t1")
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        document_store: Optional[DocumentStore] = None,
        record_store: Optional[RecordStore] = None,
        openai_client=None,
        history_store: Optional[KeyValueStore] = None,
        embedder: Optional[Embedder] = None,
        generator: Optional[ContextualGenerator] = None,
    ) -> None:
        self.config = cfg = config or AppConfig()

        if document_store is None:
            document_store = JsonDocumentStore(cfg.storage.documents_file)
        if record_store is None:
            records_path = Path(cfg.storage.records_file)
            record_store = (
                InMemoryRecordStore.from_json(records_path)
                if records_path.exists()
                else InMemoryRecordStore()
            )
        self.document_store = document_store
        self.record_store = record_store

        self.embedder = embedder or Embedder.from_config(cfg.embedding, client=openai_client)
        self.chunker = TextChunker.from_config(cfg.chunking)
        self.ingestor = DocumentIngestor(self.chunker, self.embedder, document_store)

        self.retriever = DocumentRetriever(
            store=document_store,
            embedder=self.embedder,
            classifier=QueryClassifier.from_config(cfg.classifier),
            max_chunks_per_file=cfg.retrieval.max_chunks_per_file,
        )
        self.context_service = DocumentContextService(
            store=document_store,
            retriever=self.retriever,
            assembler=ContextAssembler.from_config(cfg.context),
            max_results=cfg.retrieval.max_results,
        )
        self.query_service = CRMQueryService.from_config(record_store, cfg.query)
        self._generator = generator
        self._openai_client = openai_client
        self._history_store = history_store or InMemoryKeyValueStore()

        logger.info(
            f"[CRMAssistant] Ready | embed={cfg.embedding.model} | "
            f"chat={cfg.generation.model} | budget={cfg.context.max_tokens} tokens"
        )

    @property
    def generator(self) -> ContextualGenerator:
        # Built on first use so retrieval-only callers never need a chat client.
        if self._generator is None:
            self._generator = ContextualGenerator.from_config(
                self.config.generation,
                client=self._openai_client,
                history_store=self._history_store,
            )
        return self._generator

    def create_context(self, query: str, team_id: str, max_results: Optional[int] = None) -> ContextResult:
        return self.context_service.create_context(query, team_id, max_results)

    def crm_query(self, message: str, team_id: str):
        return self.query_service.handle_database_query(message, team_id)

    @traceable(name="crm_assistant_ask", run_type="chain")
    def ask(self, query: str, team_id: str, session_id: Optional[str] = None) -> AssistantResult:
        """Retrieve document context for `query` and generate a grounded answer."""
        t0 = time.perf_counter()
        context = self.context_service.create_context(query, team_id)
        retrieval_ms = (time.perf_counter() - t0) * 1000

        t1 = time.perf_counter()
        answer = self.generator.generate(query, context, session_id=session_id)
        generation_ms = (time.perf_counter() - t1) * 1000

        logger.info(
            f"[CRMAssistant] Complete | docs={context.document_count} | "
            f"retrieve={retrieval_ms:.0f}ms generate={generation_ms:.0f}ms | "
            f"tokens={answer.total_tokens}"
        )
        return AssistantResult(
            query=query,
            answer=answer,
            context=context,
            retrieval_ms=retrieval_ms,
            generation_ms=generation_ms,
        )
