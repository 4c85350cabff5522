"""
OpenAI Embedding Client
------------------------
Wraps the OpenAI embeddings API with:
  - Batching (one request per batch, order preserved)
  - Retry with exponential backoff via tenacity (transient errors only)
  - A per-request timeout, surfaced as EmbeddingTimeoutError
  - Token usage logging

Failures are never papered over with zero vectors: the caller decides
whether to abort ingestion or degrade a query to a no-context answer.
"""
from __future__ import annotations

import time
from typing import Optional

import openai
from langsmith import traceable
from loguru import logger
from openai import OpenAI
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from crm_rag.errors import DimensionMismatchError, EmbeddingServiceError, EmbeddingTimeoutError

MODEL = "text-embedding-3-small"
DIMENSIONS = 1536          # text-embedding-3-small native dimensions
BATCH_SIZE = 512           # OpenAI allows up to 2048; 512 keeps requests < 1 MB
TIMEOUT_SECONDS = 30.0
MAX_ATTEMPTS = 3

_TRANSIENT_ERRORS = (
    openai.APIConnectionError,       # includes APITimeoutError
    openai.RateLimitError,
    openai.InternalServerError,
)


class Embedder:
    """
    Converts text into fixed-length float vectors.

    The OpenAI client can be injected (tests pass a stub); otherwise one is
    built from OPENAI_API_KEY.
    """

    def __init__(
        self,
        model: str = MODEL,
        dimensions: int = DIMENSIONS,
        batch_size: int = BATCH_SIZE,
        timeout: float = TIMEOUT_SECONDS,
        max_attempts: int = MAX_ATTEMPTS,
        client: Optional[OpenAI] = None,
        wait_multiplier: float = 1.0,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.wait_multiplier = wait_multiplier
        self._client = client if client is not None else OpenAI(timeout=timeout)
        self.total_tokens_used: int = 0
        self.total_api_calls: int = 0

    @classmethod
    def from_config(cls, cfg, client: Optional[OpenAI] = None) -> "Embedder":
        """Build from an EmbeddingConfig section."""
        return cls(
            model=cfg.model,
            dimensions=cfg.dimensions,
            batch_size=cfg.batch_size,
            timeout=cfg.timeout_seconds,
            max_attempts=cfg.max_attempts,
            client=client,
        )

    @traceable(name="embed_texts", run_type="embedding")
    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """
        Embed a list of strings, one vector per input, in input order.

        Raises:
            EmbeddingServiceError: the API call failed after retries.
            EmbeddingTimeoutError: the API call timed out after retries.
            DimensionMismatchError: a returned vector is not `dimensions`
                long.
        """
        if not texts:
            return []

        vectors: list[list[float]] = []
        for i in range(0, len(texts), self.batch_size):
            batch = texts[i: i + self.batch_size]
            embeddings, tokens = self._embed_with_retry(batch)
            vectors.extend(embeddings)
            self.total_tokens_used += tokens
            self.total_api_calls += 1

            logger.debug(
                f"[Embedder] Batch {i // self.batch_size + 1} | "
                f"{len(batch)} texts | {tokens} tokens | "
                f"Running total: {self.total_tokens_used} tokens"
            )

        if len(vectors) != len(texts):
            raise EmbeddingServiceError(
                f"Provider returned {len(vectors)} vectors for {len(texts)} inputs"
            )
        for vec in vectors:
            if len(vec) != self.dimensions:
                raise DimensionMismatchError(self.dimensions, len(vec))
        return vectors

    def embed_query(self, text: str) -> list[float]:
        """Embed a single query string."""
        return self.embed_texts([text])[0]

    def _embed_with_retry(self, texts: list[str]) -> tuple[list[list[float]], int]:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.wait_multiplier, min=0, max=30),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            reraise=False,
            before_sleep=lambda rs: logger.warning(
                f"[Embedder] Attempt {rs.attempt_number} failed: "
                f"{rs.outcome.exception()!r} - retrying"
            ),
        )
        try:
            return retrying(self._embed_batch, texts)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            if isinstance(last, openai.APITimeoutError):
                raise EmbeddingTimeoutError(
                    f"Embedding request timed out after {self.max_attempts} attempts"
                ) from last
            raise EmbeddingServiceError(
                f"Embedding request failed after {self.max_attempts} attempts: {last}"
            ) from last
        except openai.OpenAIError as exc:
            raise EmbeddingServiceError(f"Embedding request rejected: {exc}") from exc

    def _embed_batch(self, texts: list[str]) -> tuple[list[list[float]], int]:
        """Call the OpenAI Embeddings API for a single batch."""
        # Replace empty strings with a space to avoid API errors
        safe_texts = [t if t.strip() else " " for t in texts]
        start = time.perf_counter()
        params = {}
        if self.model.startswith("text-embedding-3"):
            # only the v3 models accept a shortened output width
            params["dimensions"] = self.dimensions
        response = self._client.embeddings.create(
            model=self.model,
            input=safe_texts,
            encoding_format="float",
            timeout=self.timeout,
            **params,
        )
        elapsed = time.perf_counter() - start

        embeddings = [item.embedding for item in sorted(response.data, key=lambda x: x.index)]
        tokens_used = response.usage.total_tokens if response.usage else 0
        logger.debug(f"[Embedder] API call: {len(texts)} texts, {tokens_used} tokens, {elapsed:.2f}s")
        return embeddings, tokens_used

    def usage_summary(self) -> dict:
        return {
            "model": self.model,
            "total_api_calls": self.total_api_calls,
            "total_tokens_used": self.total_tokens_used,
            # text-embedding-3-small: $0.020 per million tokens
            "estimated_cost_usd": round(self.total_tokens_used / 1_000_000 * 0.020, 6),
        }
