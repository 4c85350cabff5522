"""
Contextual Generator
---------------------
Answers a chat message with an OpenAI chat model, grounded in the
ContextResult produced by DocumentContextService:

  has_context=True   DOCUMENT_SYSTEM_PROMPT with the assembled context
  has_context=False  GENERAL_SYSTEM_PROMPT (general-knowledge answer)

Per-session conversation history lives in an injected KeyValueStore, keyed
by session id, and is trimmed to the last `history_turns` messages.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from langsmith import traceable
from loguru import logger

from crm_rag.generation.prompts import DOCUMENT_SYSTEM_PROMPT, GENERAL_SYSTEM_PROMPT
from crm_rag.retrieval.context import ContextResult
from crm_rag.storage.stores import InMemoryKeyValueStore, KeyValueStore
from crm_rag.utils.helpers import truncate_text


# ---------------------------------------------------------------------------
# Model pricing table  (input_$/M, output_$/M)
# ---------------------------------------------------------------------------

_MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o-mini": (0.150, 0.600),
    "gpt-4o":      (2.500, 10.000),
}


def _cost_usd(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    rates = _MODEL_PRICING.get(model, (0.150, 0.600))
    return (prompt_tokens * rates[0] + completion_tokens * rates[1]) / 1_000_000


@dataclass
class GeneratedAnswer:
    """Result of a single generation call."""

    answer: str
    model: str
    used_documents: bool
    document_count: int = 0
    truncated: bool = False
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    @property
    def estimated_cost_usd(self) -> float:
        return _cost_usd(self.model, self.prompt_tokens, self.completion_tokens)

    def to_dict(self) -> dict:
        return {
            "answer": self.answer,
            "model": self.model,
            "used_documents": self.used_documents,
            "document_count": self.document_count,
            "truncated": self.truncated,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
        }


def _history_key(session_id: str) -> str:
    return f"chat_history:{session_id}"


class ContextualGenerator:
    """
    Usage:
        generator = ContextualGenerator(history_store=InMemoryKeyValueStore())
        context = context_service.create_context(query, team_id)
        answer = generator.generate(query, context, session_id="abc")
    """

    def __init__(
        self,
        client=None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout: float = 60.0,
        history_turns: int = 6,
        history_store: Optional[KeyValueStore] = None,
    ) -> None:
        if client is None:
            from openai import OpenAI  # lazy import keeps import graph clean
            client = OpenAI()
        self._client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.history_turns = history_turns
        self.history_store = history_store if history_store is not None else InMemoryKeyValueStore()

    @classmethod
    def from_config(cls, cfg, client=None, history_store: Optional[KeyValueStore] = None) -> "ContextualGenerator":
        """Build from a GenerationConfig section."""
        return cls(
            client=client,
            model=cfg.model,
            temperature=cfg.temperature,
            max_tokens=cfg.max_tokens,
            timeout=cfg.timeout_seconds,
            history_turns=cfg.history_turns,
            history_store=history_store,
        )

    # --- History ----------------------------------------------------------------

    def get_history(self, session_id: str) -> list[dict]:
        return list(self.history_store.get(_history_key(session_id), []))

    def clear_history(self, session_id: str) -> None:
        self.history_store.delete(_history_key(session_id))

    def _remember(self, session_id: str, query: str, answer: str) -> None:
        history = self.get_history(session_id)
        history.extend([
            {"role": "user", "content": query},
            {"role": "assistant", "content": answer},
        ])
        self.history_store.set(_history_key(session_id), history[-self.history_turns:])

    # --- Generation -------------------------------------------------------------

    def build_messages(
        self,
        query: str,
        context: ContextResult,
        session_id: Optional[str] = None,
    ) -> list[dict]:
        if context.has_context:
            system_message = DOCUMENT_SYSTEM_PROMPT.format(context=context.context_text)
        else:
            system_message = GENERAL_SYSTEM_PROMPT

        messages = [{"role": "system", "content": system_message}]
        if session_id:
            messages.extend(self.get_history(session_id)[-self.history_turns:])
        messages.append({"role": "user", "content": query})
        return messages

    @traceable(name="generate_answer", run_type="llm")
    def generate(
        self,
        query: str,
        context: ContextResult,
        session_id: Optional[str] = None,
    ) -> GeneratedAnswer:
        messages = self.build_messages(query, context, session_id)

        logger.debug(
            f"[Generator] {self.model} | docs={context.document_count} | "
            f"history={len(messages) - 2} | query={truncate_text(query, 60)!r}"
        )

        response = self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            timeout=self.timeout,
        )

        answer = response.choices[0].message.content or ""
        usage = response.usage
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0

        logger.info(
            f"[Generator] Done | prompt={prompt_tokens} completion={completion_tokens} | "
            f"cost=${_cost_usd(self.model, prompt_tokens, completion_tokens):.5f}"
        )

        if session_id:
            self._remember(session_id, query, answer)

        return GeneratedAnswer(
            answer=answer,
            model=self.model,
            used_documents=context.has_context,
            document_count=context.document_count,
            truncated=context.truncated,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
