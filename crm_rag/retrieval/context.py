"""
Context Assembler
------------------
Turns a set of retrieved chunks into a prompt-ready context block that fits
an approximate token budget.

Steps:
  1. Group chunks by file name; within a file, join chunk texts in
     chunk-index order so the document reads coherently.
  2. Order files by their mean chunk similarity (descending).
  3. Append files in full while they fit the budget.  The first file that
     does not fit is reduced to a head + tail sample, a truncation note is
     added, and every lower-ranked file is dropped.

Token counts are estimated through a TokenEstimator.  The default divides
the character count by four; TiktokenEstimator gives exact BPE counts.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol

from loguru import logger

from crm_rag.retrieval.classifier import QueryIntent

CONTEXT_HEADER = (
    "Based on your question, here are relevant documents from your knowledge base:\n\n"
)
CONTEXT_FOOTER = (
    "Please use this information to provide a comprehensive answer. If the documents "
    "don't contain relevant information, you can still provide a helpful response "
    "based on your general knowledge."
)
TRUNCATION_MARKER = "... [content truncated] ..."
TRUNCATION_NOTE = (
    "[Note: Large file content was truncated. Full analysis available for smaller files.]\n\n"
)

MAX_TOKENS = 2000
HEAD_CHARS = 500
TAIL_CHARS = 200


# --- Token estimation ---------------------------------------------------------

class TokenEstimator(Protocol):
    def estimate(self, text: str) -> float: ...


class CharTokenEstimator:
    """Roughly four characters per token."""

    def __init__(self, chars_per_token: float = 4.0) -> None:
        self.chars_per_token = chars_per_token

    def estimate(self, text: str) -> float:
        return len(text) / self.chars_per_token


class TiktokenEstimator:
    """Exact BPE token counts for OpenAI chat/embedding models."""

    def __init__(self, encoding: str = "cl100k_base") -> None:
        import tiktoken

        self._enc = tiktoken.get_encoding(encoding)

    def estimate(self, text: str) -> float:
        return float(len(self._enc.encode(text)))


def build_estimator(name: str) -> TokenEstimator:
    if name == "tiktoken":
        return TiktokenEstimator()
    if name == "chars":
        return CharTokenEstimator()
    raise ValueError(f"Unknown token estimator: {name!r}")


# --- Data classes -------------------------------------------------------------

@dataclass
class RetrievedChunk:
    """One chunk handed to the assembler by the retriever."""
    file_name: str
    file_type: str
    chunk_text: str
    similarity: float
    chunk_index: int = 0

    def to_dict(self) -> dict:
        return {
            "file_name": self.file_name,
            "file_type": self.file_type,
            "chunk_text": self.chunk_text,
            "similarity": round(self.similarity, 4),
            "chunk_index": self.chunk_index,
        }


@dataclass
class ContextResult:
    """Output of the assembler.  has_context=False means 'answer without documents'."""
    has_context: bool
    context_text: str
    document_count: int
    documents: list[RetrievedChunk] = field(default_factory=list)
    mode: Optional[QueryIntent] = None
    truncated: bool = False

    @classmethod
    def empty(cls, mode: Optional[QueryIntent] = None) -> "ContextResult":
        return cls(has_context=False, context_text="", document_count=0, mode=mode)

    def to_dict(self) -> dict:
        return {
            "has_relevant_documents": self.has_context,
            "context": self.context_text,
            "documents": [d.to_dict() for d in self.documents],
            "total_documents": self.document_count,
            "mode": self.mode.value if self.mode else None,
            "truncated": self.truncated,
        }


@dataclass
class _DocumentGroup:
    file_name: str
    file_type: str
    first_seen: int
    chunks: list[RetrievedChunk] = field(default_factory=list)

    @property
    def avg_similarity(self) -> float:
        return sum(c.similarity for c in self.chunks) / len(self.chunks)

    @property
    def text(self) -> str:
        ordered = sorted(self.chunks, key=lambda c: c.chunk_index)
        return " ".join(c.chunk_text for c in ordered)


# --- Assembler ----------------------------------------------------------------

class ContextAssembler:
    """
    Renders retrieved chunks into a bounded, numbered context block.

    Usage:
        assembler = ContextAssembler(max_tokens=2000)
        result = assembler.assemble(retrieved_chunks)
        if result.has_context:
            prompt += result.context_text
    """

    def __init__(
        self,
        max_tokens: int = MAX_TOKENS,
        estimator: Optional[TokenEstimator] = None,
        head_chars: int = HEAD_CHARS,
        tail_chars: int = TAIL_CHARS,
    ) -> None:
        self.max_tokens = max_tokens
        self.estimator = estimator or CharTokenEstimator()
        self.head_chars = head_chars
        self.tail_chars = tail_chars

    @classmethod
    def from_config(cls, cfg) -> "ContextAssembler":
        """Build from a ContextConfig section."""
        return cls(
            max_tokens=cfg.max_tokens,
            estimator=build_estimator(cfg.estimator),
            head_chars=cfg.head_chars,
            tail_chars=cfg.tail_chars,
        )

    def assemble(
        self,
        chunks: list[RetrievedChunk],
        mode: Optional[QueryIntent] = None,
    ) -> ContextResult:
        if not chunks:
            return ContextResult.empty(mode)

        groups = self._group(chunks)
        parts: list[str] = [CONTEXT_HEADER]
        used = 0.0
        included = 0
        truncated = False

        for n, group in enumerate(groups, start=1):
            content = group.text
            estimated = self.estimator.estimate(content)

            if used + estimated > self.max_tokens:
                truncated = True
                parts.append(self._entry(n, group, self._sample(content)))
                parts.append(TRUNCATION_NOTE)
                included += 1
                logger.debug(
                    f"[ContextAssembler] Truncated {group.file_name!r}; "
                    f"dropping {len(groups) - n} lower-ranked file(s)"
                )
                break

            parts.append(self._entry(n, group, content))
            included += 1
            used += estimated

        parts.append(CONTEXT_FOOTER)
        context = "".join(parts)

        logger.info(
            f"[ContextAssembler] {included}/{len(groups)} file(s) | "
            f"{len(chunks)} chunk(s) | ~{int(used)} tokens | truncated={truncated}"
        )
        return ContextResult(
            has_context=True,
            context_text=context,
            document_count=included,
            documents=list(chunks),
            mode=mode,
            truncated=truncated,
        )

    # --- Helpers ---------------------------------------------------------------

    @staticmethod
    def _group(chunks: list[RetrievedChunk]) -> list[_DocumentGroup]:
        groups: dict[str, _DocumentGroup] = {}
        for i, chunk in enumerate(chunks):
            group = groups.get(chunk.file_name)
            if group is None:
                group = _DocumentGroup(chunk.file_name, chunk.file_type, first_seen=i)
                groups[chunk.file_name] = group
            group.chunks.append(chunk)
        return sorted(groups.values(), key=lambda g: (-g.avg_similarity, g.first_seen))

    def _sample(self, content: str) -> str:
        if len(content) <= self.head_chars + self.tail_chars:
            return content
        head = content[: self.head_chars]
        tail = content[-self.tail_chars:] if self.tail_chars else ""
        return f"{head}{TRUNCATION_MARKER}{tail}"

    @staticmethod
    def _entry(n: int, group: _DocumentGroup, content: str) -> str:
        return (
            f"{n}. **{group.file_name}** "
            f"({group.file_type}, avg similarity: {group.avg_similarity:.3f})\n"
            f"Content: {content}\n\n"
        )
