"""Tests for the context assembler and token estimators."""

import pytest

from crm_rag.config import ContextConfig
from crm_rag.retrieval.classifier import QueryIntent
from crm_rag.retrieval.context import (
    CONTEXT_FOOTER,
    CONTEXT_HEADER,
    TRUNCATION_MARKER,
    TRUNCATION_NOTE,
    CharTokenEstimator,
    ContextAssembler,
    ContextResult,
    RetrievedChunk,
    build_estimator,
)


def chunk(file_name, text, similarity=0.5, index=0, file_type="pdf"):
    return RetrievedChunk(
        file_name=file_name, file_type=file_type, chunk_text=text,
        similarity=similarity, chunk_index=index,
    )


class TestAssembleBasics:
    def test_no_chunks_means_no_context(self):
        result = ContextAssembler().assemble([])
        assert result == ContextResult.empty()
        assert result.has_context is False
        assert result.context_text == ""
        assert result.document_count == 0

    def test_single_document_layout(self):
        result = ContextAssembler().assemble([chunk("report.pdf", "Quarterly revenue grew.", 0.8123)])
        assert result.has_context
        assert result.document_count == 1
        assert result.context_text == (
            CONTEXT_HEADER
            + "1. **report.pdf** (pdf, avg similarity: 0.812)\n"
            + "Content: Quarterly revenue grew.\n\n"
            + CONTEXT_FOOTER
        )

    def test_chunks_of_one_file_joined_in_index_order(self):
        result = ContextAssembler().assemble([
            chunk("a.pdf", "second", index=1),
            chunk("a.pdf", "first", index=0),
        ])
        assert "Content: first second\n" in result.context_text
        assert result.document_count == 1

    def test_groups_ordered_by_average_similarity(self):
        result = ContextAssembler().assemble([
            chunk("low.pdf", "low text", 0.2),
            chunk("high.pdf", "high text", 0.9),
            chunk("mid.pdf", "mid text a", 0.6),
            chunk("mid.pdf", "mid text b", 0.5, index=1),
        ])
        text = result.context_text
        assert text.index("1. **high.pdf**") < text.index("2. **mid.pdf**") < text.index("3. **low.pdf**")
        assert "avg similarity: 0.550" in text

    def test_equal_scores_keep_first_appearance(self):
        result = ContextAssembler().assemble([
            chunk("b.pdf", "bee", 1.0),
            chunk("a.pdf", "ay", 1.0),
        ])
        assert result.context_text.index("b.pdf") < result.context_text.index("a.pdf")

    def test_mode_and_documents_are_carried(self):
        chunks = [chunk("a.pdf", "text")]
        result = ContextAssembler().assemble(chunks, mode=QueryIntent.SIMILARITY)
        assert result.mode is QueryIntent.SIMILARITY
        assert result.documents == chunks

    def test_to_dict_keys(self):
        data = ContextAssembler().assemble([chunk("a.pdf", "text")]).to_dict()
        assert data["has_relevant_documents"] is True
        assert data["total_documents"] == 1
        assert data["documents"][0]["file_name"] == "a.pdf"
        assert data["truncated"] is False


class TestTokenBudget:
    def test_oversized_document_is_sampled_and_stops(self):
        big = "H" * 600 + "M" * 5000 + "T" * 300
        result = ContextAssembler(max_tokens=100).assemble([
            chunk("big.pdf", big, 0.9),
            chunk("next.pdf", "never included", 0.1),
        ])
        assert result.truncated
        assert result.document_count == 1
        assert "H" * 500 + TRUNCATION_MARKER + "T" * 200 in result.context_text
        assert TRUNCATION_NOTE in result.context_text
        assert "next.pdf" not in result.context_text

    def test_documents_after_budget_is_spent_are_dropped(self):
        result = ContextAssembler(max_tokens=30).assemble([
            chunk("fits.pdf", "x" * 80, 0.9),      # 20 tokens
            chunk("overflow.pdf", "y" * 80, 0.8),  # would make 40
            chunk("dropped.pdf", "z" * 8, 0.7),
        ])
        assert "fits.pdf" in result.context_text
        assert "overflow.pdf" in result.context_text
        assert "dropped.pdf" not in result.context_text
        # short overflowing content is kept whole, then the note closes the block
        assert "y" * 80 in result.context_text
        assert result.truncated
        assert result.document_count == 2

    def test_everything_fits_without_note(self):
        result = ContextAssembler(max_tokens=2000).assemble([
            chunk("a.pdf", "a" * 400, 0.9),
            chunk("b.pdf", "b" * 400, 0.8),
        ])
        assert not result.truncated
        assert TRUNCATION_NOTE not in result.context_text

    @pytest.mark.parametrize("budget", [10, 50, 200, 1000])
    def test_context_length_stays_near_budget(self, budget):
        chunks = [chunk(f"doc{i}.pdf", "w" * 3000, 1.0 - i / 10) for i in range(5)]
        result = ContextAssembler(max_tokens=budget).assemble(chunks)
        overhead = (
            len(CONTEXT_HEADER) + len(CONTEXT_FOOTER) + len(TRUNCATION_NOTE)
            + 500 + len(TRUNCATION_MARKER) + 200 + 5 * 80
        )
        assert len(result.context_text) <= 4 * budget + overhead

    def test_custom_estimator_is_used(self):
        class WordEstimator:
            def estimate(self, text):
                return len(text.split())

        result = ContextAssembler(max_tokens=3, estimator=WordEstimator()).assemble([
            chunk("a.pdf", "one two", 0.9),
            chunk("b.pdf", "three four", 0.8),
        ])
        assert result.truncated
        assert result.document_count == 2


class TestEstimators:
    def test_char_estimator_divides_by_four(self):
        assert CharTokenEstimator().estimate("x" * 40) == 10

    def test_build_estimator_rejects_unknown_names(self):
        with pytest.raises(ValueError):
            build_estimator("bytes")

    def test_from_config(self):
        assembler = ContextAssembler.from_config(ContextConfig(max_tokens=500, head_chars=10, tail_chars=5))
        assert assembler.max_tokens == 500
        assert isinstance(assembler.estimator, CharTokenEstimator)
        assert assembler._sample("a" * 10 + "b" * 100 + "c" * 5) == "a" * 10 + TRUNCATION_MARKER + "c" * 5

    def test_tiktoken_estimator_counts_tokens(self):
        pytest.importorskip("tiktoken")
        try:
            estimator = build_estimator("tiktoken")
        except Exception as exc:  # encoding download needs network
            pytest.skip(f"tiktoken encoding unavailable: {exc}")
        assert estimator.estimate("hello world") == 2
