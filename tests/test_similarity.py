"""Tests for cosine similarity and ranking."""

import math
import random

import pytest

from crm_rag.errors import DimensionMismatchError
from crm_rag.retrieval.similarity import cosine_similarity, rank


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 5.0]) == pytest.approx(0.0)

    def test_zero_vector_gives_exactly_zero(self):
        assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
        assert cosine_similarity([1.0, 2.0, 3.0], [0.0, 0.0, 0.0]) == 0.0

    def test_scale_invariant(self):
        assert cosine_similarity([1.0, 2.0], [10.0, 20.0]) == pytest.approx(1.0)

    def test_length_mismatch_raises(self):
        with pytest.raises(DimensionMismatchError):
            cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])

    def test_dimension_mismatch_is_a_value_error(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 2.0])

    def test_bounds_hold_for_random_vectors(self):
        rng = random.Random(7)
        for _ in range(200):
            a = [rng.uniform(-1e6, 1e6) for _ in range(16)]
            b = [rng.uniform(-1e-6, 1e-6) for _ in range(16)]
            score = cosine_similarity(a, b)
            assert -1.0 <= score <= 1.0
            assert not math.isnan(score)


class TestRank:
    CORPUS = [
        ("east", [1.0, 0.0]),
        ("north", [0.0, 1.0]),
        ("north-east", [1.0, 1.0]),
        ("west", [-1.0, 0.0]),
    ]

    def test_sorted_by_descending_similarity(self):
        results = rank([1.0, 0.2], self.CORPUS, top_k=4)
        scores = [r.similarity for r in results]
        assert scores == sorted(scores, reverse=True)
        assert results[0].item == "east"
        assert results[-1].item == "west"

    def test_ranks_are_one_based(self):
        results = rank([1.0, 0.0], self.CORPUS, top_k=3)
        assert [r.rank for r in results] == [1, 2, 3]

    def test_top_k_limits_output(self):
        assert len(rank([1.0, 0.0], self.CORPUS, top_k=2)) == 2
        assert len(rank([1.0, 0.0], self.CORPUS, top_k=10)) == len(self.CORPUS)

    def test_non_positive_top_k_returns_empty(self):
        assert rank([1.0, 0.0], self.CORPUS, top_k=0) == []
        assert rank([1.0, 0.0], self.CORPUS, top_k=-3) == []

    def test_empty_corpus_returns_empty(self):
        assert rank([1.0, 0.0], [], top_k=5) == []

    def test_ties_keep_corpus_order(self):
        corpus = [("first", [1.0, 0.0]), ("second", [2.0, 0.0]), ("third", [3.0, 0.0])]
        results = rank([1.0, 0.0], corpus, top_k=3)
        assert [r.item for r in results] == ["first", "second", "third"]

    def test_repeated_calls_are_identical(self):
        rng = random.Random(3)
        corpus = [(i, [rng.uniform(-1, 1) for _ in range(8)]) for i in range(50)]
        query = [rng.uniform(-1, 1) for _ in range(8)]
        assert rank(query, corpus, 10) == rank(query, corpus, 10)

    def test_zero_query_vector_scores_zero(self):
        results = rank([0.0, 0.0], self.CORPUS, top_k=4)
        assert all(r.similarity == 0.0 for r in results)

    def test_mismatched_corpus_vector_raises(self):
        with pytest.raises(DimensionMismatchError):
            rank([1.0, 0.0], [("bad", [1.0, 0.0, 0.0])], top_k=1)
