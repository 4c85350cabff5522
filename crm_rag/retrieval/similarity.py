"""
Cosine Similarity Ranking
--------------------------
Pure functions: no I/O, no randomness.  Given a query vector and a corpus of
(chunk, vector) pairs, return the top-k chunks by cosine similarity.

Ties keep corpus order (stable sort), so repeated calls on the same input
always produce the same ranking.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

import numpy as np

from crm_rag.errors import DimensionMismatchError

T = TypeVar("T")


@dataclass(frozen=True)
class SimilarityResult(Generic[T]):
    """A corpus item paired with its cosine similarity and 1-based rank."""
    item: T
    similarity: float
    rank: int


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|), or 0.0 when either vector has zero magnitude.

    Raises:
        DimensionMismatchError: if the vectors differ in length.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(va.size, vb.size)

    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))


def rank(
    query_vector: Sequence[float],
    corpus: Sequence[tuple[T, Sequence[float]]],
    top_k: int,
) -> list[SimilarityResult[T]]:
    """
    Rank corpus items by cosine similarity to query_vector.

    Returns min(top_k, len(corpus)) results sorted by descending similarity.

    Raises:
        DimensionMismatchError: if any corpus vector differs in length from
            the query vector.
    """
    if top_k <= 0 or not corpus:
        return []

    scored = [(item, cosine_similarity(query_vector, vec)) for item, vec in corpus]
    # sorted() is stable: equal scores keep corpus order
    scored = sorted(scored, key=lambda pair: pair[1], reverse=True)[:top_k]
    return [
        SimilarityResult(item=item, similarity=score, rank=i)
        for i, (item, score) in enumerate(scored, start=1)
    ]
