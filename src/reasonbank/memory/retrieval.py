"""Similarity helpers and the brute-force search path.

Brute force is the fallback whenever no accelerated index is wired, the
index raises, or the index is known to be missing points. It scans the
long-term tier before the short-term tier so that, with a stable sort,
equal similarities resolve in favour of promoted patterns.

Scores are computed with numpy: rows are normalised once and compared with
a single matrix product instead of Python loops.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import numpy as np

from .models import Pattern, SearchHit


def _normalized_matrix(vectors: Sequence[Sequence[float]], dimensions: int) -> np.ndarray:
    """Stack ``vectors`` into an (n x d) matrix of unit rows.

    Rows with the wrong dimension or zero norm become zero rows, which score
    0.0 against everything.
    """
    matrix = np.zeros((len(vectors), dimensions), dtype=np.float64)
    for row, vector in enumerate(vectors):
        if len(vector) == dimensions:
            matrix[row] = vector
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms = np.where(norms == 0, 1, norms)
    return matrix / norms


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors."""
    if len(vec_a) != len(vec_b) or not vec_a:
        return 0.0
    normalized = _normalized_matrix([vec_a, vec_b], len(vec_a))
    return float(normalized[0] @ normalized[1])


def brute_force_search(
    query: Sequence[float],
    tiers: Iterable[Iterable[Pattern]],
    k: int,
) -> list[SearchHit]:
    """Score every pattern against ``query`` and return the top ``k``.

    ``tiers`` is scanned in the order given.
    """
    patterns = [pattern for tier in tiers for pattern in tier]
    if not patterns:
        return []

    dimensions = len(query)
    normalized = _normalized_matrix([pattern.embedding for pattern in patterns], dimensions)
    query_row = _normalized_matrix([query], dimensions)[0]
    scores = normalized @ query_row

    # Stable, so earlier tiers win ties
    order = np.argsort(-scores, kind="stable")[:k]
    return [SearchHit(pattern=patterns[i], similarity=float(scores[i])) for i in order]


def duplicate_pairs(
    patterns: Sequence[Pattern], threshold: float
) -> Iterable[tuple[Pattern, Pattern]]:
    """Yield each pair of patterns whose similarity exceeds ``threshold``.

    The full similarity matrix is computed up front; pairs come out in
    (i, j) order with i < j, so callers may drop patterns between yields.
    """
    if len(patterns) < 2:
        return
    dimensions = len(patterns[0].embedding)
    normalized = _normalized_matrix([pattern.embedding for pattern in patterns], dimensions)
    similarity_matrix = normalized @ normalized.T

    rows, cols = np.nonzero(np.triu(similarity_matrix > threshold, k=1))
    for i, j in zip(rows.tolist(), cols.tolist(), strict=True):
        yield patterns[i], patterns[j]


__all__ = ["brute_force_search", "cosine_similarity", "duplicate_pairs"]
