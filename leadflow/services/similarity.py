"""Vector math over embedding vectors."""

import math
from typing import Callable, Iterable, Optional, Sequence, Tuple, TypeVar

K = TypeVar("K")


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    return math.fsum(x * y for x, y in zip(a, b))


def norm(v: Sequence[float]) -> float:
    return math.sqrt(math.fsum(x * x for x in v))


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """dot(a, b) / (|a| * |b|).

    Returns 0.0 for empty, missing or mismatched-length vectors, zero vectors,
    and non-finite results. Clamped to [-1, 1] against rounding drift.
    """
    if not a or not b or len(a) != len(b):
        return 0.0
    denominator = norm(a) * norm(b)
    if not denominator or not math.isfinite(denominator):
        return 0.0
    score = dot(a, b) / denominator
    if not math.isfinite(score):
        return 0.0
    return max(-1.0, min(1.0, score))


def best_match(
    query: Sequence[float],
    candidates: Iterable[Tuple[K, Optional[Sequence[float]]]],
    score_fn: Callable[[Sequence[float], Sequence[float]], float] = cosine_similarity,
) -> Tuple[Optional[K], float]:
    """Return (key, score) of the most similar candidate.

    Candidates are scanned in the given order and only a strictly greater score
    replaces the current best, so on ties the first one seen wins. Candidates
    without a vector are skipped. (None, -1.0) when nothing was scored.
    """
    best_key: Optional[K] = None
    best_score = -1.0
    for key, vector in candidates:
        if not vector:
            continue
        score = score_fn(query, vector)
        if best_key is None or score > best_score:
            best_key = key
            best_score = score
    return best_key, best_score
