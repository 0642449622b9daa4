from __future__ import annotations

"""Vector similarity helpers shared by the store and embedding service."""

import math
from typing import Sequence


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute cosine similarity; zero vectors and length mismatches score 0."""
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def top_k_similar(
    query: Sequence[float],
    candidates: Sequence[Sequence[float]],
    top_k: int,
) -> list[tuple[int, float]]:
    """Return (candidate index, score) pairs for the closest candidates."""
    if top_k <= 0:
        return []
    scored = [(idx, cosine_similarity(query, candidate)) for idx, candidate in enumerate(candidates)]
    scored.sort(key=lambda item: item[1], reverse=True)
    return scored[:top_k]
