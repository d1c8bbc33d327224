"""Vector similarity over fixed-length embeddings."""

from __future__ import annotations

import math
from collections.abc import Sequence


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Returns a value between -1 and 1, where 1 means identical direction.
    A zero-magnitude vector on either side yields 0.0 so that no NaN can
    reach a ranking.

    Raises:
        ValueError: If the vectors differ in length.
    """
    if len(vec_a) != len(vec_b):
        raise ValueError(
            f"Embedding dimensions differ: {len(vec_a)} != {len(vec_b)}"
        )

    dot_product = sum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(a * a for a in vec_a))
    norm_b = math.sqrt(sum(b * b for b in vec_b))

    if norm_a == 0 or norm_b == 0:
        return 0.0

    # Clamp float drift so sim(a, a) never lands a hair above 1
    return max(-1.0, min(1.0, dot_product / (norm_a * norm_b)))


def is_well_formed_embedding(embedding: object, dimension: int) -> bool:
    """Check that an embedding is a finite numeric vector of the given length."""
    if not isinstance(embedding, (list, tuple)):
        return False
    if len(embedding) != dimension:
        return False
    for value in embedding:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not math.isfinite(value):
            return False
    return True
