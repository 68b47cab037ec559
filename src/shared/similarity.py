"""
NeuroNote - String and Vector Similarity
========================================

Similarity primitives used by the deduplicator:

- Jaccard similarity over token sets
- Normalized Levenshtein distance (rapidfuzz)
- Cosine similarity over embedding vectors (numpy)
- EmbeddingComparator: pluggable semantic comparator with a bounded
  per-instance vector memo
"""

import logging
import re
from typing import Callable, Dict, FrozenSet, Sequence

import numpy as np
from rapidfuzz.distance import Levenshtein

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"[a-z0-9]+(?:\.[0-9]+)?")


def tokenize(text: str) -> FrozenSet[str]:
    """Lower-cased alphanumeric token set."""
    return frozenset(TOKEN_PATTERN.findall(text.lower()))


def jaccard_similarity(a: str, b: str) -> float:
    """Size of token-set intersection over union."""
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a and not tokens_b:
        return 1.0
    union = tokens_a | tokens_b
    return len(tokens_a & tokens_b) / len(union)


def normalized_edit_distance(a: str, b: str) -> float:
    """Levenshtein distance divided by the longer length, in [0, 1]."""
    return float(Levenshtein.normalized_distance(a.lower().strip(), b.lower().strip()))


def cosine_similarity(v1: np.ndarray, v2: np.ndarray) -> float:
    """
    Compute cosine similarity between two vectors.

    Args:
        v1: First vector
        v2: Second vector

    Returns:
        Cosine similarity in range [-1, 1]
    """
    norm_v1 = np.linalg.norm(v1)
    norm_v2 = np.linalg.norm(v2)

    if norm_v1 == 0 or norm_v2 == 0:
        return 0.0

    return float(np.dot(v1, v2) / (norm_v1 * norm_v2))


class EmbeddingComparator:
    """
    Semantic comparator backed by an embedding function.

    The embedding function maps text to a vector. Vectors are memoized per
    comparator instance so a deduplication pass embeds each distinct name
    once. Negative cosine values are clipped to 0.

    Usage:
        comparator = EmbeddingComparator(embed_fn=my_model.encode)
        deduplicator = Deduplicator(comparator=comparator)
    """

    def __init__(
        self,
        embed_fn: Callable[[str], Sequence[float]],
        max_cached: int = 4096,
    ):
        self.embed_fn = embed_fn
        self.max_cached = max_cached
        self._vectors: Dict[str, np.ndarray] = {}

    def _vector(self, text: str) -> np.ndarray:
        key = text.lower().strip()
        vector = self._vectors.get(key)
        if vector is None:
            vector = np.asarray(self.embed_fn(key), dtype=np.float32)
            if len(self._vectors) >= self.max_cached:
                self._vectors.pop(next(iter(self._vectors)))
            self._vectors[key] = vector
        return vector

    def similarity(self, a: str, b: str) -> float:
        return max(0.0, cosine_similarity(self._vector(a), self._vector(b)))

