"""Embedding providers and vector similarity for semantic search."""

from __future__ import annotations

import hashlib
import math
import struct
from typing import Protocol, Sequence, runtime_checkable


# Only the first 10k characters of a text contribute to its embedding.
MAX_EMBED_CHARS = 10_000


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Supplies a fixed-length numeric vector per text."""

    dimensions: int

    def embed(self, text: str) -> list[float]: ...


class HashEmbeddingProvider:
    """
    Deterministic, offline embedding.

    Each component is derived from SHA-256 of ``text:index`` and scaled to
    [-1, 1]. Identical texts always map to identical vectors, which is all
    the engine needs for reproducible ranking without a model server.
    """

    def __init__(self, dimensions: int = 384):
        if dimensions < 1:
            raise ValueError("dimensions must be >= 1")
        self.dimensions = dimensions

    def embed(self, text: str) -> list[float]:
        seed = str(text or "")[:MAX_EMBED_CHARS]
        vector: list[float] = []
        for i in range(self.dimensions):
            digest = hashlib.sha256(f"{seed}:{i}".encode("utf-8")).digest()
            (n,) = struct.unpack(">I", digest[:4])
            vector.append(n / 0xFFFFFFFF * 2 - 1)
        return vector


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Cosine similarity; 0.0 for missing, mismatched or zero vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = na = nb = 0.0
    for x, y in zip(a, b):
        dot += x * y
        na += x * x
        nb += y * y
    denom = math.sqrt(na) * math.sqrt(nb)
    return 0.0 if denom == 0 else dot / denom


def rank_by_similarity(query_vector: Sequence[float], candidates, *, limit: int):
    """
    Rank ``(key, vector, payload)`` triples by cosine similarity.

    Returns ``(payload, score)`` pairs, best first; ties fall back to key
    order so results are stable between backends.
    """
    scored = [
        (cosine_similarity(query_vector, vector), key, payload)
        for key, vector, payload in candidates
        if vector is not None and len(vector) == len(query_vector)
    ]
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [(payload, score) for score, _key, payload in scored[: max(0, limit)]]
