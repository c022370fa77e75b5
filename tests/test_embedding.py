"""Tests for the hash embedding provider and similarity ranking."""

import pytest

from codegraph.services.embedding import (
    EmbeddingProvider,
    HashEmbeddingProvider,
    cosine_similarity,
    rank_by_similarity,
)


def test_hash_embedding_is_deterministic():
    provider = HashEmbeddingProvider(8)

    vector = provider.embed("parse config")

    assert isinstance(provider, EmbeddingProvider)
    assert len(vector) == 8
    assert vector == HashEmbeddingProvider(8).embed("parse config")
    assert vector != provider.embed("render page")
    assert all(-1.0 <= x <= 1.0 for x in vector)


def test_dimensions_must_be_positive():
    with pytest.raises(ValueError):
        HashEmbeddingProvider(0)


def test_cosine_similarity_edge_cases():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity(None, [1.0]) == 0.0
    assert cosine_similarity([1.0], [1.0, 2.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_rank_by_similarity_orders_and_limits():
    candidates = [
        ("b", [1.0, 0.0], "B"),
        ("a", [1.0, 0.0], "A"),
        ("c", [0.0, 1.0], "C"),
        ("d", None, "D"),
        ("e", [1.0, 0.0, 0.0], "E"),
    ]

    ranked = rank_by_similarity([1.0, 0.0], candidates, limit=3)

    assert [payload for payload, _ in ranked] == ["A", "B", "C"]
    assert rank_by_similarity([1.0, 0.0], candidates, limit=0) == []
