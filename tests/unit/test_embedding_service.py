"""
Unit tests for the embedding backends.
"""
import numpy as np
import pytest

from difficulty_gate.errors import InvalidInputError
from difficulty_gate.semantic.embedding_service import (
    HashEmbeddingService,
    create_embedding_service,
    fnv1a_32,
)


class TestHashEmbeddingService:
    """Tests for the deterministic hash-seeded backend."""

    def test_identical_text_gives_identical_vector(self):
        service = HashEmbeddingService()

        assert np.array_equal(service.embed_text("Sunny day"), service.embed_text("Sunny day"))

    def test_case_and_outer_whitespace_ignored(self):
        service = HashEmbeddingService()

        assert np.array_equal(service.embed_text("Sunny day"), service.embed_text("  sunny DAY "))

    def test_different_texts_differ(self):
        service = HashEmbeddingService()

        assert not np.array_equal(service.embed_text("cat"), service.embed_text("dog"))

    @pytest.mark.parametrize("dim", [1, 8, 64])
    def test_unit_norm(self, dim):
        vector = HashEmbeddingService().embed_text("The weather is sunny.", dim)

        assert vector.shape == (dim,)
        assert np.linalg.norm(vector) == pytest.approx(1.0)

    def test_non_positive_dimension_rejected(self):
        with pytest.raises(InvalidInputError):
            HashEmbeddingService().embed_text("text", 0)

    def test_embed_texts_keeps_order(self):
        service = HashEmbeddingService()
        vectors = service.embed_texts(["a", "b"])

        assert np.array_equal(vectors[0], service.embed_text("a"))
        assert np.array_equal(vectors[1], service.embed_text("b"))

    def test_fnv1a_known_value(self):
        assert fnv1a_32("") == 0x811C9DC5
        assert fnv1a_32("a") == 0xE40C292C


class TestFactory:
    """Tests for create_embedding_service."""

    def test_hash_backend(self, settings):
        assert isinstance(create_embedding_service(settings), HashEmbeddingService)
