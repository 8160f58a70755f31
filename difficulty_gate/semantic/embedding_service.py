"""
Embedding Service - vector embeddings for similarity and ambiguity scoring.

Two implementations share one interface:

- HashEmbeddingService: an offline stand-in that derives a unit vector
  from the text alone. The generator is seeded from an FNV-1a hash of the
  trimmed, lower-cased text, so identical text always yields the
  identical vector. Tests and air-gapped runs depend on that.
- SentenceTransformerEmbeddingService (transformer_embeddings.py): a real
  model, selected with EMBEDDING_BACKEND=sentence_transformers.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np
from loguru import logger

from difficulty_gate.errors import EmbeddingError, InvalidInputError

if TYPE_CHECKING:
    from config import Settings

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193
UINT32 = 0xFFFFFFFF

LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223

DEFAULT_DIMENSION = 8


class EmbeddingService(ABC):
    """Interface for anything that turns text into vectors."""

    @abstractmethod
    def embed_text(self, text: str, dim: int = DEFAULT_DIMENSION) -> np.ndarray:
        """Embed one text."""

    def embed_texts(self, texts: list[str], dim: int = DEFAULT_DIMENSION) -> list[np.ndarray]:
        """Embed several texts, preserving input order."""
        return [self.embed_text(text, dim) for text in texts]


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a over the code points of ``text``."""
    value = FNV_OFFSET_BASIS
    for char in text:
        value ^= ord(char)
        value = (value * FNV_PRIME) & UINT32
    return value


class _Lcg:
    """Numerical Recipes LCG producing floats in [0, 1]."""

    def __init__(self, seed: int):
        self.state = seed & UINT32

    def next_float(self) -> float:
        self.state = (LCG_MULTIPLIER * self.state + LCG_INCREMENT) & UINT32
        return self.state / UINT32


class HashEmbeddingService(EmbeddingService):
    """
    Deterministic text-seeded embeddings.

    Example:
        >>> service = HashEmbeddingService()
        >>> a = service.embed_text("Hello")
        >>> b = service.embed_text("  hello ")
        >>> bool((a == b).all())
        True
    """

    def embed_text(self, text: str, dim: int = DEFAULT_DIMENSION) -> np.ndarray:
        if dim <= 0:
            raise InvalidInputError(f"Embedding dimension must be positive, got {dim}")
        rng = _Lcg(fnv1a_32(text.strip().lower()))
        vector = np.array([rng.next_float() * 2 - 1 for _ in range(dim)], dtype=np.float64)
        norm = float(np.linalg.norm(vector))
        if norm == 0:
            raise EmbeddingError("Generated a zero vector", reason="zero_vector")
        return vector / norm


def create_embedding_service(settings: Settings) -> EmbeddingService:
    """Build the embedding backend named in settings."""
    backend = settings.embedding_backend
    if backend == "sentence_transformers":
        from difficulty_gate.semantic.transformer_embeddings import (
            SentenceTransformerEmbeddingService,
        )

        logger.info(f"Using sentence-transformers embeddings: {settings.embedding_model}")
        return SentenceTransformerEmbeddingService(settings.embedding_model)
    logger.debug("Using hash-seeded embeddings")
    return HashEmbeddingService()
