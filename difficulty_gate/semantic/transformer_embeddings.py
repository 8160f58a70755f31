"""
Sentence-transformers backed embeddings.

Uses all-MiniLM-L6-v2 by default (384 dimensions). The model is lazy-loaded
on first use to avoid startup delays. Install with the ``semantic`` extra.
"""
from __future__ import annotations

import numpy as np
from loguru import logger
from sentence_transformers import SentenceTransformer

from difficulty_gate.errors import EmbeddingError
from difficulty_gate.semantic.embedding_service import DEFAULT_DIMENSION, EmbeddingService


class SentenceTransformerEmbeddingService(EmbeddingService):
    """
    Real model embeddings.

    The ``dim`` argument of the interface is ignored: the model decides the
    dimension, and every vector from one service instance shares it.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._model: SentenceTransformer | None = None

    @property
    def model(self) -> SentenceTransformer:
        if self._model is None:
            logger.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed_text(self, text: str, dim: int = DEFAULT_DIMENSION) -> np.ndarray:
        return self.embed_texts([text], dim)[0]

    def embed_texts(self, texts: list[str], dim: int = DEFAULT_DIMENSION) -> list[np.ndarray]:
        if not texts:
            return []
        try:
            matrix = self.model.encode(texts, convert_to_numpy=True, show_progress_bar=False)
        except Exception as e:
            raise EmbeddingError(f"Embedding model failed: {e}", reason="model_error") from e
        return [np.asarray(row, dtype=np.float64) for row in matrix]
