"""Embeddings and the similarity gate."""
from difficulty_gate.semantic.embedding_service import (
    EmbeddingService,
    HashEmbeddingService,
    create_embedding_service,
)
from difficulty_gate.semantic.similarity_service import (
    GateDecision,
    SimilarityBand,
    cosine_similarity,
    gate,
    jaccard,
    overlap_tokens,
)

__all__ = [
    "EmbeddingService",
    "GateDecision",
    "HashEmbeddingService",
    "SimilarityBand",
    "cosine_similarity",
    "create_embedding_service",
    "gate",
    "jaccard",
    "overlap_tokens",
]
