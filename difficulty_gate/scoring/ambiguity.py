"""
Semantic ambiguity (A): how close the distractors sit to the correct answer.

A is the mean cosine similarity between the correct-answer vector and each
distractor vector. Distractors that mean nearly the same thing as the
answer make an item harder.
"""
from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from difficulty_gate.errors import InvalidInputError
from difficulty_gate.semantic.embedding_service import EmbeddingService
from difficulty_gate.semantic.similarity_service import cosine_similarity


def semantic_ambiguity(
    correct_vector: Sequence[float] | np.ndarray,
    distractor_vectors: Sequence[Sequence[float] | np.ndarray],
) -> float:
    if len(distractor_vectors) == 0:
        raise InvalidInputError("At least one distractor is required", reason="no_distractors")
    sims = [cosine_similarity(correct_vector, vector) for vector in distractor_vectors]
    return float(np.mean(sims))


def semantic_ambiguity_from_text(
    correct: str,
    distractors: list[str],
    embeddings: EmbeddingService,
    dim: int,
) -> float:
    if not correct.strip():
        raise InvalidInputError("Correct answer text is required", reason="no_correct_answer")
    if not distractors:
        raise InvalidInputError("At least one distractor is required", reason="no_distractors")
    vectors = embeddings.embed_texts([correct, *distractors], dim)
    return semantic_ambiguity(vectors[0], vectors[1:])
