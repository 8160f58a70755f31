"""
Overall item evaluation: turn an item's text, answer, distractors and
reasoning steps into components, then into a DifficultyScore.
"""
from __future__ import annotations

from dataclasses import dataclass

from difficulty_gate.scoring.ambiguity import semantic_ambiguity_from_text
from difficulty_gate.scoring.difficulty_score import (
    AXES,
    Compliance,
    DifficultyComponents,
    DifficultyScore,
    DifficultyWeights,
    axis_compliance,
    distance_compliance,
    distance_to_target,
    normalize_reasoning_depth,
    score,
)
from difficulty_gate.scoring.lexical_structural import compute_lexical_structural
from difficulty_gate.semantic.embedding_service import EmbeddingService


def compute_components(
    text: str,
    correct: str,
    distractors: list[str],
    steps: int,
    embeddings: EmbeddingService,
    *,
    max_steps: int = 5,
    dim: int = 8,
) -> DifficultyComponents:
    lexical, structural = compute_lexical_structural(text)
    ambiguity = semantic_ambiguity_from_text(correct, distractors, embeddings, dim)
    reasoning = normalize_reasoning_depth(steps, max_steps)
    return DifficultyComponents(L=lexical, S=structural, A=ambiguity, R=reasoning)


def evaluate_item(
    text: str,
    correct: str,
    distractors: list[str],
    steps: int,
    weights: DifficultyWeights,
    embeddings: EmbeddingService,
    *,
    max_steps: int = 5,
    dim: int = 8,
) -> DifficultyScore:
    """
    Score a complete item.

    Args:
        text: Item text (passage, question or blanked sentence)
        correct: Correct answer
        distractors: Wrong answers, at least one
        steps: Reasoning steps needed to solve the item
        weights: Weights to combine the components with
        embeddings: Embedding backend used for A

    Returns:
        DifficultyScore
    """
    components = compute_components(
        text, correct, distractors, steps, embeddings, max_steps=max_steps, dim=dim
    )
    return score(components, weights)


@dataclass(frozen=True)
class TargetComparison:
    distance: float
    overall: Compliance
    per_axis: dict[str, Compliance]

    def to_dict(self) -> dict:
        return {
            "distance": self.distance,
            "compliance": self.overall.value,
            "axisCompliance": {axis: level.value for axis, level in self.per_axis.items()},
        }


def compare_to_target(
    current: DifficultyComponents,
    target_mean: DifficultyComponents,
    axis_tolerance: DifficultyComponents,
    effective_tolerance: float,
    weights: DifficultyWeights,
) -> TargetComparison:
    distance = distance_to_target(current, target_mean, weights)
    per_axis = {
        axis: axis_compliance(current.get(axis) - target_mean.get(axis), axis_tolerance.get(axis))
        for axis in AXES
    }
    return TargetComparison(
        distance=distance,
        overall=distance_compliance(distance, effective_tolerance),
        per_axis=per_axis,
    )
