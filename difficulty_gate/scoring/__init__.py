"""Difficulty scoring engine."""
from difficulty_gate.scoring.difficulty_score import (
    AXES,
    Compliance,
    DifficultyComponents,
    DifficultyScore,
    DifficultyWeights,
    distance_to_target,
    normalize_reasoning_depth,
    score,
)

__all__ = [
    "AXES",
    "Compliance",
    "DifficultyComponents",
    "DifficultyScore",
    "DifficultyWeights",
    "distance_to_target",
    "normalize_reasoning_depth",
    "score",
]
