"""
Difficulty Scoring Engine.

Combines four normalized components into a single difficulty scalar:

    D = wL*L + wS*S + wA*A + wR*R

- L: lexical complexity
- S: structural complexity
- A: semantic ambiguity between the correct answer and its distractors
- R: normalized reasoning depth

``score`` is the only place D is computed. Weights are always passed in
explicitly and travel with the result, so a score never depends on a
hidden default.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from difficulty_gate.errors import InvalidComponentError, InvalidInputError

AXES = ("L", "S", "A", "R")


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class DifficultyComponents:
    """The four difficulty axes. Canonical domain is [0, 1]."""

    L: float
    S: float
    A: float
    R: float

    def get(self, axis: str) -> float:
        return getattr(self, axis)

    def clamped(self) -> DifficultyComponents:
        """Return a copy with every axis clamped to [0, 1].

        Raises:
            InvalidComponentError: If any axis is NaN or infinite.
        """
        for axis in AXES:
            value = self.get(axis)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidComponentError(
                    f"Component {axis} must be a finite number, got {value!r}",
                    reason=f"non_finite_{axis}",
                )
        return DifficultyComponents(*(_clamp01(float(self.get(axis))) for axis in AXES))

    def to_dict(self) -> dict[str, float]:
        return {axis: self.get(axis) for axis in AXES}

    @classmethod
    def from_dict(cls, data: dict[str, float]) -> DifficultyComponents:
        missing = [axis for axis in AXES if axis not in data]
        if missing:
            raise InvalidInputError(f"Missing components: {', '.join(missing)}")
        return cls(*(data[axis] for axis in AXES))


@dataclass(frozen=True)
class DifficultyWeights:
    """Per-axis weights. Non-negative, conventionally summing to 1."""

    wL: float
    wS: float
    wA: float
    wR: float

    def __post_init__(self):
        for name in ("wL", "wS", "wA", "wR"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
                raise InvalidInputError(f"Weight {name} must be a non-negative number, got {value!r}")

    def for_axis(self, axis: str) -> float:
        return getattr(self, f"w{axis}")

    @property
    def total(self) -> float:
        return self.wL + self.wS + self.wA + self.wR

    def to_dict(self) -> dict[str, float]:
        return {"wL": self.wL, "wS": self.wS, "wA": self.wA, "wR": self.wR}


@dataclass(frozen=True)
class DifficultyScore:
    """An immutable D together with the inputs that produced it."""

    D: float
    components: DifficultyComponents
    weights: DifficultyWeights

    def to_dict(self) -> dict:
        return {
            "D": self.D,
            "components": self.components.to_dict(),
            "weights": self.weights.to_dict(),
        }


def score(components: DifficultyComponents, weights: DifficultyWeights) -> DifficultyScore:
    """
    Combine difficulty components into D.

    Args:
        components: Raw component values; clamped to [0, 1]
        weights: Weights to apply

    Returns:
        DifficultyScore carrying the clamped components and the weights

    Raises:
        InvalidComponentError: If a component is NaN or infinite
    """
    clamped = components.clamped()
    d = sum(weights.for_axis(axis) * clamped.get(axis) for axis in AXES)
    return DifficultyScore(D=d, components=clamped, weights=weights)


def normalize_reasoning_depth(steps: float, max_steps: float = 5) -> float:
    """R = min(steps / max_steps, 1)."""
    if not math.isfinite(steps) or not math.isfinite(max_steps):
        raise InvalidInputError("steps and max_steps must be finite numbers")
    if max_steps <= 0:
        raise InvalidInputError(f"max_steps must be positive, got {max_steps}")
    if steps < 0:
        raise InvalidInputError(f"steps must be non-negative, got {steps}")
    return min(steps / max_steps, 1.0)


# =============================================================================
# Distance and compliance against a target
# =============================================================================


class Compliance(str, Enum):
    WITHIN = "within"
    MINOR = "minor"
    OUT = "out"


def distance_to_target(
    current: DifficultyComponents,
    target: DifficultyComponents,
    weights: DifficultyWeights,
) -> float:
    """Weighted euclidean distance: sqrt(sum(w * d^2))."""
    return math.sqrt(
        sum(weights.for_axis(axis) * (current.get(axis) - target.get(axis)) ** 2 for axis in AXES)
    )


def axis_compliance(delta: float, tolerance: float) -> Compliance:
    magnitude = abs(delta)
    if magnitude <= tolerance:
        return Compliance.WITHIN
    if magnitude <= tolerance * 2:
        return Compliance.MINOR
    return Compliance.OUT


def distance_compliance(distance: float, tolerance: float) -> Compliance:
    if distance <= tolerance:
        return Compliance.WITHIN
    if distance <= tolerance * 3:
        return Compliance.MINOR
    return Compliance.OUT
