"""
Request models shared by the routers.

Wire format is camelCase JSON; Python attributes stay snake_case.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from difficulty_gate import API_VERSION
from difficulty_gate.generation.schemas import SlotHint
from difficulty_gate.scoring.difficulty_score import DifficultyComponents, DifficultyWeights


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ComponentsModel(BaseModel):
    """Difficulty components; the axis letters are already the wire names."""

    L: float
    S: float
    A: float
    R: float

    def to_domain(self) -> DifficultyComponents:
        return DifficultyComponents(L=self.L, S=self.S, A=self.A, R=self.R)


class WeightsModel(BaseModel):
    """Weights are range-checked by DifficultyWeights so bad values map to BAD_REQUEST."""

    wL: float
    wS: float
    wA: float
    wR: float

    def to_domain(self) -> DifficultyWeights:
        return DifficultyWeights(wL=self.wL, wS=self.wS, wA=self.wA, wR=self.wR)


class SlotHintModel(CamelModel):
    """A client-supplied hint. Accepted as-is; the extractor drops invalid ones."""

    prefix: str = ""
    missing_count: int
    confidence: float | None = None

    def to_hint(self) -> SlotHint:
        return SlotHint.model_construct(
            prefix=self.prefix, missing_count=self.missing_count, confidence=self.confidence
        )


def ok(payload: dict[str, Any] | None = None, **fields: Any) -> dict[str, Any]:
    """Success envelope."""
    return {"ok": True, "apiVersion": API_VERSION, **(payload or {}), **fields}
