"""
Difficulty scoring router.

Endpoints for:
- Default weights
- D from raw components
- Overall item evaluation, with optional target comparison
- Semantic ambiguity from vectors or from text
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import Field

from config import get_settings
from difficulty_gate.api.dependencies import get_embeddings
from difficulty_gate.api.models import CamelModel, ComponentsModel, WeightsModel, ok
from difficulty_gate.profile.target_profile import axis_base_tolerance, effective_tolerance_for
from difficulty_gate.scoring.ambiguity import semantic_ambiguity
from difficulty_gate.scoring.difficulty_score import DifficultyComponents, score
from difficulty_gate.scoring.item_evaluator import compare_to_target, evaluate_item
from difficulty_gate.semantic.embedding_service import EmbeddingService

router = APIRouter()


# ========================================
# Request Models
# ========================================


class ScoreRequest(CamelModel):
    components: ComponentsModel
    weights: WeightsModel | None = None


class OverallRequest(CamelModel):
    text: str = Field(..., description="Passage, question or blanked sentence")
    correct: str
    distractors: list[str]
    steps: int = Field(1, description="Reasoning steps needed to solve the item")
    weights: WeightsModel | None = None
    target: ComponentsModel | None = None
    axis_tolerance: ComponentsModel | None = None
    effective_tolerance: float | None = None


class AmbiguityVectorsRequest(CamelModel):
    correct: list[float]
    distractors: list[list[float]]


class AmbiguityTextRequest(CamelModel):
    correct: str
    distractors: list[str]
    dimension: int | None = Field(None, gt=0)
    debug: bool = False


# ========================================
# Endpoints
# ========================================


@router.get("/weights")
def get_weights() -> dict[str, Any]:
    """Default weights from configuration."""
    return ok(weights=get_settings().get_difficulty_weights().to_dict())


@router.post("/score")
def score_components(request: ScoreRequest) -> dict[str, Any]:
    weights = request.weights.to_domain() if request.weights else get_settings().get_difficulty_weights()
    return ok(score(request.components.to_domain(), weights).to_dict())


@router.post("/overall")
def overall_difficulty(
    request: OverallRequest,
    embeddings: EmbeddingService = Depends(get_embeddings),
) -> dict[str, Any]:
    """Score a complete item; compare it to a target when one is given."""
    settings = get_settings()
    weights = request.weights.to_domain() if request.weights else settings.get_difficulty_weights()
    result = evaluate_item(
        request.text,
        request.correct,
        request.distractors,
        request.steps,
        weights,
        embeddings,
        max_steps=settings.reasoning_max_steps,
        dim=settings.embedding_dimension,
    )
    payload = result.to_dict()
    if request.target is not None:
        # without an explicit tolerance, treat the target like a single-sample profile
        base = axis_base_tolerance(1)
        axis_tolerance = (
            request.axis_tolerance.to_domain()
            if request.axis_tolerance
            else DifficultyComponents(base, base, base, base)
        )
        comparison = compare_to_target(
            result.components,
            request.target.to_domain(),
            axis_tolerance,
            request.effective_tolerance or effective_tolerance_for(1),
            weights,
        )
        payload["distanceToTarget"] = comparison.distance
        payload["targetComparison"] = comparison.to_dict()
    return ok(payload)


@router.post("/semantic-ambiguity")
def ambiguity_from_vectors(request: AmbiguityVectorsRequest) -> dict[str, Any]:
    return ok(A=semantic_ambiguity(request.correct, request.distractors))


@router.post("/semantic-ambiguity/text")
def ambiguity_from_text(
    request: AmbiguityTextRequest,
    embeddings: EmbeddingService = Depends(get_embeddings),
) -> dict[str, Any]:
    dim = request.dimension or get_settings().embedding_dimension
    vectors = embeddings.embed_texts([request.correct, *request.distractors], dim)
    payload: dict[str, Any] = {"A": semantic_ambiguity(vectors[0], vectors[1:])}
    if request.debug:
        payload["correctVec"] = [float(v) for v in vectors[0]]
        payload["distractorVecs"] = [[float(v) for v in vector] for vector in vectors[1:]]
    return ok(payload)
