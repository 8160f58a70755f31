"""
Generation router.

Endpoints for:
- Cloze (fill-blank) generation
- Multiple-choice generation

Both run the candidate state machine; failures surface as typed errors
carrying the run's audit trail.
A target profile can be estimated inline from ``targetSourceTexts``.
"""
from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import Field

from difficulty_gate.api.dependencies import (
    get_embeddings,
    get_extractor,
    get_generator,
    get_pipeline_config,
    get_target_estimator,
)
from difficulty_gate.api.models import CamelModel, ComponentsModel, SlotHintModel, WeightsModel, ok
from difficulty_gate.generation.candidates import TaskType
from difficulty_gate.generation.cloze_pipeline import ClozePipeline
from difficulty_gate.generation.llm_client import TextGenerator
from difficulty_gate.generation.mc_pipeline import MultipleChoicePipeline
from difficulty_gate.generation.pipeline import GenerationRequest, PipelineConfig
from difficulty_gate.semantic.embedding_service import EmbeddingService

router = APIRouter()


class GenerateRequest(CamelModel):
    source_text: str = Field(..., description="The reference item")
    target: ComponentsModel | None = None
    target_source_texts: list[str] | None = Field(
        None, description="One to three reference texts to estimate a target profile from"
    )
    weights: WeightsModel | None = None


class FillBlankRequest(GenerateRequest):
    source_answers: list[str] | None = None
    slot_hints: list[SlotHintModel] | None = None


class MultipleChoiceRequest(GenerateRequest):
    inference_style: Literal["fact_based", "intent_based", "emotional"] = "fact_based"


def _request(
    body: GenerateRequest,
    embeddings: EmbeddingService,
    task_type: TaskType,
    **extra: Any,
) -> GenerationRequest:
    profile = None
    if body.target_source_texts:
        profile = get_target_estimator(embeddings).estimate(body.target_source_texts, task_type)
    return GenerationRequest(
        source_text=body.source_text,
        target=body.target.to_domain() if body.target else None,
        target_profile=profile,
        weights=body.weights.to_domain() if body.weights else None,
        **extra,
    )


@router.post("/fill-blank")
async def generate_fill_blank(
    body: FillBlankRequest,
    embeddings: EmbeddingService = Depends(get_embeddings),
    generator: TextGenerator | None = Depends(get_generator),
    config: PipelineConfig = Depends(get_pipeline_config),
) -> dict[str, Any]:
    pipeline = ClozePipeline(embeddings, generator, config, get_extractor())
    result = await pipeline.run(
        _request(
            body,
            embeddings,
            TaskType.CLOZE,
            source_answers=tuple(body.source_answers or ()),
            slot_hints=tuple(hint.to_hint() for hint in body.slot_hints or ()),
        )
    )
    return ok(result.to_dict())


@router.post("/mc")
async def generate_multiple_choice(
    body: MultipleChoiceRequest,
    embeddings: EmbeddingService = Depends(get_embeddings),
    generator: TextGenerator | None = Depends(get_generator),
    config: PipelineConfig = Depends(get_pipeline_config),
) -> dict[str, Any]:
    pipeline = MultipleChoicePipeline(embeddings, generator, config)
    result = await pipeline.run(
        _request(body, embeddings, TaskType.MULTIPLE_CHOICE, inference_style=body.inference_style)
    )
    return ok(result.to_dict())
