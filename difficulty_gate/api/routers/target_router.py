"""
Target profile router.

Endpoints for:
- Cloze and multiple-choice targets from 1-3 reference texts
- A rule-of-thumb target from item structure
- The built-in baseline target
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import Field

from config import get_settings
from difficulty_gate.api.dependencies import get_embeddings, get_target_estimator
from difficulty_gate.api.models import CamelModel, ok
from difficulty_gate.generation.candidates import TaskType
from difficulty_gate.profile.structure_target import (
    BASELINE_ITEMS,
    BlankType,
    ProblemType,
    baseline_target,
    target_from_structure,
)
from difficulty_gate.semantic.embedding_service import EmbeddingService

router = APIRouter()


class FromSourcesRequest(CamelModel):
    source_texts: list[str] = Field(..., description="One to three reference texts")


class FromStructureRequest(CamelModel):
    problem_type: ProblemType
    reasoning_steps: int = Field(..., description="1, 2 or 3")
    blank_type: BlankType = BlankType.NONE
    cefr: str = Field(..., description="CEFR level A1-C2")


@router.post("/from-sources")
def target_from_sources(
    request: FromSourcesRequest,
    embeddings: EmbeddingService = Depends(get_embeddings),
) -> dict[str, Any]:
    profile = get_target_estimator(embeddings).estimate(request.source_texts, TaskType.CLOZE)
    return ok(profile.to_dict())


@router.post("/from-sources-mc")
def target_from_sources_mc(
    request: FromSourcesRequest,
    embeddings: EmbeddingService = Depends(get_embeddings),
) -> dict[str, Any]:
    profile = get_target_estimator(embeddings).estimate(request.source_texts, TaskType.MULTIPLE_CHOICE)
    return ok(profile.to_dict())


@router.post("/from-structure")
def structure_target(request: FromStructureRequest) -> dict[str, Any]:
    target = target_from_structure(
        request.problem_type, request.reasoning_steps, request.blank_type, request.cefr
    )
    return ok(target.to_dict())


@router.get("/baseline")
def baseline(embeddings: EmbeddingService = Depends(get_embeddings)) -> dict[str, Any]:
    settings = get_settings()
    mean = baseline_target(
        embeddings, max_steps=settings.reasoning_max_steps, dim=settings.embedding_dimension
    )
    return ok(mean=mean.to_dict(), count=len(BASELINE_ITEMS))
