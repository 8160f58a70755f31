"""
FastAPI dependencies.

Settings-derived values are built once per request from the cached
Settings; nothing here holds per-request state between calls.
"""
from __future__ import annotations

from collections.abc import AsyncIterator
from functools import lru_cache

from config import Settings, get_settings
from difficulty_gate.extraction.slot_extractor import SlotExtractor
from difficulty_gate.generation.llm_client import TextGenerator, create_text_generator
from difficulty_gate.generation.pipeline import PipelineConfig
from difficulty_gate.profile.target_profile import TargetProfileEstimator
from difficulty_gate.semantic.embedding_service import EmbeddingService, create_embedding_service


@lru_cache(maxsize=1)
def _embedding_service() -> EmbeddingService:
    # sentence-transformers models are expensive to load, so one per process
    return create_embedding_service(get_settings())


def get_embeddings() -> EmbeddingService:
    return _embedding_service()


def get_pipeline_config() -> PipelineConfig:
    return get_settings().get_pipeline_config()


def get_extractor(settings: Settings | None = None) -> SlotExtractor:
    settings = settings or get_settings()
    return SlotExtractor(
        max_slots=settings.extraction_max_slots,
        context_radius=settings.extraction_context_radius,
        loose_confidence=settings.extraction_loose_confidence,
    )


def get_target_estimator(embeddings: EmbeddingService, settings: Settings | None = None) -> TargetProfileEstimator:
    settings = settings or get_settings()
    return TargetProfileEstimator(
        embeddings,
        get_extractor(settings),
        max_sources=settings.target_max_sources,
        max_steps=settings.reasoning_max_steps,
        embedding_dim=settings.embedding_dimension,
    )


async def get_generator() -> AsyncIterator[TextGenerator | None]:
    """A text generator for the duration of one request, closed afterwards."""
    generator = create_text_generator(get_settings().get_llm_config())
    try:
        yield generator
    finally:
        if generator is not None:
            await generator.close()
