"""
Structure router.

Endpoints for:
- Classifying raw (OCR) text and recovering its slots or multiple-choice parts
- Slot hints from a worksheet image
- Scoring a learner's fill-blank answers
"""
from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import Field

from config import get_settings
from difficulty_gate.api.dependencies import get_extractor, get_generator
from difficulty_gate.api.models import CamelModel, SlotHintModel, ok
from difficulty_gate.errors import EmptySourceError, ProviderUnavailableError
from difficulty_gate.extraction.format_classifier import ItemFormat, classify_format
from difficulty_gate.extraction.glyph_rules import normalize_glyphs
from difficulty_gate.extraction.mc_parser import parse_multiple_choice
from difficulty_gate.extraction.vision_hints import decode_image, extract_slot_hints
from difficulty_gate.generation.fill_blank import score_fill_blank_answers
from difficulty_gate.generation.llm_client import TextGenerator

router = APIRouter()


class StructureRequest(CamelModel):
    text: str
    preferred_task_type: Literal["cloze", "multiple_choice"] | None = None
    vision_slots: list[SlotHintModel] | None = None
    answers: list[str] | None = None


class VisionRequest(CamelModel):
    image_base64: str
    mime_type: str = "image/png"
    max_slots: int = Field(6, ge=1, le=6)
    text: str | None = Field(None, description="OCR text to anchor the hints on")


class AnswerScoreRequest(CamelModel):
    expected: list[str]
    submitted: list[str]


@router.post("/ocr/structure")
async def ocr_structure(
    request: StructureRequest,
    generator: TextGenerator | None = Depends(get_generator),
) -> dict[str, Any]:
    """Classify raw text and recover its exercise structure."""
    if not request.text.strip():
        raise EmptySourceError("Text is empty", reason="empty_source")

    detected = classify_format(normalize_glyphs(request.text))
    wants_mc = request.preferred_task_type == "multiple_choice" or (
        request.preferred_task_type is None and detected == ItemFormat.MULTIPLE_CHOICE
    )
    if wants_mc:
        parsed = await parse_multiple_choice(request.text, generator)
        return ok(
            format=ItemFormat.MULTIPLE_CHOICE.value,
            item=parsed.item.to_dict(),
            parseMethod=parsed.method.value,
        )

    hints = [hint.to_hint() for hint in request.vision_slots] if request.vision_slots else None
    extraction = await get_extractor().extract_with_repair(request.text, hints, generator)
    payload = ok(extraction.to_dict(), format=detected.value)
    if request.answers is not None:
        payload["mismatchedAnswers"] = extraction.mismatched_answers(request.answers)
    return payload


@router.post("/vision/extract-slots")
async def vision_extract_slots(
    request: VisionRequest,
    generator: TextGenerator | None = Depends(get_generator),
) -> dict[str, Any]:
    if generator is None:
        raise ProviderUnavailableError(
            "No text generation provider is configured", transient=False, reason="no_generator"
        )
    image = decode_image(request.image_base64, request.mime_type)
    max_slots = min(request.max_slots, get_settings().extraction_max_slots)
    hints = await extract_slot_hints(generator, image, request.mime_type, max_slots)
    payload = ok(slots=[hint.model_dump(by_alias=True) for hint in hints])
    if request.text:
        payload["extraction"] = get_extractor().extract(request.text, hints).to_dict()
    return payload


@router.post("/fill-blank/score")
def fill_blank_score(request: AnswerScoreRequest) -> dict[str, Any]:
    return ok(score_fill_blank_answers(request.expected, request.submitted).to_dict())
