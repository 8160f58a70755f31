"""
Typed schemas for provider output, and the strict decode step.

Provider replies are untrusted. ``decode_structured`` either returns a fully
validated pydantic model or raises StructuredOutputError; callers never see a
partially-populated object.
"""
from __future__ import annotations

import json
import re
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from difficulty_gate.errors import StructuredOutputError

T = TypeVar("T", bound=BaseModel)

CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


class _ProviderModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)


# =============================================================================
# Cloze generation (steps A and B) and repair
# =============================================================================


class PassageOutput(_ProviderModel):
    text: str = Field(..., min_length=1)


class BlankSelectionOutput(_ProviderModel):
    answers: list[str] = Field(..., min_length=1, max_length=2)

    @field_validator("answers")
    @classmethod
    def _single_words(cls, value: list[str]) -> list[str]:
        for answer in value:
            if not re.fullmatch(r"[A-Za-z']+", answer):
                raise ValueError(f"not a single word: {answer!r}")
        return value


class ClozeRepairOutput(_ProviderModel):
    text: str = Field(..., min_length=1)


# =============================================================================
# Slot repair and vision hints
# =============================================================================


class RepairedSlot(_ProviderModel):
    prefix: str = Field(..., pattern=r"^[A-Za-z]{1,4}$")
    missing_count: int = Field(..., alias="missingCount", ge=1, le=8)


class SlotRepairOutput(_ProviderModel):
    text: str = Field(..., min_length=1)
    slots: list[RepairedSlot] = Field(..., min_length=1, max_length=6)


class SlotHint(_ProviderModel):
    """A blank reported by an image-analysis collaborator."""

    prefix: str = Field(default="", pattern=r"^[A-Za-z]{0,4}$")
    missing_count: int = Field(..., alias="missingCount", ge=1, le=10)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class VisionSlotsOutput(_ProviderModel):
    slots: list[SlotHint] = Field(default_factory=list, max_length=6)


# =============================================================================
# Multiple choice
# =============================================================================


class MultipleChoiceOutput(_ProviderModel):
    passage: str | None = None
    question: str = Field(..., min_length=1)
    choices: list[str] = Field(..., min_length=2, max_length=6)
    correct_index: int = Field(..., alias="correctIndex", ge=0)

    @field_validator("choices")
    @classmethod
    def _non_empty_choices(cls, value: list[str]) -> list[str]:
        if any(not choice.strip() for choice in value):
            raise ValueError("empty choice")
        return value


# =============================================================================
# Decoding
# =============================================================================


def _json_candidates(raw: str) -> list[str]:
    """Possible JSON payloads in a reply, most specific first."""
    found = [match.group(1).strip() for match in CODE_FENCE.finditer(raw)]
    stripped = raw.strip()
    found.append(stripped)
    start = stripped.find("{")
    end = stripped.rfind("}")
    if 0 <= start < end:
        found.append(stripped[start : end + 1])
    return found


def decode_structured(raw: str | None, schema: type[T]) -> T:
    """
    Decode a provider reply into ``schema``.

    Args:
        raw: Raw provider text, possibly wrapped in prose or code fences
        schema: Pydantic model the payload must satisfy

    Returns:
        A validated instance of ``schema``

    Raises:
        StructuredOutputError: If no candidate payload parses and validates
    """
    if not raw or not raw.strip():
        raise StructuredOutputError(
            f"Empty response for {schema.__name__}", reason="empty_response"
        )

    last_error = "no_json_object"
    for payload in _json_candidates(raw):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            continue
        if not isinstance(data, dict):
            last_error = "json_not_an_object"
            continue
        try:
            return schema.model_validate(data)
        except ValidationError as e:
            last_error = f"schema_mismatch: {e.errors()[0].get('msg', 'invalid')}"

    raise StructuredOutputError(
        f"Could not decode {schema.__name__} from provider output", reason=last_error
    )
