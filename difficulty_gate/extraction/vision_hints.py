"""
Slot hints from a worksheet image.

The image goes to the generation capability, and the reply is decoded
against a strict schema. Only fully valid hints come back; they feed the
structured-hint strategy of the SlotExtractor.
"""
from __future__ import annotations

import base64
import binascii

from loguru import logger

from difficulty_gate.errors import InvalidInputError
from difficulty_gate.extraction.slot_extractor import DEFAULT_MAX_SLOTS
from difficulty_gate.generation.llm_client import TextGenerator
from difficulty_gate.generation.prompts import SYSTEM_PROMPT, VISION_SLOTS_PROMPT
from difficulty_gate.generation.schemas import SlotHint, VisionSlotsOutput, decode_structured

SUPPORTED_MIME_TYPES = frozenset({"image/png", "image/jpeg", "image/webp", "image/gif"})


def decode_image(image_base64: str, mime_type: str) -> bytes:
    """Decode a base64 image (data URLs accepted)."""
    if mime_type not in SUPPORTED_MIME_TYPES:
        raise InvalidInputError(f"Unsupported image type: {mime_type}", reason="unsupported_mime_type")
    payload = image_base64.split(",", 1)[1] if image_base64.startswith("data:") else image_base64
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInputError(f"Image is not valid base64: {e}", reason="bad_image") from e
    if not data:
        raise InvalidInputError("Image is empty", reason="bad_image")
    return data


async def extract_slot_hints(
    generator: TextGenerator,
    image_bytes: bytes,
    mime_type: str,
    max_slots: int = DEFAULT_MAX_SLOTS,
) -> list[SlotHint]:
    """
    Ask the generation capability for the blanks visible in an image.

    Raises:
        StructuredOutputError: If the reply does not match the hint schema
        ProviderUnavailableError: If the provider cannot take images or is down
    """
    reply = await generator.generate_text_from_image(
        VISION_SLOTS_PROMPT.format(max_slots=max_slots),
        image_bytes,
        mime_type,
        SYSTEM_PROMPT,
    )
    hints = decode_structured(reply, VisionSlotsOutput).slots[:max_slots]
    logger.info(f"Vision reported {len(hints)} slot hint(s)")
    return hints
