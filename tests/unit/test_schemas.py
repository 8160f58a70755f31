"""
Unit tests for structured provider output decoding and vision hints.
"""
import base64

import pytest

from difficulty_gate.errors import InvalidInputError, StructuredOutputError
from difficulty_gate.extraction.vision_hints import decode_image, extract_slot_hints
from difficulty_gate.generation.schemas import (
    BlankSelectionOutput,
    MultipleChoiceOutput,
    PassageOutput,
    SlotHint,
    decode_structured,
)
from tests.fakes import ScriptedGenerator


class TestDecodeStructured:
    """Tests for decode_structured."""

    def test_plain_json(self):
        assert decode_structured('{"text": "A passage."}', PassageOutput).text == "A passage."

    def test_code_fence(self):
        raw = 'Here you go:\n```json\n{"answers": ["river"]}\n```'

        assert decode_structured(raw, BlankSelectionOutput).answers == ["river"]

    def test_object_inside_prose(self):
        raw = 'Sure! {"text": "Inside prose."} Hope that helps.'

        assert decode_structured(raw, PassageOutput).text == "Inside prose."

    def test_alias_fields(self):
        raw = '{"question": "Why?", "choices": ["a", "b"], "correctIndex": 1}'

        assert decode_structured(raw, MultipleChoiceOutput).correct_index == 1

    def test_empty_reply(self):
        with pytest.raises(StructuredOutputError) as exc_info:
            decode_structured("   ", PassageOutput)

        assert exc_info.value.reason == "empty_response"

    def test_non_object(self):
        with pytest.raises(StructuredOutputError) as exc_info:
            decode_structured("[1, 2]", PassageOutput)

        assert exc_info.value.reason == "json_not_an_object"

    def test_no_json(self):
        with pytest.raises(StructuredOutputError) as exc_info:
            decode_structured("I cannot help with that.", PassageOutput)

        assert exc_info.value.reason == "no_json_object"

    def test_multi_word_answer_rejected(self):
        with pytest.raises(StructuredOutputError) as exc_info:
            decode_structured('{"answers": ["ice cream"]}', BlankSelectionOutput)

        assert exc_info.value.reason.startswith("schema_mismatch")

    def test_empty_choice_rejected(self):
        with pytest.raises(StructuredOutputError):
            decode_structured('{"question": "Q", "choices": ["a", " "], "correctIndex": 0}', MultipleChoiceOutput)

    def test_slot_hint_accepts_field_name_and_alias(self):
        assert SlotHint(prefix="sw", missing_count=3) == SlotHint.model_validate({"prefix": "sw", "missingCount": 3})


class TestVisionHints:
    """Tests for image decoding and vision slot hints."""

    def test_decode_data_url(self):
        encoded = base64.b64encode(b"image-bytes").decode()

        assert decode_image(f"data:image/png;base64,{encoded}", "image/png") == b"image-bytes"

    def test_unsupported_mime_type(self):
        with pytest.raises(InvalidInputError) as exc_info:
            decode_image("aGVsbG8=", "image/tiff")

        assert exc_info.value.reason == "unsupported_mime_type"

    def test_invalid_base64(self):
        with pytest.raises(InvalidInputError) as exc_info:
            decode_image("not base64!!", "image/png")

        assert exc_info.value.reason == "bad_image"

    def test_empty_image(self):
        with pytest.raises(InvalidInputError):
            decode_image("", "image/png")

    @pytest.mark.asyncio
    async def test_extract_slot_hints_caps_count(self):
        generator = ScriptedGenerator(
            image_replies=['{"slots": [{"prefix": "sw", "missingCount": 3}, {"prefix": "", "missingCount": 5}]}']
        )

        hints = await extract_slot_hints(generator, b"png", "image/png", max_slots=1)

        assert hints == [SlotHint(prefix="sw", missing_count=3)]
        assert generator.image_prompts[0][1:] == (b"png", "image/png")

    @pytest.mark.asyncio
    async def test_extract_slot_hints_rejects_bad_reply(self):
        generator = ScriptedGenerator(image_replies=['{"slots": [{"prefix": "toolong", "missingCount": 3}]}'])

        with pytest.raises(StructuredOutputError):
            await extract_slot_hints(generator, b"png", "image/png")
