"""
Unit tests for glyph normalization and blank slot extraction.
"""
import pytest

from difficulty_gate.errors import ProviderUnavailableError
from difficulty_gate.extraction.glyph_rules import normalize_glyphs, strip_instructions
from difficulty_gate.extraction.slot_extractor import SlotExtractor, SlotSource, scan_loose, scan_strict
from difficulty_gate.generation.schemas import SlotHint
from tests.fakes import ScriptedGenerator

EXAMPLE = "She is a goo* swim*** and a fast ru____."


class TestGlyphRules:
    """Tests for the glyph normalization chain."""

    def test_asterisk_run_becomes_underscores(self):
        assert normalize_glyphs("swim***") == "swim___"

    def test_single_asterisk_kept(self):
        assert normalize_glyphs("goo*") == "goo*"

    def test_dash_run_doubles(self):
        assert normalize_glyphs("The —— is red.") == "The ____ is red."

    def test_lone_ellipsis_is_a_blank(self):
        assert normalize_glyphs("The … is red.") == "The ___ is red."

    def test_trailing_ellipsis_in_prose_kept(self):
        assert normalize_glyphs("Well… maybe.") == "Well… maybe."

    def test_full_width_low_line(self):
        assert normalize_glyphs("a＿＿b") == "a__b"

    def test_collapses_horizontal_space_and_trims_lines(self):
        assert normalize_glyphs("  one   two \n three　four ") == "one two\nthree four"

    def test_strip_instructions(self):
        text = "Complete the sentences.\nThe cat ___ on the mat."

        assert strip_instructions(text) == "The cat ___ on the mat."


class TestScanning:
    """Tests for the strict and loose scanners."""

    def test_strict_prefix_and_bare(self):
        spans = scan_strict("The c__ sat on the ___.")

        assert [(s.prefix, s.missing_count) for s in spans] == [("c", 2), ("", 3)]

    def test_strict_ignores_single_bare_underscore(self):
        assert scan_strict("snake_case and a _ b") == []

    def test_strict_allows_single_spaces_inside_run(self):
        assert [(s.prefix, s.missing_count) for s in scan_strict("a _ _ _ b")] == [("", 3)]

    def test_missing_count_capped(self):
        assert scan_strict("x" + " " + "_" * 15)[0].missing_count == 10

    def test_loose_dotted_leader(self):
        spans = scan_loose("The answer is ...... today.")

        assert [(s.prefix, s.missing_count) for s in spans] == [("", 6)]

    def test_loose_empty_brackets(self):
        """Brackets are matched in their whitespace-collapsed form."""
        spans = scan_loose(normalize_glyphs("Pick one (    ) or [ ] now."))

        assert [(s.prefix, s.missing_count) for s in spans] == [("", 3), ("", 3)]

    def test_loose_ignores_call_parentheses(self):
        assert scan_loose("Call f() now.") == []


class TestSlotExtractor:
    """Tests for SlotExtractor.extract."""

    def test_example_pairs(self):
        result = SlotExtractor().extract(EXAMPLE)

        assert result.pairs == [("swim", 3), ("ru", 4)]
        assert result.source == SlotSource.REGEX
        assert all(slot.confidence == 1.0 for slot in result.slots)

    def test_display_round_trip(self):
        """Re-extracting the display text finds the same slots."""
        extractor = SlotExtractor()
        first = extractor.extract(EXAMPLE)
        second = extractor.extract(first.display_text)

        assert second.pairs == first.pairs
        assert second.display_text == first.display_text

    def test_slot_offsets_point_at_display_text(self):
        result = SlotExtractor().extract(EXAMPLE)

        for slot in result.slots:
            assert result.display_text[slot.start : slot.end] == slot.blank

    def test_context_snippet(self):
        result = SlotExtractor(context_radius=5).extract("Yesterday I went to the ___ with my dog.")
        slot = result.slots[0]

        assert slot.context_snippet == " the ___ with"

    def test_no_slots(self):
        result = SlotExtractor().extract("There are no blanks here.")

        assert not result.has_slots
        assert result.source == SlotSource.NONE
        assert result.display_text == "There are no blanks here."

    def test_loose_fallback_confidence(self):
        result = SlotExtractor(loose_confidence=0.58).extract("The answer is ...... today.")

        assert result.source == SlotSource.LOOSE_REGEX
        assert result.slots[0].confidence == pytest.approx(0.58)
        assert result.display_text == "The answer is ______ today."

    def test_empty_brackets_found_after_normalization(self):
        result = SlotExtractor().extract("Pick one (    ) now.")

        assert result.source == SlotSource.LOOSE_REGEX
        assert result.pairs == [("", 3)]
        assert result.slots[0].confidence == pytest.approx(0.58)
        assert result.display_text == "Pick one ___ now."

    def test_loose_slot_kept_beside_regex_slot(self):
        """A lone underscore the direct scan skips is still reported."""
        result = SlotExtractor().extract("She _ ran ___ fast.")

        assert result.source == SlotSource.REGEX
        assert [slot.missing_count for slot in result.slots] == [1, 3]
        assert result.slots[0].confidence == pytest.approx(0.58)
        assert result.slots[1].confidence == 1.0
        assert result.display_text.endswith(" ran ___ fast.")

    def test_overlapping_loose_slot_not_merged(self):
        result = SlotExtractor().extract("The cat sat on the ___.")

        assert result.pairs == [("", 3)]

    def test_cap_keeps_first_slots(self):
        result = SlotExtractor(max_slots=2).extract("a ___ b ____ c _____ d")

        assert result.pairs == [("", 3), ("", 4)]

    def test_hints_take_precedence(self):
        hints = [SlotHint(prefix="sw", missing_count=4)]

        result = SlotExtractor().extract("I like to sw___ in the lake.", hints)

        assert result.source == SlotSource.VISION
        assert result.pairs == [("sw", 4)]
        assert result.display_text == "I like to sw____ in the lake."
        # prefix and offset agree with the regex, the count does not
        assert result.slots[0].confidence == pytest.approx(0.80)

    def test_unanchored_hints_ignored(self):
        hints = [SlotHint(prefix="zz", missing_count=3)]

        result = SlotExtractor().extract("I like to sw___ in the lake.", hints)

        assert result.source == SlotSource.REGEX
        assert result.pairs == [("sw", 3)]

    def test_too_many_hints_ignored(self):
        hints = [SlotHint(prefix="sw", missing_count=3), SlotHint(prefix="", missing_count=3)]

        result = SlotExtractor(max_slots=1).extract("I like to sw___ in the lake.", hints)

        assert result.source == SlotSource.REGEX

    def test_mismatched_answers(self):
        result = SlotExtractor().extract(EXAMPLE)

        assert result.mismatched_answers(["swimmer", "runner"]) == []
        assert result.mismatched_answers(["swimmer", "run"]) == [1]
        assert result.mismatched_answers(["swimmer"]) == [0, 1]

    def test_fill(self):
        result = SlotExtractor().extract(EXAMPLE)

        assert result.fill(["swimmer", "runner"]) == "She is a goo* swimmer and a fast runner."

    def test_to_dict_keys(self):
        payload = SlotExtractor().extract(EXAMPLE).to_dict()

        assert payload["slotSource"] == "regex"
        assert set(payload["slots"][0]) == {
            "index",
            "start",
            "end",
            "prefix",
            "missingCount",
            "confidence",
            "contextSnippet",
        }


class TestSlotRepair:
    """Tests for SlotExtractor.extract_with_repair."""

    @pytest.mark.asyncio
    async def test_repair_used_when_nothing_found(self):
        generator = ScriptedGenerator(
            ['{"text": "She likes to sw___ in summer.", "slots": [{"prefix": "sw", "missingCount": 3}]}']
        )

        result = await SlotExtractor().extract_with_repair("She likes to swim in summer.", generator=generator)

        assert result.source == SlotSource.LLM_REPAIR
        assert result.pairs == [("sw", 3)]
        assert result.normalized_text == "She likes to sw___ in summer."
        assert result.slots[0].confidence == pytest.approx(0.55)

    @pytest.mark.asyncio
    async def test_repair_not_called_when_regex_finds_slots(self):
        generator = ScriptedGenerator(["unused"])

        result = await SlotExtractor().extract_with_repair(EXAMPLE, generator=generator)

        assert result.source == SlotSource.REGEX
        assert generator.prompts == []

    @pytest.mark.asyncio
    async def test_repair_rejected_when_text_disagrees(self):
        generator = ScriptedGenerator(
            ['{"text": "She likes to sw___ in summer.", "slots": [{"prefix": "sw", "missingCount": 4}]}']
        )

        result = await SlotExtractor().extract_with_repair("She likes to swim in summer.", generator=generator)

        assert result.source == SlotSource.NONE
        assert not result.has_slots

    @pytest.mark.asyncio
    async def test_provider_failure_falls_through(self):
        generator = ScriptedGenerator([ProviderUnavailableError("down", reason="http_503")])

        result = await SlotExtractor().extract_with_repair("The answer is ...... today.", generator=generator)

        assert result.source == SlotSource.LOOSE_REGEX
