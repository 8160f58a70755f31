"""
Unit tests for format classification and the multiple-choice parser.
"""
import pytest

from difficulty_gate.errors import InvalidInputError, ProviderUnavailableError
from difficulty_gate.extraction.format_classifier import ItemFormat, classify_format, count_blanks, has_mc_markers
from difficulty_gate.extraction.mc_parser import ParseMethod, parse_local, parse_multiple_choice
from tests.fakes import ScriptedGenerator

TRAILING = """Why did Tom stay home?
A) He felt sick
B) It was raining
C) He had homework
D) His car broke
Answer: A"""

LABELED = """Passage: Tom woke up with a fever and a sore throat.
Question: Why did Tom stay home?
Choices:
A) He felt sick
B) It was raining
Answer: A"""

UNMARKED = """Why did Tom stay home?
A) He felt sick
B) It was raining
C) He had homework"""


class TestFormatClassifier:
    """Tests for classify_format."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            (TRAILING, ItemFormat.MULTIPLE_CHOICE),
            ("The c__ sat on the mat.", ItemFormat.PREFIX_BLANK),
            ("The ___ sat on the mat.", ItemFormat.FULL_BLANK),
            ("Describe your favourite holiday.", ItemFormat.CONSTRUCTED_RESPONSE),
            ("   ", ItemFormat.UNKNOWN),
        ],
    )
    def test_classify(self, text, expected):
        assert classify_format(text) == expected

    def test_single_marker_is_not_multiple_choice(self):
        assert has_mc_markers("A) only one option")
        assert classify_format("A) only one option") == ItemFormat.CONSTRUCTED_RESPONSE

    def test_count_blanks(self):
        assert count_blanks("a ___ and b__") == 2


class TestParseLocal:
    """Tests for the deterministic parse layers."""

    def test_trailing_block(self):
        parsed = parse_local(TRAILING)

        assert parsed.method == ParseMethod.TRAILING_BLOCK
        assert parsed.item.question == "Why did Tom stay home?"
        assert parsed.item.choices == ("He felt sick", "It was raining", "He had homework", "His car broke")
        assert parsed.item.correct_index == 0
        assert parsed.item.passage is None

    def test_labeled_sections(self):
        parsed = parse_local(LABELED)

        assert parsed.method == ParseMethod.LABELED
        assert parsed.item.passage == "Tom woke up with a fever and a sore throat."
        assert parsed.item.choices == ("He felt sick", "It was raining")
        assert parsed.item.correct_choice == "He felt sick"

    def test_marked_choice(self):
        text = UNMARKED.replace("It was raining", "It was raining *")

        parsed = parse_local(text)

        assert parsed.item.correct_index == 1
        assert parsed.item.choices[1] == "It was raining"

    def test_inline_choices(self):
        text = "What colour is the sky?\nA) red B) blue C) green\nAnswer: B"

        parsed = parse_local(text)

        assert parsed.item.choices == ("red", "blue", "green")
        assert parsed.item.correct_index == 1

    def test_circled_numbers(self):
        text = "Which is a fruit?\n① apple\n② car\n③ desk\nAnswer: ②"

        parsed = parse_local(text)

        assert parsed.item.choices == ("apple", "car", "desk")
        assert parsed.item.correct_index == 1

    def test_passage_before_question(self):
        text = "Tom woke up with a fever.\n" + TRAILING

        parsed = parse_local(text)

        assert parsed.item.passage == "Tom woke up with a fever."
        assert parsed.item.distractors == ["It was raining", "He had homework", "His car broke"]

    def test_not_multiple_choice(self):
        assert parse_local("Just one sentence.") is None


class TestParseMultipleChoice:
    """Tests for the layered parse including the external layer."""

    @pytest.mark.asyncio
    async def test_local_answer_skips_generator(self):
        generator = ScriptedGenerator(["unused"])

        parsed = await parse_multiple_choice(TRAILING, generator)

        assert parsed.method == ParseMethod.TRAILING_BLOCK
        assert generator.prompts == []

    @pytest.mark.asyncio
    async def test_external_parse_supplies_answer(self):
        generator = ScriptedGenerator(
            [
                '{"question": "Why did Tom stay home?", '
                '"choices": ["He felt sick", "It was raining", "He had homework"], "correctIndex": 2}'
            ]
        )

        parsed = await parse_multiple_choice(UNMARKED, generator)

        assert parsed.method == ParseMethod.EXTERNAL
        assert parsed.item.correct_index == 2

    @pytest.mark.asyncio
    async def test_missing_answer_assumes_first_choice(self):
        parsed = await parse_multiple_choice(UNMARKED)

        assert parsed.method == ParseMethod.TRAILING_BLOCK
        assert parsed.item.correct_index == 0

    @pytest.mark.asyncio
    async def test_out_of_range_external_index_ignored(self):
        generator = ScriptedGenerator(['{"question": "Q?", "choices": ["a", "b"], "correctIndex": 5}'])

        parsed = await parse_multiple_choice(UNMARKED, generator)

        assert parsed.item.correct_index == 0
        assert parsed.item.question == "Why did Tom stay home?"

    @pytest.mark.asyncio
    async def test_unparseable_raises(self):
        with pytest.raises(InvalidInputError) as exc_info:
            await parse_multiple_choice("Just one sentence.", ScriptedGenerator(["not json"]))

        assert exc_info.value.reason == "unparseable_multiple_choice"

    @pytest.mark.asyncio
    async def test_unavailable_provider_assumes_first_choice(self):
        """A local parse without an answer key survives a provider outage."""
        generator = ScriptedGenerator([ProviderUnavailableError("busy", reason="http_503")])

        parsed = await parse_multiple_choice(UNMARKED, generator)

        assert parsed.method == ParseMethod.TRAILING_BLOCK
        assert parsed.item.correct_index == 0
        assert len(generator.prompts) == 1

    @pytest.mark.asyncio
    async def test_unavailable_provider_without_local_parse_raises(self):
        generator = ScriptedGenerator([ProviderUnavailableError("busy", reason="http_503")])

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await parse_multiple_choice("Just one sentence.", generator)

        assert exc_info.value.reason == "http_503"
