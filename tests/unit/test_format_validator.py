"""
Unit tests for cloze and multiple-choice candidate shape validation.
"""
from difficulty_gate.extraction.format_classifier import ItemFormat
from difficulty_gate.extraction.mc_parser import MultipleChoiceItem
from difficulty_gate.generation.candidates import Candidate
from difficulty_gate.generation.format_validator import (
    ClozeShapeRules,
    MultipleChoiceRules,
    has_inference_cue,
    validate_cloze,
    validate_multiple_choice,
)


def cloze(text, answers, distractors=("sunny", "warm", "today")):
    return Candidate(
        text=text,
        correct_answers=tuple(answers),
        distractors=tuple(distractors),
        reasoning_steps=1,
        format=ItemFormat.FULL_BLANK,
    )


def mc_item(question="Why did Maria most likely leave the party early?", choices=None, correct=0, passage=None):
    return MultipleChoiceItem(
        question=question,
        choices=tuple(choices or ("She was tired", "She disliked music", "She had a test", "She lost her keys")),
        correct_index=correct,
        passage=passage,
    )


class TestClozeValidation:
    """Tests for validate_cloze."""

    def test_valid(self):
        result = validate_cloze(cloze("The _______ is sunny and warm today.", ["weather"]), ClozeShapeRules())

        assert result.is_valid
        assert result.reason is None

    def test_blank_before_final_period_allowed(self):
        result = validate_cloze(cloze("The weather is sunny and warm _____.", ["today"]), ClozeShapeRules())

        assert result.is_valid

    def test_blank_at_end(self):
        """Only whitespace after the last blank counts as the very end."""
        result = validate_cloze(cloze("The weather is sunny and warm _____  ", ["today"]), ClozeShapeRules())

        assert result.reason == "BLANK_AT_END"

    def test_answer_does_not_fit(self):
        result = validate_cloze(cloze("The _______ is sunny today.", ["sun"]), ClozeShapeRules())

        assert result.reason == "ANSWER_LENGTH"

    def test_blank_count(self):
        result = validate_cloze(cloze("The _______ is _____ today.", ["weather", "sunny"]), ClozeShapeRules())

        assert result.reason == "BLANK_COUNT"

    def test_mc_markers(self):
        result = validate_cloze(cloze("A) The ___ is here.\nB) Another line.", ["cat"]), ClozeShapeRules())

        assert not result.is_valid
        assert "MC_MARKERS" in [issue.code for issue in result.issues]

    def test_word_count_window(self):
        rules = ClozeShapeRules(source_word_count=30, word_count_window=5)

        result = validate_cloze(cloze("The _______ is sunny and warm today.", ["weather"]), rules)

        assert result.reason == "WORD_COUNT"

    def test_duplicate_distractors_only_warn(self):
        result = validate_cloze(
            cloze("The _______ is sunny today.", ["weather"], ("sunny", "Sunny", "today")), ClozeShapeRules()
        )

        assert result.is_valid
        assert result.issues[0].code == "DUPLICATE_DISTRACTOR"


class TestMultipleChoiceValidation:
    """Tests for validate_multiple_choice."""

    def test_valid(self):
        rules = MultipleChoiceRules(expected_choice_count=4, source_correct_choice="He felt sick")

        assert validate_multiple_choice(mc_item(), rules).is_valid

    def test_choice_count(self):
        result = validate_multiple_choice(mc_item(), MultipleChoiceRules(expected_choice_count=3))

        assert result.reason == "CHOICE_COUNT"

    def test_correct_index_out_of_range(self):
        result = validate_multiple_choice(mc_item(correct=7), MultipleChoiceRules(expected_choice_count=4))

        assert result.reason == "CORRECT_INDEX"

    def test_duplicate_choices(self):
        item = mc_item(choices=("She was tired", "she was tired.", "She had a test", "She lost her keys"))

        assert validate_multiple_choice(item, MultipleChoiceRules(4)).reason == "DUPLICATE_CHOICES"

    def test_meta_choice(self):
        item = mc_item(choices=("She was tired", "She disliked music", "She had a test", "All of the above"))

        assert validate_multiple_choice(item, MultipleChoiceRules(4)).reason == "META_ALL"

    def test_mixed_shapes(self):
        item = mc_item(choices=("She was tired", "She had worked a very long shift.", "She had a test", "Keys"))

        assert validate_multiple_choice(item, MultipleChoiceRules(4)).reason == "MIXED_CHOICE_SHAPE"

    def test_inference_cue_required(self):
        item = mc_item(question="What did Maria bring to the party?")

        assert validate_multiple_choice(item, MultipleChoiceRules(4)).reason == "NO_INFERENCE_CUE"

    def test_correct_choice_reused(self):
        rules = MultipleChoiceRules(4, source_correct_choice="she was  tired")

        assert validate_multiple_choice(mc_item(), rules).reason == "CORRECT_CHOICE_REUSED"

    def test_ungrounded_correct(self):
        item = mc_item(passage="Maria studied all night for her chemistry exam.")

        assert validate_multiple_choice(item, MultipleChoiceRules(4)).reason == "UNGROUNDED_CORRECT"

    def test_passage_copy(self):
        item = mc_item(
            choices=("Maria studied all night", "She disliked music", "She had a test", "She lost her keys"),
            passage="Maria studied all night for her chemistry exam.",
        )

        assert validate_multiple_choice(item, MultipleChoiceRules(4)).reason == "PASSAGE_COPY"

    def test_has_inference_cue(self):
        assert has_inference_cue("Why did Tom stay home?")
        assert has_inference_cue("What can be inferred about the author?")
        assert not has_inference_cue("What colour is the car?")
