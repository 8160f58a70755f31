"""
Structural validators for constructed candidates.

Every candidate is shape-checked before it is scored. A candidate with
any ERROR issue is structurally invalid and never reaches the similarity
gate; the first error's code becomes the failure reason reported if the
whole fallback ladder runs dry.

Cloze checks:
- expected number of blanks, no multiple-choice markers
- no blank at the very end of the text
- each answer fits its blank (prefix + missing letters)
- word count within a window around the source

Multiple-choice checks:
- exact choice count, unique choices, no meta-choices
- consistent choice shape (all phrases or all sentences)
- an inference cue in the question
- the correct choice is not a verbatim copy of the source's correct choice
- grounding in the passage, without copying passage phrases
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from difficulty_gate.extraction.format_classifier import has_mc_markers
from difficulty_gate.extraction.mc_parser import MultipleChoiceItem
from difficulty_gate.extraction.slot_extractor import scan_strict
from difficulty_gate.generation.candidates import Candidate
from difficulty_gate.generation.fill_blank import is_content_word
from difficulty_gate.scoring.text_metrics import words
from difficulty_gate.semantic.similarity_service import ngram_copy_ratio


class ValidationSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class ValidationIssue:
    code: str
    severity: ValidationSeverity
    message: str


@dataclass
class ShapeValidation:
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not any(i.severity == ValidationSeverity.ERROR for i in self.issues)

    @property
    def reason(self) -> str | None:
        errors = [i for i in self.issues if i.severity == ValidationSeverity.ERROR]
        return errors[0].code if errors else None

    def add_error(self, code: str, message: str) -> None:
        self.issues.append(ValidationIssue(code, ValidationSeverity.ERROR, message))

    def add_warning(self, code: str, message: str) -> None:
        self.issues.append(ValidationIssue(code, ValidationSeverity.WARNING, message))


# =============================================================================
# Pattern Definitions
# =============================================================================

META_CHOICE_PATTERNS = [
    (re.compile(r"\ball\s+of\s+the\s+above\b", re.IGNORECASE), "META_ALL", "'All of the above' choice"),
    (re.compile(r"\bnone\s+of\s+the\s+above\b", re.IGNORECASE), "META_NONE", "'None of the above' choice"),
    (re.compile(r"\bboth\s+[A-F]\s+and\s+[A-F]\b", re.IGNORECASE), "META_BOTH", "'Both A and B' choice"),
    (re.compile(r"\b(?:neither|either)\s+[A-F]\s+(?:n?or)\s+[A-F]\b", re.IGNORECASE), "META_EITHER", "Choice refers to other choices"),
]

INFERENCE_CUE_PATTERNS = [
    re.compile(r"\binfer(?:red|ence)?\b", re.IGNORECASE),
    re.compile(r"\bimpl(?:y|ies|ied)\b", re.IGNORECASE),
    re.compile(r"\bsuggest(?:s|ed)?\b", re.IGNORECASE),
    re.compile(r"\bmost\s+likely\b", re.IGNORECASE),
    re.compile(r"\bprobably\b", re.IGNORECASE),
    re.compile(r"\bconclu(?:de|ded|sion)\b", re.IGNORECASE),
    re.compile(r"\bwhy\s+(?:does|did|is|was|might)\b", re.IGNORECASE),
    re.compile(r"\b(?:feel|feels|felt|attitude|purpose|intend|intention)\b", re.IGNORECASE),
    re.compile(r"\bbest\s+(?:describes|explains|supported)\b", re.IGNORECASE),
]

TERMINAL_PUNCTUATION = re.compile(r"[.!?]$")


def has_inference_cue(question: str) -> bool:
    return any(pattern.search(question) for pattern in INFERENCE_CUE_PATTERNS)


def normalize_choice(choice: str) -> str:
    return " ".join(choice.lower().split()).rstrip(".!?")


# =============================================================================
# Cloze
# =============================================================================


@dataclass(frozen=True)
class ClozeShapeRules:
    expected_blank_count: int = 1
    source_word_count: int | None = None
    word_count_window: int = 15


def validate_cloze(candidate: Candidate, rules: ClozeShapeRules) -> ShapeValidation:
    result = ShapeValidation()
    text = candidate.text
    found = scan_strict(text)

    if len(found) != rules.expected_blank_count:
        result.add_error(
            "BLANK_COUNT",
            f"Expected {rules.expected_blank_count} blank(s), found {len(found)}",
        )
    if has_mc_markers(text):
        result.add_error("MC_MARKERS", "Cloze text contains multiple-choice markers")
    if found and not text[found[-1].end :].strip():
        result.add_error("BLANK_AT_END", "Blank is positioned at the very end of the text")

    if len(candidate.correct_answers) != len(found):
        result.add_error(
            "ANSWER_COUNT",
            f"{len(candidate.correct_answers)} answer(s) for {len(found)} blank(s)",
        )
    else:
        for span, answer in zip(found, candidate.correct_answers):
            if len(answer) != len(span.prefix) + span.missing_count or not answer.lower().startswith(
                span.prefix.lower()
            ):
                result.add_error(
                    "ANSWER_LENGTH",
                    f"Answer {answer!r} does not fit blank {span.prefix + '_' * span.missing_count}",
                )

    if rules.source_word_count is not None:
        count = len(words(text))
        if abs(count - rules.source_word_count) > rules.word_count_window:
            result.add_error(
                "WORD_COUNT",
                f"Word count {count} outside ±{rules.word_count_window} of source {rules.source_word_count}",
            )

    if len(set(d.lower() for d in candidate.distractors)) < len(candidate.distractors):
        result.add_warning("DUPLICATE_DISTRACTOR", "Distractors repeat")
    return result


# =============================================================================
# Multiple choice
# =============================================================================


@dataclass(frozen=True)
class MultipleChoiceRules:
    expected_choice_count: int
    source_correct_choice: str | None = None
    ngram_copy_threshold: float = 0.65
    ngram_size: int = 3
    sentence_min_words: int = 4
    min_grounding_tokens: int = 1
    require_inference_cue: bool = True


def _choice_shape(choice: str, sentence_min_words: int) -> str:
    is_sentence = bool(TERMINAL_PUNCTUATION.search(choice.strip())) and len(words(choice)) >= sentence_min_words
    return "sentence" if is_sentence else "phrase"


def validate_multiple_choice(item: MultipleChoiceItem, rules: MultipleChoiceRules) -> ShapeValidation:
    result = ShapeValidation()
    choices = list(item.choices)

    if len(choices) != rules.expected_choice_count:
        result.add_error(
            "CHOICE_COUNT", f"Expected {rules.expected_choice_count} choices, got {len(choices)}"
        )
    if item.correct_index is None or not 0 <= item.correct_index < len(choices):
        result.add_error("CORRECT_INDEX", f"correctIndex {item.correct_index} out of range")
        return result

    if len({normalize_choice(c) for c in choices}) < len(choices):
        result.add_error("DUPLICATE_CHOICES", "Choices are not unique")

    for choice in choices:
        for pattern, code, message in META_CHOICE_PATTERNS:
            if pattern.search(choice):
                result.add_error(code, message)

    shapes = {_choice_shape(c, rules.sentence_min_words) for c in choices}
    if len(shapes) > 1:
        result.add_error("MIXED_CHOICE_SHAPE", "Choices mix phrases and full sentences")

    if rules.require_inference_cue and not has_inference_cue(item.question):
        result.add_error("NO_INFERENCE_CUE", "Question does not ask for an inference")

    correct = item.choices[item.correct_index]
    if rules.source_correct_choice is not None:
        if correct == rules.source_correct_choice:
            result.add_error("CORRECT_CHOICE_REUSED", "Correct choice is identical to the source's")
        elif normalize_choice(correct) == normalize_choice(rules.source_correct_choice):
            result.add_error("CORRECT_CHOICE_REUSED", "Correct choice only differs from the source's by case or spacing")

    if item.passage:
        passage_tokens = {w.lower() for w in words(item.passage) if is_content_word(w, 3)}
        correct_tokens = {w.lower() for w in words(correct) if is_content_word(w, 3)}
        if len(passage_tokens & correct_tokens) < rules.min_grounding_tokens:
            result.add_error("UNGROUNDED_CORRECT", "Correct choice shares no content word with the passage")
        for choice in choices:
            ratio = ngram_copy_ratio(choice, item.passage, rules.ngram_size)
            if ratio > rules.ngram_copy_threshold:
                result.add_error(
                    "PASSAGE_COPY",
                    f"Choice copies passage {rules.ngram_size}-grams at {ratio:.0%}",
                )
                break
    return result
