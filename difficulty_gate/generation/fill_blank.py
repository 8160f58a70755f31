"""
Deterministic fill-blank construction.

Builds cloze candidates straight from source text without the generation
capability: pick a content word, carve it into a blank in the source's
blank style, and assemble distractors from the surrounding words. Also
carries the deterministic blank carving used for generated passages
(step C of the cloze attempt) and answer scoring.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from difficulty_gate.extraction.format_classifier import ItemFormat
from difficulty_gate.extraction.glyph_rules import strip_instructions
from difficulty_gate.extraction.slot_extractor import (
    MAX_MISSING,
    BlankSlot,
    ExtractionResult,
    SlotSpan,
    render_display,
)
from difficulty_gate.generation.candidates import Candidate, CandidateOrigin
from difficulty_gate.scoring.text_metrics import words

WORD = re.compile(r"[A-Za-z']+")
SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

PickMode = Literal["first", "longest", "last"]
PICK_MODES: tuple[PickMode, ...] = ("first", "longest", "last")

MIN_TARGET_LENGTH = 5
MIN_DISTRACTOR_LENGTH = 4
DISTRACTOR_COUNT = 3
FALLBACK_DISTRACTORS = ("early", "happy", "warm")

COMMON_WORDS = (
    "daily", "problem", "progress", "process", "produce", "fat", "few", "fuel",
    "low", "long", "lost", "late", "last", "list", "line", "light", "local",
    "likely", "little", "public", "private", "simple", "single", "strong",
    "steady", "swimming", "swimmer", "swim", "swing", "choose", "change",
    "chance", "sudden", "silver", "silent",
)

STOPWORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "because", "although", "since",
        "while", "whereas", "if", "when", "though", "unless", "however",
        "therefore", "moreover", "so", "yet", "is", "are", "was", "were", "be",
        "been", "being", "to", "of", "in", "on", "for", "with", "as", "by", "at",
        "from", "that", "this", "these", "those", "it", "its", "their", "his",
        "her", "we", "you", "they", "i", "there", "about", "which", "would",
        "could", "should",
    }
)


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in SENTENCE_SPLIT.split(text) if s.strip()]


def is_content_word(word: str, min_length: int = MIN_TARGET_LENGTH) -> bool:
    return word.isalpha() and len(word) >= min_length and word.lower() not in STOPWORDS


def pick_target_word(
    sentence: str,
    mode: PickMode = "first",
    exclude: frozenset[str] = frozenset(),
    max_length: int | None = None,
) -> str | None:
    """Pick a content word (5+ letters, not a stopword) to blank out."""
    tokens = WORD.findall(sentence)
    candidates = [
        w
        for w in tokens
        if is_content_word(w)
        and w.lower() not in exclude
        and (max_length is None or len(w) <= max_length)
    ]
    if not candidates:
        return None
    if mode == "last":
        return candidates[-1]
    if mode == "longest":
        return max(candidates, key=len)
    return candidates[0]


def build_distractors(text: str, target: str, prefix: str = "") -> list[str]:
    """
    Three distractors for ``target``.

    For prefix blanks, words sharing the visible prefix come first so the
    prefix alone does not give the answer away.
    """
    seen = {target.lower()}
    chosen: list[str] = []

    def take(word: str) -> None:
        if len(chosen) < DISTRACTOR_COUNT and word.lower() not in seen:
            seen.add(word.lower())
            chosen.append(word)

    if prefix:
        pool = [*WORD.findall(text), *COMMON_WORDS]
        for word in pool:
            if word.lower().startswith(prefix.lower()) and word.isalpha():
                take(word)
    for word in WORD.findall(text):
        if len(word) >= MIN_DISTRACTOR_LENGTH and word.isalpha():
            take(word)
    for word in FALLBACK_DISTRACTORS:
        take(word)
    return chosen


def complete_prefix(prefix: str, missing_count: int) -> str | None:
    """The single common word matching a prefix blank, if there is exactly one."""
    length = len(prefix) + missing_count
    matches = [w for w in COMMON_WORDS if w.startswith(prefix.lower()) and len(w) == length]
    return matches[0] if len(matches) == 1 else None


def reasoning_steps_for(text: str) -> int:
    return 2 if len(words(text)) >= 12 else 1


# =============================================================================
# Source answers and plain text
# =============================================================================


def resolve_answers(extraction: ExtractionResult, answers: list[str] | None = None) -> list[str | None]:
    """Answer per slot: supplied answers when they fit, else a lexicon completion."""
    resolved: list[str | None] = []
    for i, slot in enumerate(extraction.slots):
        supplied = answers[i] if answers and i < len(answers) else None
        if supplied and slot.accepts(supplied):
            resolved.append(supplied)
        elif slot.prefix:
            resolved.append(complete_prefix(slot.prefix, slot.missing_count))
        else:
            resolved.append(None)
    return resolved


def plain_text(extraction: ExtractionResult, answers: list[str | None]) -> str:
    """Source text with known answers filled in and unknown blanks dropped."""
    pieces = []
    cursor = 0
    display = extraction.display_text
    for slot, answer in zip(extraction.slots, answers):
        pieces.append(display[cursor : slot.start])
        pieces.append(answer or "")
        cursor = slot.end
    pieces.append(display[cursor:])
    text = strip_instructions("".join(pieces))
    return " ".join(text.split())


# =============================================================================
# Carving
# =============================================================================


@dataclass(frozen=True)
class BlankStyle:
    """How blanks are drawn: ``prefix_length`` visible letters, then underscores."""

    prefix_length: int = 0

    @classmethod
    def from_slots(cls, slots: list[BlankSlot]) -> BlankStyle:
        prefixed = [len(slot.prefix) for slot in slots if slot.prefix]
        return cls(prefix_length=prefixed[0] if prefixed else 0)

    @property
    def format(self) -> ItemFormat:
        return ItemFormat.PREFIX_BLANK if self.prefix_length else ItemFormat.FULL_BLANK

    def fits(self, word: str) -> bool:
        missing = len(word) - self.prefix_length
        return 1 <= missing <= MAX_MISSING


@dataclass(frozen=True)
class CarvedText:
    display_text: str
    slots: tuple[BlankSlot, ...]
    answers: tuple[str, ...]


def carve_blanks(text: str, chosen: list[str], style: BlankStyle) -> CarvedText | None:
    """
    Replace each chosen word's first whole-word occurrence with a blank.

    Returns None when a word is missing from the text, does not fit the
    blank style, or two choices collide.
    """
    raw: list[SlotSpan] = []
    for word in chosen:
        if not style.fits(word):
            return None
        match = None
        for flags in (0, re.IGNORECASE):
            for found in re.finditer(rf"(?<![A-Za-z']){re.escape(word)}(?![A-Za-z'])", text, flags):
                if not any(found.start() < r.end and r.start < found.end() for r in raw):
                    match = found
                    break
            if match:
                break
        if match is None:
            return None
        actual = match.group(0)
        raw.append(
            SlotSpan(
                start=match.start(),
                end=match.end(),
                prefix=actual[: style.prefix_length],
                missing_count=len(actual) - style.prefix_length,
            )
        )

    raw.sort(key=lambda r: r.start)
    answers = tuple(text[r.start : r.end] for r in raw)
    display, slots = render_display(text, raw, [1.0] * len(raw))
    return CarvedText(display_text=display, slots=tuple(slots), answers=answers)


def build_fill_blank_candidates(
    text: str,
    style: BlankStyle,
    blank_count: int = 1,
    exclude: frozenset[str] = frozenset(),
) -> list[Candidate]:
    """
    Deterministic candidates from plain source text, one per pick mode.

    The longest sentence is blanked; additional blanks (when the source has
    two) come from the remaining content words in reading order.
    """
    sentences = split_sentences(text)
    if not sentences:
        return []
    sentence = max(sentences, key=len)
    max_length = style.prefix_length + MAX_MISSING

    candidates: list[Candidate] = []
    seen_texts: set[str] = set()
    for mode in PICK_MODES:
        target = pick_target_word(sentence, mode, exclude, max_length)
        if target is None:
            continue
        chosen = [target]
        if blank_count > 1:
            taken = exclude | {target.lower()}
            extra = pick_target_word(sentence, "first", frozenset(taken), max_length)
            if extra is None:
                continue
            chosen.append(extra)

        carved = carve_blanks(sentence, chosen, style)
        if carved is None or carved.display_text in seen_texts:
            continue
        seen_texts.add(carved.display_text)
        candidates.append(
            Candidate(
                text=carved.display_text,
                correct_answers=carved.answers,
                distractors=tuple(
                    build_distractors(sentence, carved.answers[0], carved.slots[0].prefix)
                ),
                reasoning_steps=reasoning_steps_for(sentence),
                format=style.format,
                slots=carved.slots,
                origin=CandidateOrigin.DETERMINISTIC,
            )
        )
    return candidates


# =============================================================================
# Answer scoring
# =============================================================================


@dataclass(frozen=True)
class BlankResult:
    index: int
    expected: str
    submitted: str
    ok: bool


@dataclass(frozen=True)
class AnswerScore:
    total: int
    correct: int
    accuracy: float
    per_blank: tuple[BlankResult, ...]

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "correct": self.correct,
            "accuracy": self.accuracy,
            "perBlank": [
                {"index": r.index, "expected": r.expected, "submitted": r.submitted, "ok": r.ok}
                for r in self.per_blank
            ],
        }


def score_fill_blank_answers(expected: list[str], submitted: list[str]) -> AnswerScore:
    """Case-insensitive per-blank comparison; missing submissions count as wrong."""
    results = []
    for i, answer in enumerate(expected):
        given = submitted[i] if i < len(submitted) else ""
        results.append(
            BlankResult(i, answer, given, answer.strip().lower() == given.strip().lower())
        )
    correct = sum(1 for r in results if r.ok)
    accuracy = correct / len(expected) if expected else 0.0
    return AnswerScore(len(expected), correct, accuracy, tuple(results))
