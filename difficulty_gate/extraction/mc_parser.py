"""
Layered parser for multiple-choice reading items.

Layers, tried in order:

1. Explicit labeled sections ("Passage:", "Question:", "Choices:", "Answer:").
2. Heuristic trailing-choice block: the last run of three or more choice
   lines; the line before it is the question, anything earlier is the passage.
3. An external structured parse through the text generation capability,
   decoded against a strict schema.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from difficulty_gate.errors import InvalidInputError, ProviderUnavailableError, StructuredOutputError
from difficulty_gate.extraction.glyph_rules import normalize_glyphs
from difficulty_gate.generation.prompts import MC_PARSE_PROMPT, SYSTEM_PROMPT
from difficulty_gate.generation.schemas import MultipleChoiceOutput, decode_structured

if TYPE_CHECKING:
    from difficulty_gate.generation.llm_client import TextGenerator

CIRCLED = "①②③④⑤⑥"

CHOICE_LINE = re.compile(
    r"^\s*(?:\(?(?P<letter>[A-Fa-f])[).:]|\(?(?P<number>[1-6])[).]|(?P<circled>[①②③④⑤⑥]))\s*(?P<text>\S.*?)\s*$"
)
INLINE_CHOICE = re.compile(r"\(?\b([A-F])\)\s*")
LABEL_LINE = re.compile(
    r"^\s*(?P<label>passage|text|reading|question|q|choices|options|answer|correct answer)\s*[:：]\s*(?P<rest>.*)$",
    re.IGNORECASE,
)
ANSWER_VALUE = re.compile(r"^\(?(?P<key>[A-Fa-f1-6①②③④⑤⑥])\)?")
CORRECT_MARK = re.compile(r"\s*(?:\*|✓|\(correct\))\s*$", re.IGNORECASE)

MIN_HEURISTIC_CHOICES = 3


class ParseMethod(str, Enum):
    LABELED = "labeled"
    TRAILING_BLOCK = "trailing_block"
    EXTERNAL = "external"


@dataclass(frozen=True)
class MultipleChoiceItem:
    question: str
    choices: tuple[str, ...]
    correct_index: int | None = None
    passage: str | None = None

    @property
    def correct_choice(self) -> str | None:
        if self.correct_index is None:
            return None
        return self.choices[self.correct_index]

    @property
    def distractors(self) -> list[str]:
        return [c for i, c in enumerate(self.choices) if i != self.correct_index]

    def full_text(self) -> str:
        parts = [self.passage or "", self.question, *self.choices]
        return "\n".join(part for part in parts if part)

    def to_dict(self) -> dict:
        return {
            "passage": self.passage,
            "question": self.question,
            "choices": list(self.choices),
            "correctIndex": self.correct_index,
        }


@dataclass(frozen=True)
class ParsedItem:
    item: MultipleChoiceItem
    method: ParseMethod


def _answer_index(key: str) -> int:
    if key in CIRCLED:
        return CIRCLED.index(key)
    if key.isdigit():
        return int(key) - 1
    return ord(key.upper()) - ord("A")


def _choice_text(line: str) -> tuple[str, bool] | None:
    match = CHOICE_LINE.match(line)
    if not match:
        return None
    text = match.group("text")
    marked = CORRECT_MARK.search(text) is not None
    return CORRECT_MARK.sub("", text).strip(), marked


def _split_inline(line: str) -> list[str]:
    """Split "A) red B) blue C) green" into choices."""
    markers = list(INLINE_CHOICE.finditer(line))
    if len(markers) < MIN_HEURISTIC_CHOICES:
        return []
    letters = [m.group(1) for m in markers]
    if letters != [chr(ord("A") + i) for i in range(len(letters))]:
        return []
    return [
        line[m.end() : markers[i + 1].start() if i + 1 < len(markers) else len(line)].strip()
        for i, m in enumerate(markers)
    ]


def _build(
    question: str,
    choice_lines: list[tuple[str, bool]],
    answer_key: str | None,
    passage: str | None,
) -> MultipleChoiceItem | None:
    choices = tuple(text for text, _ in choice_lines if text)
    if len(choices) < 2 or not question.strip():
        return None
    correct: int | None = None
    if answer_key:
        correct = _answer_index(answer_key)
    else:
        marked = [i for i, (_, flag) in enumerate(choice_lines) if flag]
        if len(marked) == 1:
            correct = marked[0]
    if correct is not None and not 0 <= correct < len(choices):
        correct = None
    return MultipleChoiceItem(
        question=question.strip(),
        choices=choices,
        correct_index=correct,
        passage=passage.strip() if passage and passage.strip() else None,
    )


def parse_labeled(text: str) -> MultipleChoiceItem | None:
    sections: dict[str, list[str]] = {}
    current: str | None = None
    for line in text.splitlines():
        label_match = LABEL_LINE.match(line)
        if label_match:
            label = label_match.group("label").lower()
            current = {
                "text": "passage",
                "reading": "passage",
                "q": "question",
                "options": "choices",
                "correct answer": "answer",
            }.get(label, label)
            rest = label_match.group("rest").strip()
            sections.setdefault(current, [])
            if rest:
                sections[current].append(rest)
            continue
        if current is not None and line.strip():
            sections[current].append(line.strip())

    if "question" not in sections:
        return None

    question_lines = sections["question"]
    choice_source = sections.get("choices", [])
    if not choice_source:
        # choices may follow the question without their own label
        split = next((i for i, line in enumerate(question_lines) if CHOICE_LINE.match(line)), None)
        if split is None:
            return None
        question_lines, choice_source = question_lines[:split], question_lines[split:]

    choice_lines = [parsed for line in choice_source if (parsed := _choice_text(line))]
    if len(choice_lines) < 2 and len(choice_source) == 1:
        choice_lines = [(c, False) for c in _split_inline(choice_source[0])]

    answer_key = None
    if sections.get("answer"):
        answer_match = ANSWER_VALUE.match(sections["answer"][0])
        answer_key = answer_match.group("key") if answer_match else None

    passage = "\n".join(sections.get("passage", [])) or None
    return _build(" ".join(question_lines), choice_lines, answer_key, passage)


def parse_trailing_block(text: str) -> MultipleChoiceItem | None:
    lines = [line for line in text.splitlines() if line.strip()]

    answer_key = None
    kept = []
    for line in lines:
        label_match = LABEL_LINE.match(line)
        if label_match and label_match.group("label").lower() in ("answer", "correct answer"):
            answer_match = ANSWER_VALUE.match(label_match.group("rest").strip())
            answer_key = answer_match.group("key") if answer_match else None
            continue
        kept.append(line)
    lines = kept

    end = len(lines)
    while end > 0 and not CHOICE_LINE.match(lines[end - 1]):
        end -= 1
    start = end
    while start > 0 and CHOICE_LINE.match(lines[start - 1]):
        start -= 1

    if end - start >= MIN_HEURISTIC_CHOICES:
        choice_lines = [parsed for line in lines[start:end] if (parsed := _choice_text(line))]
        preamble = lines[:start]
    elif lines and (inline := _split_inline(lines[-1])):
        choice_lines = [(c, False) for c in inline]
        preamble = lines[:-1]
    else:
        return None

    if not preamble:
        return None
    question = preamble[-1]
    passage = "\n".join(preamble[:-1]) or None
    return _build(question, choice_lines, answer_key, passage)


def parse_local(text: str) -> ParsedItem | None:
    """Deterministic layers only."""
    normalized = normalize_glyphs(text)
    item = parse_labeled(normalized)
    if item is not None:
        return ParsedItem(item, ParseMethod.LABELED)
    item = parse_trailing_block(normalized)
    if item is not None:
        return ParsedItem(item, ParseMethod.TRAILING_BLOCK)
    return None


async def parse_multiple_choice(text: str, generator: TextGenerator | None = None) -> ParsedItem:
    """
    Parse a multiple-choice source item.

    The external layer runs when the local layers fail, and also when they
    succeed without finding which choice is correct.
    If the provider is unavailable in that second case, the first choice is
    assumed correct.

    Raises:
        InvalidInputError: If no layer can recover question and choices
        ProviderUnavailableError: If the local layers fail and the provider
            is unavailable
    """
    parsed = parse_local(text)
    if parsed is not None and parsed.item.correct_index is not None:
        return parsed

    if generator is not None:
        try:
            reply = await generator.generate_text(MC_PARSE_PROMPT.format(text=text), SYSTEM_PROMPT)
            output = decode_structured(reply, MultipleChoiceOutput)
            if output.correct_index < len(output.choices):
                item = MultipleChoiceItem(
                    question=output.question,
                    choices=tuple(output.choices),
                    correct_index=output.correct_index,
                    passage=output.passage or None,
                )
                return ParsedItem(item, ParseMethod.EXTERNAL)
            logger.warning("External parse returned an out-of-range correctIndex")
        except StructuredOutputError as e:
            logger.warning(f"External multiple-choice parse failed: {e.reason}")
        except ProviderUnavailableError as e:
            if parsed is None:
                raise
            logger.warning(f"External multiple-choice parse unavailable: {e.reason or e}")

    if parsed is not None:
        logger.warning("Correct choice not marked in source; assuming the first choice")
        item = MultipleChoiceItem(
            question=parsed.item.question,
            choices=parsed.item.choices,
            correct_index=0,
            passage=parsed.item.passage,
        )
        return ParsedItem(item, parsed.method)

    raise InvalidInputError(
        "Source text is not a recognizable multiple-choice item",
        reason="unparseable_multiple_choice",
    )
