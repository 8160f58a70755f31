"""
Structural Slot Extractor/Reconstructor.

Turns noisy fill-in-the-blank text (OCR output, pasted worksheets) into a
canonical display string and an ordered list of BlankSlot descriptors.

Strategies, in priority order:

1. Direct regex scan after glyph normalization.
2. Structured hints from an image-analysis collaborator, re-anchored on
   the text. When every hint is valid they take precedence.
3. LLM repair, only when nothing was found. The reply is decoded through
   a strict schema and re-validated against the text it returns.
4. A looser regex pass with a fixed low confidence. After a direct scan it
   still adds any loose slot that does not overlap a direct-scan slot.

Each final slot's confidence reflects how well it agrees with what the raw
regex scan saw. When no strategy finds anything the result simply has zero
slots; callers fall back to whole-text formats.
"""
from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from difficulty_gate.errors import ProviderUnavailableError, StructuredOutputError
from difficulty_gate.extraction.glyph_rules import normalize_glyphs
from difficulty_gate.generation.prompts import SLOT_REPAIR_PROMPT, SYSTEM_PROMPT
from difficulty_gate.generation.schemas import SlotHint, SlotRepairOutput, decode_structured

if TYPE_CHECKING:
    from difficulty_gate.generation.llm_client import TextGenerator

MAX_PREFIX = 4
MAX_MISSING = 10
DEFAULT_MAX_SLOTS = 6
DEFAULT_CONTEXT_RADIUS = 24
DEFAULT_LOOSE_CONFIDENCE = 0.58
# whitespace collapse hides the width of an empty bracket pair
EMPTY_BRACKET_MISSING = 3

BASE_CONFIDENCE = 0.55
MISSING_MATCH_BONUS = 0.20
PREFIX_MATCH_BONUS = 0.15
OFFSET_MATCH_BONUS = 0.10
OFFSET_TOLERANCE = 3

# prefix letters glued to an underscore run; single spaces allowed inside the run
STRICT_SLOT = re.compile(r"(?<![A-Za-z_])([A-Za-z]{1,4})?(_(?:[ ]?_)*)(?![A-Za-z_])")


class SlotSource(str, Enum):
    """Which strategy produced the final slot set."""

    REGEX = "regex"
    VISION = "vision"
    LLM_REPAIR = "llm_repair"
    LOOSE_REGEX = "loose_regex"
    NONE = "none"


@dataclass(frozen=True)
class BlankSlot:
    """One blank: optional visible prefix plus a count of missing letters."""

    index: int
    start: int
    end: int
    prefix: str
    missing_count: int
    confidence: float = 1.0
    context_snippet: str = ""

    @property
    def answer_length(self) -> int:
        return len(self.prefix) + self.missing_count

    @property
    def blank(self) -> str:
        return self.prefix + "_" * self.missing_count

    def accepts(self, answer: str) -> bool:
        """True when ``answer`` fits this slot's prefix and length."""
        return len(answer) == self.answer_length and answer.lower().startswith(self.prefix.lower())

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "start": self.start,
            "end": self.end,
            "prefix": self.prefix,
            "missingCount": self.missing_count,
            "confidence": round(self.confidence, 4),
            "contextSnippet": self.context_snippet,
        }


@dataclass
class ExtractionResult:
    source_text: str
    normalized_text: str
    display_text: str
    slots: list[BlankSlot] = field(default_factory=list)
    source: SlotSource = SlotSource.NONE

    @property
    def has_slots(self) -> bool:
        return bool(self.slots)

    @property
    def pairs(self) -> list[tuple[str, int]]:
        return [(slot.prefix, slot.missing_count) for slot in self.slots]

    def mismatched_answers(self, answers: list[str]) -> list[int]:
        """Indices whose answer does not fit the slot at the same index."""
        if len(answers) != len(self.slots):
            return list(range(max(len(answers), len(self.slots))))
        return [i for i, (slot, answer) in enumerate(zip(self.slots, answers)) if not slot.accepts(answer)]

    def fill(self, answers: list[str]) -> str:
        """Display text with every blank replaced by its answer."""
        return fill_slots(self.display_text, self.slots, answers)

    def to_dict(self) -> dict:
        return {
            "normalizedText": self.normalized_text,
            "displayText": self.display_text,
            "slots": [slot.to_dict() for slot in self.slots],
            "slotSource": self.source.value,
        }


# =============================================================================
# Scanning
# =============================================================================


@dataclass(frozen=True)
class SlotSpan:
    start: int
    end: int
    prefix: str
    missing_count: int


def _count_missing(run: str) -> int:
    return min(run.count("_"), MAX_MISSING)


def scan_strict(text: str) -> list[SlotSpan]:
    """Direct scan: prefix(1-4 letters) glued to underscores, or a bare run of 2+."""
    found = []
    for match in STRICT_SLOT.finditer(text):
        prefix = match.group(1) or ""
        run = match.group(2)
        if not prefix and run.count("_") < 2:
            continue
        found.append(SlotSpan(match.start(), match.end(), prefix, _count_missing(run)))
    return found


def _loose_prefix_spaced(match: re.Match[str]) -> SlotSpan:
    return SlotSpan(match.start(), match.end(), match.group(1), _count_missing(match.group(2)))


def _loose_bare(inner_group: int) -> Callable[[re.Match[str]], SlotSpan]:
    def build(match: re.Match[str]) -> SlotSpan:
        width = len(match.group(inner_group))
        return SlotSpan(match.start(), match.end(), "", max(1, min(width, MAX_MISSING)))

    return build


def _loose_fixed(missing_count: int) -> Callable[[re.Match[str]], SlotSpan]:
    def build(match: re.Match[str]) -> SlotSpan:
        return SlotSpan(match.start(), match.end(), "", missing_count)

    return build


LOOSE_RULES: list[tuple[re.Pattern[str], Callable[[re.Match[str]], SlotSpan]]] = [
    # "pro ___": prefix separated from its underscores by a space
    (re.compile(r"(?<![A-Za-z])([A-Za-z]{1,4}) (_(?:[ ]?_)*)(?![A-Za-z_])"), _loose_prefix_spaced),
    # dotted leaders "......"
    (re.compile(r"(?<!\.)(\.{4,})(?!\.)"), _loose_bare(1)),
    # empty brackets "(    )" or "[    ]", already collapsed to a single space
    (re.compile(r"[(\[] [)\]]"), _loose_fixed(EMPTY_BRACKET_MISSING)),
    # a lone underscore between spaces
    (re.compile(r"(?<=\s)(_)(?=\s)"), _loose_bare(1)),
]


def scan_loose(text: str) -> list[SlotSpan]:
    found: list[SlotSpan] = []
    for pattern, build in LOOSE_RULES:
        for match in pattern.finditer(text):
            slot = build(match)
            if not any(slot.start < other.end and other.start < slot.end for other in found):
                found.append(slot)
    return sorted(found, key=lambda slot: slot.start)


# =============================================================================
# Reconstruction
# =============================================================================


def render_display(
    text: str,
    raw_slots: list[SlotSpan],
    confidences: list[float],
    context_radius: int = DEFAULT_CONTEXT_RADIUS,
) -> tuple[str, list[BlankSlot]]:
    """Replace each slot span with its canonical prefix+underscores form."""
    pieces: list[str] = []
    placed: list[tuple[int, int, SlotSpan, float]] = []
    cursor = 0
    length = 0
    for raw, confidence in sorted(zip(raw_slots, confidences), key=lambda pair: pair[0].start):
        between = text[cursor : raw.start]
        pieces.append(between)
        length += len(between)
        canonical = raw.prefix + "_" * raw.missing_count
        pieces.append(canonical)
        placed.append((length, length + len(canonical), raw, confidence))
        length += len(canonical)
        cursor = raw.end
    pieces.append(text[cursor:])
    display = "".join(pieces)

    slots = [
        BlankSlot(
            index=index,
            start=start,
            end=end,
            prefix=raw.prefix,
            missing_count=raw.missing_count,
            confidence=confidence,
            context_snippet=display[max(0, start - context_radius) : end + context_radius],
        )
        for index, (start, end, raw, confidence) in enumerate(placed)
    ]
    return display, slots


def fill_slots(display_text: str, slots: list[BlankSlot], answers: list[str]) -> str:
    pieces = []
    cursor = 0
    for slot, answer in zip(slots, answers):
        pieces.append(display_text[cursor : slot.start])
        pieces.append(answer)
        cursor = slot.end
    pieces.append(display_text[cursor:])
    return "".join(pieces)


# =============================================================================
# Extractor
# =============================================================================


class SlotExtractor:
    """
    Extract blank slots from noisy text.

    Example:
        >>> extractor = SlotExtractor()
        >>> result = extractor.extract("She is a goo* swim*** and a fast ru____.")
        >>> [(s.prefix, s.missing_count) for s in result.slots]
        [('swim', 3), ('ru', 4)]
    """

    def __init__(
        self,
        max_slots: int = DEFAULT_MAX_SLOTS,
        context_radius: int = DEFAULT_CONTEXT_RADIUS,
        loose_confidence: float = DEFAULT_LOOSE_CONFIDENCE,
    ):
        self.max_slots = max_slots
        self.context_radius = context_radius
        self.loose_confidence = loose_confidence

    def extract(self, text: str, hints: list[SlotHint] | None = None) -> ExtractionResult:
        """Deterministic strategies only (regex, hints, loose regex)."""
        normalized = normalize_glyphs(text)
        raw = scan_strict(normalized)

        result = self._from_hints(text, normalized, raw, hints)
        if result is None and raw:
            result = self._with_loose(text, normalized, raw)
        if result is None:
            result = self._loose(text, normalized)
        return result

    async def extract_with_repair(
        self,
        text: str,
        hints: list[SlotHint] | None = None,
        generator: TextGenerator | None = None,
    ) -> ExtractionResult:
        """All strategies, including LLM repair when nothing else found a slot."""
        normalized = normalize_glyphs(text)
        raw = scan_strict(normalized)

        result = self._from_hints(text, normalized, raw, hints)
        if result is None and raw:
            result = self._with_loose(text, normalized, raw)
        if result is None and generator is not None:
            result = await self._repair(text, normalized, generator)
        if result is None:
            result = self._loose(text, normalized)
        return result

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    def _from_hints(
        self,
        text: str,
        normalized: str,
        raw: list[SlotSpan],
        hints: list[SlotHint] | None,
    ) -> ExtractionResult | None:
        if not hints:
            return None
        if len(hints) > self.max_slots or not all(_hint_is_valid(hint) for hint in hints):
            logger.debug("Ignoring slot hints that fail prefix/length validation")
            return None

        anchored = self._anchor_hints(normalized, hints)
        if not anchored:
            logger.debug(f"None of {len(hints)} slot hints could be anchored on the text")
            return None
        return self._finish(text, normalized, anchored, raw, SlotSource.VISION)

    def _anchor_hints(self, text: str, hints: list[SlotHint]) -> list[SlotSpan]:
        anchored: list[SlotSpan] = []
        cursor = 0
        for hint in hints:
            if hint.prefix:
                pattern = re.compile(
                    rf"(?<![A-Za-z]){re.escape(hint.prefix)}[ ]?(_(?:[ ]?_)*)", re.IGNORECASE
                )
            else:
                pattern = re.compile(r"(?<![A-Za-z_])(_(?:[ ]?_)+)")
            match = pattern.search(text, cursor)
            if match is None:
                logger.debug(f"Slot hint {hint.prefix!r}+{hint.missing_count} not found in text")
                continue
            visible_prefix = text[match.start() : match.start() + len(hint.prefix)]
            anchored.append(SlotSpan(match.start(), match.end(), visible_prefix, hint.missing_count))
            cursor = match.end()
        return anchored

    async def _repair(
        self,
        text: str,
        normalized: str,
        generator: TextGenerator,
    ) -> ExtractionResult | None:
        prompt = SLOT_REPAIR_PROMPT.format(text=normalized)
        try:
            reply = await generator.generate_text(prompt, SYSTEM_PROMPT)
            repair = decode_structured(reply, SlotRepairOutput)
        except (StructuredOutputError, ProviderUnavailableError) as e:
            logger.warning(f"Slot repair unavailable: {e.reason or e}")
            return None

        repaired = normalize_glyphs(repair.text)
        found = scan_strict(repaired)
        expected = [(slot.prefix.lower(), slot.missing_count) for slot in repair.slots]
        actual = [(slot.prefix.lower(), slot.missing_count) for slot in found]
        if actual != expected:
            logger.warning(f"Slot repair rejected: declared {expected}, text contains {actual}")
            return None
        return self._finish(text, repaired, found, [], SlotSource.LLM_REPAIR)

    def _with_loose(self, text: str, normalized: str, raw: list[SlotSpan]) -> ExtractionResult:
        """Regex slots plus every loose slot that does not overlap one of them."""
        extra = [
            slot
            for slot in scan_loose(normalized)
            if not any(slot.start < other.end and other.start < slot.end for other in raw)
        ]
        if extra:
            logger.debug(f"Merged {len(extra)} loose slot(s) with {len(raw)} regex slot(s)")
        confidences = [agreement_confidence(slot, raw) for slot in raw]
        confidences += [self.loose_confidence] * len(extra)
        return self._build(text, normalized, raw + extra, confidences, SlotSource.REGEX)

    def _loose(self, text: str, normalized: str) -> ExtractionResult:
        found = scan_loose(normalized)
        if not found:
            return ExtractionResult(
                source_text=text,
                normalized_text=normalized,
                display_text=normalized,
                slots=[],
                source=SlotSource.NONE,
            )
        confidences = [self.loose_confidence] * len(found)
        return self._build(text, normalized, found, confidences, SlotSource.LOOSE_REGEX)

    # -------------------------------------------------------------------------
    # Confidence and capping
    # -------------------------------------------------------------------------

    def _finish(
        self,
        text: str,
        normalized: str,
        final: list[SlotSpan],
        raw: list[SlotSpan],
        source: SlotSource,
    ) -> ExtractionResult:
        confidences = [agreement_confidence(slot, raw) for slot in final]
        return self._build(text, normalized, final, confidences, source)

    def _build(
        self,
        text: str,
        normalized: str,
        slots: list[SlotSpan],
        confidences: list[float],
        source: SlotSource,
    ) -> ExtractionResult:
        if len(slots) > self.max_slots:
            ranked = sorted(
                zip(slots, confidences), key=lambda pair: (-pair[1], pair[0].start)
            )[: self.max_slots]
            logger.debug(f"Capped {len(slots)} slots to {self.max_slots}")
            slots = [slot for slot, _ in ranked]
            confidences = [confidence for _, confidence in ranked]

        display, placed = render_display(normalized, slots, confidences, self.context_radius)
        return ExtractionResult(
            source_text=text,
            normalized_text=normalized,
            display_text=display,
            slots=placed,
            source=source,
        )


def _hint_is_valid(hint: SlotHint) -> bool:
    return (
        len(hint.prefix) <= MAX_PREFIX
        and (not hint.prefix or hint.prefix.isalpha())
        and 1 <= hint.missing_count <= MAX_MISSING
    )


def agreement_confidence(slot: SlotSpan, raw: list[SlotSpan]) -> float:
    """Blend agreement between a final slot and its nearest raw-regex slot."""
    confidence = BASE_CONFIDENCE
    if not raw:
        return confidence
    nearest = min(raw, key=lambda other: abs(other.start - slot.start))
    if nearest.missing_count == slot.missing_count:
        confidence += MISSING_MATCH_BONUS
    if nearest.prefix.lower() == slot.prefix.lower():
        confidence += PREFIX_MATCH_BONUS
    if abs(nearest.start - slot.start) <= OFFSET_TOLERANCE:
        confidence += OFFSET_MATCH_BONUS
    return min(confidence, 1.0)
