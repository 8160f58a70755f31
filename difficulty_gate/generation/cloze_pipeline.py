"""
Cloze (fill-blank) generation pipeline.

Each external attempt runs three steps:
    A. generate a fresh passage with a word budget derived from the source
    B. ask which 1-2 words to blank, excluding answers the source reveals
    C. carve the blanks deterministically in the source's blank style

Deterministic candidates built from the source itself are always added,
so the pipeline still produces an item when no generator is configured.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from loguru import logger

from difficulty_gate.errors import StructuredOutputError
from difficulty_gate.extraction.slot_extractor import (
    MAX_MISSING,
    ExtractionResult,
    SlotExtractor,
    render_display,
    scan_strict,
)
from difficulty_gate.generation.candidates import (
    Candidate,
    CandidateOrigin,
    ScoredCandidate,
    TaskType,
)
from difficulty_gate.generation.fill_blank import (
    MIN_TARGET_LENGTH,
    BlankStyle,
    build_distractors,
    build_fill_blank_candidates,
    carve_blanks,
    pick_target_word,
    plain_text,
    reasoning_steps_for,
    resolve_answers,
)
from difficulty_gate.generation.format_validator import (
    ClozeShapeRules,
    ShapeValidation,
    validate_cloze,
)
from difficulty_gate.generation.llm_client import TextGenerator
from difficulty_gate.generation.pipeline import CandidatePipeline, PipelineConfig, RunContext
from difficulty_gate.generation.prompts import (
    CLOZE_PASSAGE_PROMPT,
    CLOZE_REPAIR_PROMPT,
    CLOZE_SELECTION_PROMPT,
    SYSTEM_PROMPT,
)
from difficulty_gate.generation.schemas import (
    BlankSelectionOutput,
    ClozeRepairOutput,
    PassageOutput,
    decode_structured,
)
from difficulty_gate.generation.softening import soften_text
from difficulty_gate.scoring.text_metrics import count_sentences, words
from difficulty_gate.semantic.embedding_service import EmbeddingService

MAX_BLANKS = 2
WORD_BUDGET_ORIGINS = frozenset({CandidateOrigin.GENERATED, CandidateOrigin.REPAIRED})


@dataclass(frozen=True)
class ClozeSource:
    """What the pipeline knows about the source after extraction."""

    extraction: ExtractionResult
    answers: tuple[str | None, ...]
    plain_text: str
    style: BlankStyle
    blank_count: int
    exclusions: frozenset[str]

    @property
    def word_count(self) -> int:
        return len(words(self.plain_text))


class ClozePipeline(CandidatePipeline):
    """
    Generate a fill-blank item that matches a difficulty target without
    copying its source.

    Example:
        >>> pipeline = ClozePipeline(HashEmbeddingService())
        >>> result = asyncio.run(pipeline.run(GenerationRequest("The weather is sunny and warm today.")))
        >>> result.accepted.candidate.correct_answer
        'weather'
    """

    task_type = TaskType.CLOZE

    def __init__(
        self,
        embeddings: EmbeddingService,
        generator: TextGenerator | None = None,
        config: PipelineConfig | None = None,
        extractor: SlotExtractor | None = None,
    ):
        super().__init__(embeddings, generator, config)
        self.extractor = extractor or SlotExtractor()

    # -------------------------------------------------------------------------
    # Source
    # -------------------------------------------------------------------------

    async def load_structure(self, ctx: RunContext) -> None:
        request = ctx.request
        extraction = await self.extractor.extract_with_repair(
            request.source_text, list(request.slot_hints) or None, self.generator
        )
        answers = resolve_answers(extraction, list(request.source_answers) or None)
        plain = plain_text(extraction, answers)

        revealed = {a.lower() for a in answers if a} | {a.lower() for a in request.source_answers if a}
        source = ClozeSource(
            extraction=extraction,
            answers=tuple(answers),
            plain_text=plain,
            style=BlankStyle.from_slots(extraction.slots),
            blank_count=max(1, min(len(extraction.slots), MAX_BLANKS)),
            exclusions=frozenset(revealed),
        )
        ctx.structure = source
        ctx.reference_text = plain or extraction.display_text
        logger.info(
            f"Cloze source: {len(extraction.slots)} slot(s) via {extraction.source.value}, "
            f"{source.word_count} words, prefix length {source.style.prefix_length}"
        )

    # -------------------------------------------------------------------------
    # Candidates
    # -------------------------------------------------------------------------

    async def attempt(self, ctx: RunContext, attempt: int) -> list[Candidate]:
        source: ClozeSource = ctx.structure
        window = self.config.word_count_window

        # A: fresh passage
        reply = await self.generator.generate_text(
            CLOZE_PASSAGE_PROMPT.format(
                source_text=ctx.reference_text,
                word_count=source.word_count,
                min_words=max(1, source.word_count - window),
                max_words=source.word_count + window,
                sentence_count=count_sentences(ctx.reference_text),
            ),
            SYSTEM_PROMPT,
        )
        passage = " ".join(decode_structured(reply, PassageOutput).text.split())

        # B: which words to blank
        reply = await self.generator.generate_text(
            CLOZE_SELECTION_PROMPT.format(
                blank_count=source.blank_count,
                passage=passage,
                min_length=MIN_TARGET_LENGTH,
                exclusions=", ".join(sorted(source.exclusions)) or "none",
                extra_answer=', "<word>"' if source.blank_count > 1 else "",
            ),
            SYSTEM_PROMPT,
        )
        selection = decode_structured(reply, BlankSelectionOutput)
        chosen = self._choose_answers(passage, selection.answers, source)
        if not chosen:
            ctx.last_reason = "no_blankable_word"
            return []

        # C: deterministic carving
        carved = carve_blanks(passage, chosen, source.style)
        if carved is None:
            ctx.last_reason = "blank_carving_failed"
            logger.debug(f"Attempt {attempt}: could not carve {chosen} out of the generated passage")
            return []
        return [
            Candidate(
                text=carved.display_text,
                correct_answers=carved.answers,
                distractors=tuple(build_distractors(passage, carved.answers[0], carved.slots[0].prefix)),
                reasoning_steps=reasoning_steps_for(passage),
                format=source.style.format,
                slots=carved.slots,
                origin=CandidateOrigin.GENERATED,
            )
        ]

    def _choose_answers(self, passage: str, selected: list[str], source: ClozeSource) -> list[str]:
        max_length = source.style.prefix_length + MAX_MISSING
        chosen = [a for a in selected if a.lower() not in source.exclusions][: source.blank_count]
        # top up from the passage when the selection was unusable
        while len(chosen) < source.blank_count:
            taken = source.exclusions | {a.lower() for a in chosen}
            extra = pick_target_word(passage, "longest", frozenset(taken), max_length)
            if extra is None:
                break
            chosen.append(extra)
        return chosen if len(chosen) == source.blank_count else []

    def deterministic_candidates(self, ctx: RunContext) -> list[Candidate]:
        source: ClozeSource = ctx.structure
        return build_fill_blank_candidates(
            source.plain_text, source.style, source.blank_count, source.exclusions
        )

    def validate(self, ctx: RunContext, candidate: Candidate) -> ShapeValidation:
        source: ClozeSource = ctx.structure
        rules = ClozeShapeRules(
            expected_blank_count=source.blank_count,
            source_word_count=source.word_count if candidate.origin in WORD_BUDGET_ORIGINS else None,
            word_count_window=self.config.word_count_window,
        )
        return validate_cloze(candidate, rules)

    # -------------------------------------------------------------------------
    # Ladder tiers
    # -------------------------------------------------------------------------

    def soften(self, ctx: RunContext, candidate: Candidate, round_number: int) -> Candidate | None:
        protected = frozenset(a.lower() for a in candidate.correct_answers)
        softened = soften_text(candidate.text, round_number, protected)
        if softened == candidate.text:
            return None
        return self._rebuilt(candidate, softened, CandidateOrigin.SOFTENED)

    async def repair(self, ctx: RunContext, candidate: Candidate) -> Candidate | None:
        reply = await self.generator.generate_text(
            CLOZE_REPAIR_PROMPT.format(
                source_text=ctx.reference_text,
                candidate_text=candidate.text,
                answers=", ".join(candidate.correct_answers),
            ),
            SYSTEM_PROMPT,
        )
        text = " ".join(decode_structured(reply, ClozeRepairOutput).text.split())
        found = [(s.prefix, s.missing_count) for s in scan_strict(text)]
        expected = [(s.prefix, s.missing_count) for s in candidate.slots]
        if found != expected:
            raise StructuredOutputError(
                f"Repair changed the blanks: expected {expected}, got {found}",
                reason="repair_changed_blanks",
            )
        return self._rebuilt(candidate, text, CandidateOrigin.REPAIRED)

    def _rebuilt(self, candidate: Candidate, text: str, origin: CandidateOrigin) -> Candidate:
        spans = scan_strict(text)
        display, slots = render_display(text, spans, [1.0] * len(spans))
        return replace(candidate, text=display, slots=tuple(slots), origin=origin)

    def extras(self, ctx: RunContext, accepted: ScoredCandidate) -> dict[str, Any]:
        source: ClozeSource = ctx.structure
        candidate = accepted.candidate
        return {
            "slots": [slot.to_dict() for slot in candidate.slots],
            "answerKey": list(candidate.correct_answers),
            "format": candidate.format.value,
            "source": {
                "slotSource": source.extraction.source.value,
                "slots": [slot.to_dict() for slot in source.extraction.slots],
                "answers": list(source.answers),
            },
        }
