"""
Multiple-choice generation pipeline.

The source item is parsed into passage, question, choices and correct
index. Each external attempt then asks for a themed rewrite under hard
constraints (choice count, inference-style question, no reuse of the
source's correct choice), optionally on a freshly generated passage of the
same length. Without a generator, a deterministic candidate is built by
rotating and softening the source's own choices.
"""
from __future__ import annotations

import itertools
import json
from dataclasses import dataclass
from typing import Any

import numpy as np
from loguru import logger

from difficulty_gate.errors import StructuredOutputError
from difficulty_gate.extraction.format_classifier import ItemFormat
from difficulty_gate.extraction.mc_parser import (
    MultipleChoiceItem,
    ParsedItem,
    parse_multiple_choice,
)
from difficulty_gate.generation.candidates import (
    Candidate,
    CandidateOrigin,
    ScoredCandidate,
    TaskType,
)
from difficulty_gate.generation.format_validator import (
    MultipleChoiceRules,
    ShapeValidation,
    has_inference_cue,
    validate_multiple_choice,
)
from difficulty_gate.generation.pipeline import CandidatePipeline, RunContext
from difficulty_gate.generation.prompts import (
    INFERENCE_STYLES,
    MC_PASSAGE_PROMPT,
    MC_REPAIR_PROMPT,
    MC_REWRITE_PROMPT,
    SYSTEM_PROMPT,
)
from difficulty_gate.generation.schemas import MultipleChoiceOutput, PassageOutput, decode_structured
from difficulty_gate.generation.softening import soften_text
from difficulty_gate.scoring.text_metrics import words
from difficulty_gate.semantic.similarity_service import cosine_similarity, normalize_for_similarity

PASSAGE_LENGTH_TOLERANCE = 0.10
PASSAGE_KEY = '"passage": "<passage>", '
INFERENCE_FRAME = "Which of the following is most likely true? "
CHOICE_LABELS = "ABCDEF"


def mc_reasoning_steps(item: MultipleChoiceItem) -> int:
    """One step, plus one for a passage and one for an inference question."""
    return 1 + int(bool(item.passage)) + int(has_inference_cue(item.question))


def format_choices(choices: tuple[str, ...] | list[str]) -> str:
    return "\n".join(f"{CHOICE_LABELS[i]}) {choice}" for i, choice in enumerate(choices))


def mc_candidate(item: MultipleChoiceItem, origin: CandidateOrigin) -> Candidate:
    return Candidate(
        text=item.full_text(),
        correct_answers=(item.correct_choice or "",),
        distractors=tuple(item.distractors),
        reasoning_steps=mc_reasoning_steps(item),
        format=ItemFormat.MULTIPLE_CHOICE,
        mc_item=item,
        origin=origin,
    )


@dataclass
class McSource:
    parsed: ParsedItem
    generated_passage: str | None = None
    passage_warning: str | None = None

    @property
    def item(self) -> MultipleChoiceItem:
        return self.parsed.item


@dataclass(frozen=True)
class ChoiceStructure:
    correct_mean_sim: float
    distractor_mean_sim: float
    distractor_variance: float
    isolation_index: float

    def to_dict(self) -> dict[str, float]:
        return {
            "correctMeanSim": self.correct_mean_sim,
            "distractorMeanSim": self.distractor_mean_sim,
            "distractorVariance": self.distractor_variance,
            "isolationIndex": self.isolation_index,
        }


def choice_structure(correct: np.ndarray, distractors: list[np.ndarray]) -> ChoiceStructure | None:
    """
    How the correct choice sits among its distractors in embedding space.

    isolationIndex is distractorMeanSim - correctMeanSim: positive when the
    distractors resemble each other more than they resemble the answer.
    Needs at least two distractors.
    """
    if len(distractors) < 2:
        return None
    to_correct = [cosine_similarity(correct, d) for d in distractors]
    pairwise = [cosine_similarity(a, b) for a, b in itertools.combinations(distractors, 2)]
    correct_mean = float(np.mean(to_correct))
    distractor_mean = float(np.mean(pairwise))
    return ChoiceStructure(
        correct_mean_sim=correct_mean,
        distractor_mean_sim=distractor_mean,
        distractor_variance=float(np.var(pairwise)),
        isolation_index=distractor_mean - correct_mean,
    )


class MultipleChoicePipeline(CandidatePipeline):
    """Generate an inference-style multiple-choice item from a source item."""

    task_type = TaskType.MULTIPLE_CHOICE

    # -------------------------------------------------------------------------
    # Source
    # -------------------------------------------------------------------------

    async def load_structure(self, ctx: RunContext) -> None:
        parsed = await parse_multiple_choice(ctx.request.source_text, self.generator)
        ctx.structure = McSource(parsed=parsed)
        ctx.reference_text = parsed.item.full_text()
        logger.info(
            f"Multiple-choice source parsed via {parsed.method.value}: "
            f"{len(parsed.item.choices)} choices, passage={'yes' if parsed.item.passage else 'no'}"
        )

    def rules(self, source: McSource) -> MultipleChoiceRules:
        return MultipleChoiceRules(
            expected_choice_count=len(source.item.choices),
            source_correct_choice=source.item.correct_choice,
            ngram_copy_threshold=self.config.mc_ngram_copy_threshold,
            ngram_size=self.config.mc_ngram_size,
            sentence_min_words=self.config.mc_sentence_min_words,
            min_grounding_tokens=self.config.mc_min_grounding_tokens,
        )

    # -------------------------------------------------------------------------
    # Candidates
    # -------------------------------------------------------------------------

    async def _passage(self, source: McSource) -> str | None:
        """Fixed-length passage, generated once per run."""
        if source.generated_passage is not None:
            return source.generated_passage
        if not source.item.passage or not self.config.mc_pregenerate_passage:
            return None

        word_count = len(words(source.item.passage))
        reply = await self.generator.generate_text(
            MC_PASSAGE_PROMPT.format(passage=source.item.passage, word_count=word_count),
            SYSTEM_PROMPT,
        )
        passage = " ".join(decode_structured(reply, PassageOutput).text.split())
        generated_count = len(words(passage))
        if abs(generated_count - word_count) > max(1, round(word_count * PASSAGE_LENGTH_TOLERANCE)):
            source.passage_warning = (
                f"Generated passage has {generated_count} words, source has {word_count}"
            )
            logger.info(source.passage_warning)
        source.generated_passage = passage
        return passage

    async def attempt(self, ctx: RunContext, attempt: int) -> list[Candidate]:
        source: McSource = ctx.structure
        item = source.item
        passage = await self._passage(source)
        wants_passage = passage is None and bool(item.passage)

        passage_block = f"PASSAGE:\n{passage or item.passage}\n" if (passage or item.passage) else ""
        style = INFERENCE_STYLES.get(ctx.request.inference_style, INFERENCE_STYLES["fact_based"])
        reply = await self.generator.generate_text(
            MC_REWRITE_PROMPT.format(
                question=item.question,
                choices=format_choices(item.choices),
                passage_block=passage_block,
                choice_count=len(item.choices),
                inference_style=style,
                source_correct=item.correct_choice,
                passage_key=PASSAGE_KEY if wants_passage else "",
            ),
            SYSTEM_PROMPT,
        )
        output = decode_structured(reply, MultipleChoiceOutput)
        generated = self._to_item(output, passage if passage is not None else output.passage)
        return [mc_candidate(generated, CandidateOrigin.GENERATED)]

    def _to_item(self, output: MultipleChoiceOutput, passage: str | None) -> MultipleChoiceItem:
        if output.correct_index >= len(output.choices):
            raise StructuredOutputError(
                f"correctIndex {output.correct_index} out of range for {len(output.choices)} choices",
                reason="correct_index_out_of_range",
            )
        return MultipleChoiceItem(
            question=output.question,
            choices=tuple(output.choices),
            correct_index=output.correct_index,
            passage=passage or None,
        )

    def deterministic_candidates(self, ctx: RunContext) -> list[Candidate]:
        item: MultipleChoiceItem = ctx.structure.item
        count = len(item.choices)
        # rotate by one so the answer position moves, then soften every part
        rotated = tuple(soften_text(item.choices[(i - 1) % count], 2) for i in range(count))
        question = soften_text(item.question, 2)
        if not has_inference_cue(question):
            question = INFERENCE_FRAME + question
        rebuilt = MultipleChoiceItem(
            question=question,
            choices=rotated,
            correct_index=(item.correct_index + 1) % count,
            passage=soften_text(item.passage, 2) if item.passage else None,
        )
        return [mc_candidate(rebuilt, CandidateOrigin.DETERMINISTIC)]

    def validate(self, ctx: RunContext, candidate: Candidate) -> ShapeValidation:
        return validate_multiple_choice(candidate.mc_item, self.rules(ctx.structure))

    # -------------------------------------------------------------------------
    # Ladder tiers
    # -------------------------------------------------------------------------

    def soften(self, ctx: RunContext, candidate: Candidate, round_number: int) -> Candidate | None:
        item = candidate.mc_item
        softened = MultipleChoiceItem(
            question=soften_text(item.question, round_number),
            choices=tuple(soften_text(choice, round_number) for choice in item.choices),
            correct_index=item.correct_index,
            passage=soften_text(item.passage, round_number) if item.passage else None,
        )
        if softened == item:
            return None
        return mc_candidate(softened, CandidateOrigin.SOFTENED)

    async def repair(self, ctx: RunContext, candidate: Candidate) -> Candidate | None:
        item = candidate.mc_item
        reply = await self.generator.generate_text(
            MC_REPAIR_PROMPT.format(
                source_text=ctx.reference_text,
                candidate_json=json.dumps(item.to_dict(), ensure_ascii=False),
                choice_count=len(item.choices),
                correct_index=item.correct_index,
                passage_key=PASSAGE_KEY if item.passage else "",
            ),
            SYSTEM_PROMPT,
        )
        output = decode_structured(reply, MultipleChoiceOutput)
        if output.correct_index != item.correct_index:
            raise StructuredOutputError(
                f"Repair moved the correct answer from {item.correct_index} to {output.correct_index}",
                reason="repair_moved_answer",
            )
        passage = (output.passage or item.passage) if item.passage else None
        return mc_candidate(self._to_item(output, passage), CandidateOrigin.REPAIRED)

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def _vector(self, text: str) -> np.ndarray:
        return np.asarray(
            self.embeddings.embed_text(normalize_for_similarity(text), self.config.embedding_dim)
        )

    def _part_similarity(self, source_part: str | None, candidate_part: str | None) -> float | None:
        if not source_part or not candidate_part:
            return None
        return cosine_similarity(self._vector(source_part), self._vector(candidate_part))

    def breakdown(self, ctx: RunContext, candidate: Candidate) -> dict[str, float | None]:
        source = ctx.structure.item
        item = candidate.mc_item
        return {
            "passage": self._part_similarity(source.passage, item.passage),
            "question": self._part_similarity(source.question, item.question),
            "correctChoice": self._part_similarity(source.correct_choice, item.correct_choice),
            "distractors": self._part_similarity(" ".join(source.distractors), " ".join(item.distractors)),
            "choices": self._part_similarity(" ".join(source.choices), " ".join(item.choices)),
        }

    def extras(self, ctx: RunContext, accepted: ScoredCandidate) -> dict[str, Any]:
        source: McSource = ctx.structure
        item = accepted.candidate.mc_item
        structure = choice_structure(
            self._vector(item.correct_choice or ""),
            [self._vector(d) for d in item.distractors],
        )
        payload: dict[str, Any] = {
            "format": ItemFormat.MULTIPLE_CHOICE.value,
            "parseMethod": source.parsed.method.value,
            "choiceStructure": structure.to_dict() if structure else None,
        }
        if source.passage_warning:
            payload["passageWarning"] = source.passage_warning
        return payload
