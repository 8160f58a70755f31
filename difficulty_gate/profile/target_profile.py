"""
Target Profile Estimator.

Derives a difficulty target from one to three reference texts. Each text
yields one deterministic (L, S, A, R) sample built from slot extraction,
the fill-blank builder or the multiple-choice parser, and the difficulty
scoring inputs. The full generation pipeline is never involved. Samples
are aggregated with population statistics.

Confidence in the target grows with the number of samples:

    samples  stability  effective tolerance  axis base tolerance
    1        Low        0.12                 0.12
    2        Medium     0.07                 0.08
    3+       High       0.05                 0.05

Per-axis tolerance widens when the samples disagree:
    clamp(max(base, 1.5 * std), 0.03, 0.25)
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np
from loguru import logger

from difficulty_gate.errors import EmptySourceError, InvalidInputError
from difficulty_gate.extraction.mc_parser import parse_local
from difficulty_gate.extraction.slot_extractor import SlotExtractor
from difficulty_gate.generation.candidates import TaskType
from difficulty_gate.generation.fill_blank import (
    BlankStyle,
    build_distractors,
    build_fill_blank_candidates,
    plain_text,
    reasoning_steps_for,
    resolve_answers,
)
from difficulty_gate.scoring.ambiguity import semantic_ambiguity_from_text
from difficulty_gate.scoring.difficulty_score import AXES, DifficultyComponents, normalize_reasoning_depth
from difficulty_gate.scoring.lexical_structural import compute_lexical_structural
from difficulty_gate.semantic.embedding_service import EmbeddingService

MIN_AXIS_TOLERANCE = 0.03
MAX_AXIS_TOLERANCE = 0.25
STD_MULTIPLIER = 1.5
FALLBACK_DISTRACTORS = ["option", "sample", "value"]
FALLBACK_STEPS = 2
INFERENCE_CUE_WORDS = ("infer", "suggest", "imply", "implies", "most likely", "probably", "conclude")


class Stability(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


def stability_for(sample_count: int) -> Stability:
    if sample_count >= 3:
        return Stability.HIGH
    if sample_count == 2:
        return Stability.MEDIUM
    return Stability.LOW


def effective_tolerance_for(sample_count: int) -> float:
    if sample_count >= 3:
        return 0.05
    if sample_count == 2:
        return 0.07
    return 0.12


def axis_base_tolerance(sample_count: int) -> float:
    if sample_count >= 3:
        return 0.05
    if sample_count == 2:
        return 0.08
    return 0.12


@dataclass(frozen=True)
class TargetBand:
    min: DifficultyComponents
    max: DifficultyComponents

    def to_dict(self) -> dict:
        return {"min": self.min.to_dict(), "max": self.max.to_dict()}


@dataclass(frozen=True)
class TargetProfile:
    mean: DifficultyComponents
    std: DifficultyComponents
    axis_tolerance: DifficultyComponents
    target_band: TargetBand
    stability: Stability
    effective_tolerance: float
    sample_count: int

    def to_dict(self) -> dict:
        return {
            "mean": self.mean.to_dict(),
            "std": self.std.to_dict(),
            "axisTolerance": self.axis_tolerance.to_dict(),
            "targetBand": self.target_band.to_dict(),
            "stability": self.stability.value,
            "effectiveTolerance": self.effective_tolerance,
            "count": self.sample_count,
        }


def profile_from_samples(samples: list[DifficultyComponents]) -> TargetProfile:
    """Aggregate component samples into a TargetProfile."""
    if not samples:
        raise EmptySourceError("No difficulty samples to aggregate", reason="no_samples")

    matrix = np.array([[s.get(axis) for axis in AXES] for s in samples], dtype=np.float64)
    means = matrix.mean(axis=0)
    stds = matrix.std(axis=0)  # population std (ddof=0)

    count = len(samples)
    base = axis_base_tolerance(count)
    tolerances = np.clip(np.maximum(base, STD_MULTIPLIER * stds), MIN_AXIS_TOLERANCE, MAX_AXIS_TOLERANCE)

    mean = DifficultyComponents(*means.tolist())
    return TargetProfile(
        mean=mean,
        std=DifficultyComponents(*stds.tolist()),
        axis_tolerance=DifficultyComponents(*tolerances.tolist()),
        target_band=TargetBand(
            min=DifficultyComponents(*np.clip(means - tolerances, 0.0, 1.0).tolist()),
            max=DifficultyComponents(*np.clip(means + tolerances, 0.0, 1.0).tolist()),
        ),
        stability=stability_for(count),
        effective_tolerance=effective_tolerance_for(count),
        sample_count=count,
    )


@dataclass(frozen=True)
class ItemSample:
    """The inputs one reference text contributes to the target."""

    text: str
    correct: str
    distractors: tuple[str, ...]
    steps: int


class TargetProfileEstimator:
    """
    Estimate a target profile from reference texts.

    Example:
        >>> estimator = TargetProfileEstimator(HashEmbeddingService())
        >>> profile = estimator.estimate(["The weather is sunny and warm today."])
        >>> profile.stability.value
        'Low'
    """

    def __init__(
        self,
        embeddings: EmbeddingService,
        extractor: SlotExtractor | None = None,
        *,
        max_sources: int = 3,
        max_steps: int = 5,
        embedding_dim: int = 8,
    ):
        self.embeddings = embeddings
        self.extractor = extractor or SlotExtractor()
        self.max_sources = max_sources
        self.max_steps = max_steps
        self.embedding_dim = embedding_dim

    def estimate(
        self,
        source_texts: list[str],
        task_type: TaskType = TaskType.CLOZE,
    ) -> TargetProfile:
        """
        Args:
            source_texts: One to ``max_sources`` reference texts
            task_type: Which sampler to use for each text

        Returns:
            TargetProfile

        Raises:
            EmptySourceError: If every text is blank after trimming
            InvalidInputError: If more than ``max_sources`` usable texts are given
        """
        usable = [text.strip() for text in source_texts if text and text.strip()]
        if not usable:
            raise EmptySourceError("All reference texts are empty", reason="empty_sources")
        if len(usable) > self.max_sources:
            raise InvalidInputError(
                f"At most {self.max_sources} reference texts are allowed, got {len(usable)}",
                reason="too_many_sources",
            )

        samples = [self.sample_components(text, task_type) for text in usable]
        profile = profile_from_samples(samples)
        logger.info(
            f"Target estimated from {profile.sample_count} source(s): "
            f"stability={profile.stability.value}, tolerance={profile.effective_tolerance}"
        )
        return profile

    def sample_components(self, text: str, task_type: TaskType = TaskType.CLOZE) -> DifficultyComponents:
        sample = self.sample_item(text, task_type)
        lexical, structural = compute_lexical_structural(sample.text)
        ambiguity = semantic_ambiguity_from_text(
            sample.correct, list(sample.distractors), self.embeddings, self.embedding_dim
        )
        reasoning = normalize_reasoning_depth(sample.steps, self.max_steps)
        return DifficultyComponents(L=lexical, S=structural, A=ambiguity, R=reasoning).clamped()

    def sample_item(self, text: str, task_type: TaskType = TaskType.CLOZE) -> ItemSample:
        if task_type == TaskType.MULTIPLE_CHOICE:
            parsed = parse_local(text)
            if parsed is not None:
                item = parsed.item
                correct_index = item.correct_index if item.correct_index is not None else 0
                question = item.question
                steps = 1 + int(item.passage is not None) + int(
                    any(cue in question.lower() for cue in INFERENCE_CUE_WORDS)
                )
                return ItemSample(
                    text="\n".join(p for p in (item.passage, question) if p),
                    correct=item.choices[correct_index],
                    distractors=tuple(c for i, c in enumerate(item.choices) if i != correct_index),
                    steps=steps,
                )
            logger.debug("Multiple-choice sample fell back to cloze sampling")
        return self._cloze_sample(text)

    def _cloze_sample(self, text: str) -> ItemSample:
        extraction = self.extractor.extract(text)
        answers = resolve_answers(extraction)

        if extraction.has_slots:
            display = extraction.display_text
            known = next((a for a in answers if a), None)
            if known:
                return ItemSample(
                    text=display,
                    correct=known,
                    distractors=tuple(build_distractors(display, known, extraction.slots[0].prefix)),
                    steps=reasoning_steps_for(display),
                )

        plain = plain_text(extraction, answers)
        candidates = build_fill_blank_candidates(plain, BlankStyle.from_slots(extraction.slots))
        if candidates:
            first = candidates[0]
            return ItemSample(
                text=first.text,
                correct=first.correct_answer,
                distractors=first.distractors,
                steps=first.reasoning_steps,
            )

        fallback_word = next((w for w in plain.split() if len(w.strip(".,!?;:")) >= 4), "answer")
        return ItemSample(
            text=extraction.display_text or plain,
            correct=fallback_word.strip(".,!?;:"),
            distractors=tuple(FALLBACK_DISTRACTORS),
            steps=FALLBACK_STEPS,
        )
