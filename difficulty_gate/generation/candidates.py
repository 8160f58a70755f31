"""
Candidate data models.

A Candidate is frozen once built. Softening and repair produce new
Candidate objects, and re-scoring produces a new ScoredCandidate, so an
earlier score can never drift out of sync with the text it describes.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum

from difficulty_gate.extraction.format_classifier import ItemFormat
from difficulty_gate.extraction.mc_parser import MultipleChoiceItem
from difficulty_gate.extraction.slot_extractor import BlankSlot
from difficulty_gate.scoring.difficulty_score import DifficultyScore


class TaskType(str, Enum):
    CLOZE = "cloze"
    MULTIPLE_CHOICE = "multiple_choice"


class CandidateOrigin(str, Enum):
    DETERMINISTIC = "deterministic"
    GENERATED = "generated"
    SOFTENED = "softened"
    REPAIRED = "repaired"


def content_hash(text: str, length: int = 16) -> str:
    normalized = " ".join(text.split()).lower()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:length]


@dataclass(frozen=True)
class Candidate:
    """A constructed item, before or after scoring."""

    text: str
    correct_answers: tuple[str, ...]
    distractors: tuple[str, ...]
    reasoning_steps: int
    format: ItemFormat
    slots: tuple[BlankSlot, ...] = ()
    mc_item: MultipleChoiceItem | None = None
    origin: CandidateOrigin = CandidateOrigin.DETERMINISTIC

    @property
    def correct_answer(self) -> str:
        return self.correct_answers[0] if self.correct_answers else ""

    @property
    def candidate_id(self) -> str:
        return content_hash(self.text + "|" + "|".join(self.correct_answers), 12)

    @property
    def evaluation_text(self) -> str:
        """Text whose lexical/structural complexity is scored."""
        if self.mc_item is not None:
            return "\n".join(p for p in (self.mc_item.passage, self.mc_item.question) if p)
        return self.text

    def to_item_dict(self) -> dict:
        if self.mc_item is not None:
            return self.mc_item.to_dict()
        return {
            "text": self.text,
            "correct": self.correct_answer,
            "answers": list(self.correct_answers),
            "distractors": list(self.distractors),
        }


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate with its difficulty and its distance from the source."""

    candidate: Candidate
    score: DifficultyScore
    distance_to_target: float | None
    similarity_to_source: float
    jaccard_to_source: float
    breakdown: dict[str, float | None] = field(default_factory=dict)

    @property
    def rank_key(self) -> float:
        return self.distance_to_target if self.distance_to_target is not None else 0.0

    def to_dict(self) -> dict:
        return {
            "candidateId": self.candidate.candidate_id,
            "origin": self.candidate.origin.value,
            "item": self.candidate.to_item_dict(),
            "score": self.score.to_dict(),
            "distanceToTarget": self.distance_to_target,
            "similarity": self.similarity_to_source,
            "jaccard": self.jaccard_to_source,
        }
