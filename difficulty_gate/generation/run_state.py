"""
Audit trail for a generation run.

Stages are recorded as the state machine moves through them, never
re-derived afterwards, so the trail shows the path actually taken. The
run object is write-only from the pipeline's point of view: nothing reads
it to decide what to do next.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum

from difficulty_gate.generation.candidates import TaskType, content_hash


class Stage(str, Enum):
    RECEIVED = "received"
    STRUCTURE_LOADED = "structure_loaded"
    GENERATION_ATTEMPT = "generation_attempt"
    SCORED = "scored"
    ACCEPTED = "accepted"
    VALIDATION_FAILED = "validation_failed"
    SIMILARITY_REJECTED = "similarity_rejected"


class FallbackTier(str, Enum):
    PRIMARY = "primary"
    SOFTENING = "softening"
    REPAIR = "repair"
    FALLBACK_ACCEPTANCE = "fallback_acceptance"


@dataclass(frozen=True)
class StageTransition:
    stage: Stage
    detail: str = ""
    tier: FallbackTier | None = None
    attempt: int | None = None
    candidate_id: str | None = None
    similarity: float | None = None
    jaccard: float | None = None

    def to_dict(self) -> dict:
        data = {"stage": self.stage.value, "detail": self.detail}
        if self.tier is not None:
            data["tier"] = self.tier.value
        if self.attempt is not None:
            data["attempt"] = self.attempt
        if self.candidate_id is not None:
            data["candidateId"] = self.candidate_id
        if self.similarity is not None:
            data["similarity"] = round(self.similarity, 4)
        if self.jaccard is not None:
            data["jaccard"] = round(self.jaccard, 4)
        return data


@dataclass
class GenerationRun:
    run_id: str
    source_id: str
    task_type: TaskType
    candidate_id: str | None = None
    stage: Stage = Stage.RECEIVED
    tier: FallbackTier | None = None
    transitions: list[StageTransition] = field(default_factory=list)

    @classmethod
    def start(cls, source_text: str, task_type: TaskType) -> GenerationRun:
        run = cls(run_id=uuid.uuid4().hex, source_id=content_hash(source_text), task_type=task_type)
        run.record(Stage.RECEIVED, f"{task_type.value} request")
        return run

    def record(
        self,
        stage: Stage,
        detail: str = "",
        *,
        tier: FallbackTier | None = None,
        attempt: int | None = None,
        candidate_id: str | None = None,
        similarity: float | None = None,
        jaccard: float | None = None,
    ) -> None:
        self.transitions.append(
            StageTransition(stage, detail, tier, attempt, candidate_id, similarity, jaccard)
        )
        self.stage = stage
        if stage == Stage.ACCEPTED:
            self.tier = tier
            self.candidate_id = candidate_id

    def debug_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "tier": self.tier.value if self.tier else None,
            "transitions": [t.to_dict() for t in self.transitions],
        }

    def to_dict(self) -> dict:
        return {
            "runId": self.run_id,
            "sourceId": self.source_id,
            "candidateId": self.candidate_id,
            "stage": self.stage.value,
        }
