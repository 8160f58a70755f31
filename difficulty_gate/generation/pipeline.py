"""
Candidate generation state machine.

Shared by the cloze and multiple-choice pipelines, which only supply the
task-specific steps (loading the source structure, generation attempts,
deterministic candidates, validation, softening and repair). The ladder
itself lives here:

1. Primary: ranked candidates go through the similarity gate in order.
2. Softening: synonym substitution on the best over-similar candidate,
   re-scored after every round.
3. Repair: a minimal external rewrite of the closest candidate.
4. Fallback acceptance: the best structurally valid candidate, flagged
   with a similarity warning.
5. Terminal error carrying the last reason and the best-seen metrics.

Every transition is appended to the GenerationRun as it happens.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from loguru import logger

from difficulty_gate.errors import (
    EmptySourceError,
    NoCandidateError,
    SimilarityRejectedError,
    StructuredOutputError,
    ValidationFailedError,
)
from difficulty_gate.generation.candidates import Candidate, ScoredCandidate, TaskType
from difficulty_gate.generation.format_validator import ShapeValidation
from difficulty_gate.generation.llm_client import TextGenerator
from difficulty_gate.generation.run_state import FallbackTier, GenerationRun, Stage
from difficulty_gate.generation.schemas import SlotHint
from difficulty_gate.profile.target_profile import TargetProfile
from difficulty_gate.scoring.difficulty_score import (
    DifficultyComponents,
    DifficultyWeights,
    distance_to_target,
    score,
)
from difficulty_gate.scoring.item_evaluator import (
    TargetComparison,
    compare_to_target,
    compute_components,
)
from difficulty_gate.semantic.embedding_service import EmbeddingService
from difficulty_gate.semantic.similarity_service import (
    GateDecision,
    SimilarityBand,
    decide,
    gate,
    normalize_for_similarity,
    overlap_tokens,
)

# Gate reasons that softening can plausibly fix
OVER_SIMILAR_REASONS = frozenset({"identical_to_source", "token_overlap_too_high", "too_similar"})

DEFAULT_WEIGHTS = DifficultyWeights(wL=0.2, wS=0.2, wA=0.3, wR=0.3)
DEFAULT_CLOZE_BAND = SimilarityBand(min_sim=0.15, max_sim=0.95, max_jaccard=0.75)
DEFAULT_MC_BAND = SimilarityBand(min_sim=0.30, max_sim=0.90, max_jaccard=0.60)


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable knobs for one pipeline run, built from settings at the edge."""

    weights: DifficultyWeights = DEFAULT_WEIGHTS
    cloze_band: SimilarityBand = DEFAULT_CLOZE_BAND
    mc_band: SimilarityBand = DEFAULT_MC_BAND
    max_attempts: int = 3
    softening_rounds: int = 2
    allow_fallback_acceptance: bool = True
    reasoning_max_steps: int = 5
    embedding_dim: int = 8
    word_count_window: int = 15
    mc_ngram_copy_threshold: float = 0.65
    mc_ngram_size: int = 3
    mc_sentence_min_words: int = 4
    mc_min_grounding_tokens: int = 1
    mc_pregenerate_passage: bool = True

    def band_for(self, task_type: TaskType) -> SimilarityBand:
        return self.mc_band if task_type == TaskType.MULTIPLE_CHOICE else self.cloze_band


@dataclass(frozen=True)
class GenerationRequest:
    source_text: str
    target: DifficultyComponents | None = None
    target_profile: TargetProfile | None = None
    weights: DifficultyWeights | None = None
    source_answers: tuple[str, ...] = ()
    slot_hints: tuple[SlotHint, ...] = ()
    inference_style: str = "fact_based"

    @property
    def target_mean(self) -> DifficultyComponents | None:
        if self.target is not None:
            return self.target
        return self.target_profile.mean if self.target_profile else None


@dataclass
class RunContext:
    """Per-run working state. Never shared between requests."""

    request: GenerationRequest
    run: GenerationRun
    weights: DifficultyWeights
    band: SimilarityBand
    reference_text: str
    source_vector: np.ndarray | None = None
    source_tokens: set[str] = field(default_factory=set)
    structure: Any = None
    pool: list[ScoredCandidate] = field(default_factory=list)
    last_reason: str | None = None


@dataclass(frozen=True)
class GenerationResult:
    accepted: ScoredCandidate
    tier: FallbackTier
    band: SimilarityBand
    run: GenerationRun
    similarity_warning: str | None = None
    comparison: TargetComparison | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        payload = {
            "item": self.accepted.candidate.to_item_dict(),
            "similarity": self.accepted.similarity_to_source,
            "jaccard": self.accepted.jaccard_to_source,
            "similarityRange": self.band.to_dict(),
            "score": self.accepted.score.to_dict(),
            "distanceToTarget": self.accepted.distance_to_target,
            "runId": self.run.run_id,
            "sourceId": self.run.source_id,
            "candidateId": self.accepted.candidate.candidate_id,
            "debug": self.run.debug_dict(),
        }
        if self.similarity_warning:
            payload["similarityWarning"] = self.similarity_warning
        if self.comparison is not None:
            payload["targetComparison"] = self.comparison.to_dict()
        if self.accepted.breakdown:
            payload["similarityBreakdown"] = self.accepted.breakdown
        payload.update(self.extras)
        return payload


class CandidatePipeline(ABC):
    """
    Base class for task-specific generation pipelines.

    Subclasses implement the task hooks; ``run`` drives the ladder.
    """

    task_type: TaskType

    def __init__(
        self,
        embeddings: EmbeddingService,
        generator: TextGenerator | None = None,
        config: PipelineConfig | None = None,
    ):
        self.embeddings = embeddings
        self.generator = generator
        self.config = config or PipelineConfig()

    # -------------------------------------------------------------------------
    # Task hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    async def load_structure(self, ctx: RunContext) -> None:
        """Parse the source, set ``ctx.structure`` and ``ctx.reference_text``."""

    @abstractmethod
    async def attempt(self, ctx: RunContext, attempt: int) -> list[Candidate]:
        """One external generation attempt."""

    @abstractmethod
    def deterministic_candidates(self, ctx: RunContext) -> list[Candidate]:
        """Candidates built without the generation capability."""

    @abstractmethod
    def validate(self, ctx: RunContext, candidate: Candidate) -> ShapeValidation:
        """Structural checks for one candidate."""

    @abstractmethod
    def soften(self, ctx: RunContext, candidate: Candidate, round_number: int) -> Candidate | None:
        """Softened copy of ``candidate``, or None when nothing changed."""

    @abstractmethod
    async def repair(self, ctx: RunContext, candidate: Candidate) -> Candidate | None:
        """Minimal external rewrite of ``candidate``."""

    def similarity_text(self, candidate: Candidate) -> str:
        return candidate.text

    def breakdown(self, ctx: RunContext, candidate: Candidate) -> dict[str, float | None]:
        return {}

    def extras(self, ctx: RunContext, accepted: ScoredCandidate) -> dict[str, Any]:
        return {}

    # -------------------------------------------------------------------------
    # Ladder
    # -------------------------------------------------------------------------

    async def run(self, request: GenerationRequest) -> GenerationResult:
        """
        Drive one request through the state machine.

        Raises:
            NoCandidateError: If no candidate could be constructed at all
            ValidationFailedError: If every constructed candidate failed shape checks
            SimilarityRejectedError: If valid candidates exist but no tier accepted one
        """
        run = GenerationRun.start(request.source_text, self.task_type)
        if not request.source_text or not request.source_text.strip():
            run.record(Stage.VALIDATION_FAILED, "empty_source")
            raise EmptySourceError("Source text is empty", reason="empty_source", run=run)
        ctx = RunContext(
            request=request,
            run=run,
            weights=request.weights or self.config.weights,
            band=self.config.band_for(self.task_type),
            reference_text=request.source_text,
        )

        await self.load_structure(ctx)
        ctx.source_vector = self._embed(ctx.reference_text)
        ctx.source_tokens = overlap_tokens(ctx.reference_text)
        run.record(Stage.STRUCTURE_LOADED, f"{len(ctx.source_tokens)} source tokens")

        valid = await self._collect_candidates(ctx)
        ranked = sorted((self._score(ctx, c) for c in valid), key=lambda sc: sc.rank_key)
        run.record(Stage.SCORED, f"{len(ranked)} valid candidate(s)")
        for scored in ranked:
            logger.debug(
                f"Candidate {scored.candidate.candidate_id} ({scored.candidate.origin.value}): "
                f"D={scored.score.D:.3f} distance={scored.distance_to_target} "
                f"sim={scored.similarity_to_source:.3f} jaccard={scored.jaccard_to_source:.3f}"
            )

        accepted = self._gate_all(ctx, ranked, FallbackTier.PRIMARY)
        if accepted is None:
            accepted = self._softening_tier(ctx)
        if accepted is None:
            accepted = await self._repair_tier(ctx)
        if accepted is not None:
            return self._finish(ctx, *accepted)
        return self._fallback_or_fail(ctx)

    async def _collect_candidates(self, ctx: RunContext) -> list[Candidate]:
        run = ctx.run
        constructed = 0
        valid: list[Candidate] = []

        if self.generator is not None:
            for attempt in range(1, self.config.max_attempts + 1):
                run.record(Stage.GENERATION_ATTEMPT, "external generation", attempt=attempt)
                try:
                    generated = await self.attempt(ctx, attempt)
                except StructuredOutputError as e:
                    ctx.last_reason = e.reason
                    run.record(Stage.VALIDATION_FAILED, e.reason or "structured_output", attempt=attempt)
                    logger.info(f"Generation attempt {attempt} returned unusable output: {e.reason}")
                    continue
                constructed += len(generated)
                accepted_here = self._keep_valid(ctx, generated, attempt)
                if accepted_here:
                    valid.extend(accepted_here)
                    break

        deterministic = self.deterministic_candidates(ctx)
        constructed += len(deterministic)
        valid.extend(self._keep_valid(ctx, deterministic, None))

        if not valid:
            if constructed == 0:
                reason = ctx.last_reason or "no_candidate"
                run.record(Stage.VALIDATION_FAILED, reason)
                raise NoCandidateError(
                    "No candidate could be constructed from the source", reason=reason, run=run
                )
            run.record(Stage.VALIDATION_FAILED, ctx.last_reason or "invalid_shape")
            raise ValidationFailedError(
                "Every candidate failed structural validation", reason=ctx.last_reason, run=run
            )
        return valid

    def _keep_valid(self, ctx: RunContext, candidates: list[Candidate], attempt: int | None) -> list[Candidate]:
        kept = []
        for candidate in candidates:
            validation = self.validate(ctx, candidate)
            if validation.is_valid:
                kept.append(candidate)
                continue
            ctx.last_reason = validation.reason
            ctx.run.record(
                Stage.VALIDATION_FAILED,
                validation.reason or "invalid_shape",
                attempt=attempt,
                candidate_id=candidate.candidate_id,
            )
        return kept

    def _embed(self, text: str) -> np.ndarray:
        return np.asarray(
            self.embeddings.embed_text(normalize_for_similarity(text), self.config.embedding_dim)
        )

    def _score(self, ctx: RunContext, candidate: Candidate) -> ScoredCandidate:
        components = compute_components(
            candidate.evaluation_text,
            candidate.correct_answer,
            list(candidate.distractors),
            candidate.reasoning_steps,
            self.embeddings,
            max_steps=self.config.reasoning_max_steps,
            dim=self.config.embedding_dim,
        )
        difficulty = score(components, ctx.weights)
        target = ctx.request.target_mean
        distance = (
            distance_to_target(difficulty.components, target, ctx.weights) if target is not None else None
        )
        text = self.similarity_text(candidate)
        decision = gate(
            ctx.source_vector,
            self._embed(text),
            ctx.source_tokens,
            overlap_tokens(text),
            ctx.band,
        )
        scored = ScoredCandidate(
            candidate=candidate,
            score=difficulty,
            distance_to_target=distance,
            similarity_to_source=decision.similarity,
            jaccard_to_source=decision.jaccard,
            breakdown=self.breakdown(ctx, candidate),
        )
        ctx.pool.append(scored)
        return scored

    def _decide(self, ctx: RunContext, scored: ScoredCandidate) -> GateDecision:
        # metrics were computed while scoring; this only applies the band
        return decide(scored.similarity_to_source, scored.jaccard_to_source, ctx.band)

    def _violation(self, ctx: RunContext, scored: ScoredCandidate) -> float:
        return ctx.band.violation(scored.similarity_to_source, scored.jaccard_to_source)

    def _gate_all(
        self,
        ctx: RunContext,
        ranked: list[ScoredCandidate],
        tier: FallbackTier,
    ) -> tuple[ScoredCandidate, FallbackTier] | None:
        for scored in ranked:
            decision = self._decide(ctx, scored)
            candidate_id = scored.candidate.candidate_id
            if decision.accepted:
                ctx.run.record(
                    Stage.ACCEPTED,
                    "within similarity band",
                    tier=tier,
                    candidate_id=candidate_id,
                    similarity=decision.similarity,
                    jaccard=decision.jaccard,
                )
                return scored, tier
            ctx.last_reason = decision.reason
            ctx.run.record(
                Stage.SIMILARITY_REJECTED,
                decision.reason or "",
                tier=tier,
                candidate_id=candidate_id,
                similarity=decision.similarity,
                jaccard=decision.jaccard,
            )
        return None

    def _softening_tier(self, ctx: RunContext) -> tuple[ScoredCandidate, FallbackTier] | None:
        over_similar = [sc for sc in ctx.pool if self._decide(ctx, sc).reason in OVER_SIMILAR_REASONS]
        if not over_similar or self.config.softening_rounds <= 0:
            return None
        base = min(over_similar, key=lambda sc: sc.rank_key).candidate

        for round_number in range(1, self.config.softening_rounds + 1):
            softened = self.soften(ctx, base, round_number)
            if softened is None:
                ctx.run.record(
                    Stage.GENERATION_ATTEMPT,
                    "softening changed nothing",
                    tier=FallbackTier.SOFTENING,
                    attempt=round_number,
                )
                continue
            ctx.run.record(
                Stage.GENERATION_ATTEMPT,
                "softened",
                tier=FallbackTier.SOFTENING,
                attempt=round_number,
                candidate_id=softened.candidate_id,
            )
            if not self._keep_valid(ctx, [softened], round_number):
                continue
            accepted = self._gate_all(ctx, [self._score(ctx, softened)], FallbackTier.SOFTENING)
            if accepted is not None:
                return accepted
        return None

    async def _repair_tier(self, ctx: RunContext) -> tuple[ScoredCandidate, FallbackTier] | None:
        if self.generator is None or not ctx.pool:
            return None
        closest = min(ctx.pool, key=lambda sc: (sc.rank_key, self._violation(ctx, sc)))
        ctx.run.record(
            Stage.GENERATION_ATTEMPT,
            "repair",
            tier=FallbackTier.REPAIR,
            candidate_id=closest.candidate.candidate_id,
        )
        try:
            repaired = await self.repair(ctx, closest.candidate)
        except StructuredOutputError as e:
            ctx.last_reason = e.reason
            ctx.run.record(Stage.VALIDATION_FAILED, e.reason or "structured_output", tier=FallbackTier.REPAIR)
            logger.info(f"Repair returned unusable output: {e.reason}")
            return None
        if repaired is None or not self._keep_valid(ctx, [repaired], None):
            return None
        return self._gate_all(ctx, [self._score(ctx, repaired)], FallbackTier.REPAIR)

    def _fallback_or_fail(self, ctx: RunContext) -> GenerationResult:
        best_seen = min(ctx.pool, key=lambda sc: (self._violation(ctx, sc), sc.rank_key))
        eligible = [sc for sc in ctx.pool if sc.jaccard_to_source < 1.0]
        if self.config.allow_fallback_acceptance and eligible:
            best = min(eligible, key=lambda sc: (self._violation(ctx, sc), sc.rank_key))
            warning = (
                f"Accepted outside the similarity band ({ctx.last_reason}): "
                f"similarity {best.similarity_to_source:.3f}, jaccard {best.jaccard_to_source:.3f}"
            )
            logger.warning(f"Fallback acceptance for run {ctx.run.run_id}: {warning}")
            ctx.run.record(
                Stage.ACCEPTED,
                "fallback acceptance",
                tier=FallbackTier.FALLBACK_ACCEPTANCE,
                candidate_id=best.candidate.candidate_id,
                similarity=best.similarity_to_source,
                jaccard=best.jaccard_to_source,
            )
            return self._finish(ctx, best, FallbackTier.FALLBACK_ACCEPTANCE, warning)

        ctx.run.record(
            Stage.SIMILARITY_REJECTED,
            ctx.last_reason or "similarity_rejected",
            similarity=best_seen.similarity_to_source,
            jaccard=best_seen.jaccard_to_source,
        )
        raise SimilarityRejectedError(
            "No candidate passed the similarity gate",
            reason=ctx.last_reason,
            similarity=best_seen.similarity_to_source,
            jaccard=best_seen.jaccard_to_source,
            run=ctx.run,
        )

    def _finish(
        self,
        ctx: RunContext,
        accepted: ScoredCandidate,
        tier: FallbackTier,
        warning: str | None = None,
    ) -> GenerationResult:
        comparison = None
        profile = ctx.request.target_profile
        if profile is not None:
            comparison = compare_to_target(
                accepted.score.components,
                ctx.request.target_mean,
                profile.axis_tolerance,
                profile.effective_tolerance,
                ctx.weights,
            )
        logger.info(
            f"Run {ctx.run.run_id} accepted {accepted.candidate.candidate_id} at tier {tier.value}"
        )
        return GenerationResult(
            accepted=accepted,
            tier=tier,
            band=ctx.band,
            run=ctx.run,
            similarity_warning=warning,
            comparison=comparison,
            extras=self.extras(ctx, accepted),
        )
