"""
Unit tests for the generation state machine and the cloze pipeline.
"""
import pytest

from difficulty_gate.errors import (
    EmptySourceError,
    NoCandidateError,
    ProviderUnavailableError,
    SimilarityRejectedError,
    ValidationFailedError,
)
from difficulty_gate.extraction.format_classifier import ItemFormat
from difficulty_gate.generation.candidates import Candidate, CandidateOrigin, TaskType
from difficulty_gate.generation.cloze_pipeline import ClozePipeline
from difficulty_gate.generation.format_validator import ShapeValidation
from difficulty_gate.generation.pipeline import CandidatePipeline, GenerationRequest, PipelineConfig
from difficulty_gate.generation.run_state import FallbackTier, GenerationRun, Stage
from difficulty_gate.profile.target_profile import profile_from_samples
from difficulty_gate.scoring.difficulty_score import DifficultyComponents
from tests.fakes import FakeEmbeddingService, ScriptedGenerator

WEATHER = "The weather is sunny and warm today."
PARK = "Yesterday the children played ________ in the park near the river."
PARK_PLAIN = "Yesterday the children played in the park near the river."
PASSAGE_REPLY = '{"text": "Last summer my cousins swam happily in the lake behind the old farmhouse."}'


class FixedPipeline(CandidatePipeline):
    """Pipeline whose only candidates are fixed texts, to drive the ladder directly."""

    task_type = TaskType.CLOZE

    def __init__(self, embeddings, texts, config=None):
        super().__init__(embeddings, None, config)
        self.texts = texts

    async def load_structure(self, ctx):
        ctx.structure = None

    async def attempt(self, ctx, attempt):
        return []

    def deterministic_candidates(self, ctx):
        return [
            Candidate(
                text=text,
                correct_answers=("weather",),
                distractors=("sunny", "warm", "today"),
                reasoning_steps=1,
                format=ItemFormat.FULL_BLANK,
            )
            for text in self.texts
        ]

    def validate(self, ctx, candidate):
        return ShapeValidation()

    def soften(self, ctx, candidate, round_number):
        return None

    async def repair(self, ctx, candidate):
        return None


def tiers(run):
    return [t.tier for t in run.transitions if t.tier is not None]


class TestRunState:
    """Tests for the audit trail."""

    def test_start_records_received(self):
        run = GenerationRun.start(WEATHER, TaskType.CLOZE)

        assert run.stage == Stage.RECEIVED
        assert len(run.source_id) == 16
        assert run.transitions[0].detail == "cloze request"

    def test_accepted_sets_tier_and_candidate(self):
        run = GenerationRun.start(WEATHER, TaskType.CLOZE)
        run.record(Stage.ACCEPTED, "ok", tier=FallbackTier.SOFTENING, candidate_id="abc", similarity=0.51234)

        assert run.tier == FallbackTier.SOFTENING
        assert run.to_dict()["candidateId"] == "abc"
        assert run.debug_dict()["transitions"][-1] == {
            "stage": "accepted",
            "detail": "ok",
            "tier": "softening",
            "candidateId": "abc",
            "similarity": 0.5123,
        }


class TestSimilarityLadder:
    """Tests for tier ordering and terminal outcomes."""

    @pytest.mark.asyncio
    async def test_identical_tokens_rejected_even_inside_band(self):
        """A reordered copy of the source has Jaccard 1 and is never accepted."""
        embeddings = FakeEmbeddingService(anchor=WEATHER, default_similarity=0.5)
        pipeline = FixedPipeline(embeddings, ["Today the weather is sunny and warm."])

        with pytest.raises(SimilarityRejectedError) as exc_info:
            await pipeline.run(GenerationRequest(WEATHER))

        error = exc_info.value
        assert error.reason == "identical_to_source"
        assert error.jaccard == 1.0
        assert error.similarity == pytest.approx(0.5)
        assert error.run.stage == Stage.SIMILARITY_REJECTED
        assert error.to_dict()["debug"]["transitions"]

    @pytest.mark.asyncio
    async def test_fallback_acceptance(self):
        embeddings = FakeEmbeddingService(anchor=WEATHER)
        pipeline = FixedPipeline(embeddings, ["The weather is sunny and warm."])

        result = await pipeline.run(GenerationRequest(WEATHER))

        assert result.tier == FallbackTier.FALLBACK_ACCEPTANCE
        assert "token_overlap_too_high" in result.similarity_warning
        assert result.to_dict()["similarityWarning"] == result.similarity_warning

    @pytest.mark.asyncio
    async def test_fallback_disabled(self):
        embeddings = FakeEmbeddingService(anchor=WEATHER)
        config = PipelineConfig(allow_fallback_acceptance=False)
        pipeline = FixedPipeline(embeddings, ["The weather is sunny and warm."], config)

        with pytest.raises(SimilarityRejectedError) as exc_info:
            await pipeline.run(GenerationRequest(WEATHER))

        assert exc_info.value.reason == "token_overlap_too_high"

    @pytest.mark.asyncio
    async def test_fallback_prefers_smallest_violation(self):
        embeddings = FakeEmbeddingService(anchor=WEATHER)
        pipeline = FixedPipeline(
            embeddings, ["The weather is sunny and warm today now.", "The weather is sunny and warm."]
        )

        result = await pipeline.run(GenerationRequest(WEATHER))

        # 6/7 overlap violates the band less than 7/8
        assert result.tier == FallbackTier.FALLBACK_ACCEPTANCE
        assert result.accepted.candidate.text == "The weather is sunny and warm."

    @pytest.mark.asyncio
    async def test_ranking_by_distance_to_target(self):
        embeddings = FakeEmbeddingService(anchor=WEATHER)
        long_text = (
            "Although several committee representatives deliberated extensively, "
            "however, disagreements persisted because negotiations stalled."
        )
        pipeline = FixedPipeline(embeddings, [long_text, "A cat sat on a mat."])
        target = DifficultyComponents(L=0.0, S=0.0, A=1.0, R=0.2)

        result = await pipeline.run(GenerationRequest(WEATHER, target=target))

        assert result.tier == FallbackTier.PRIMARY
        assert result.accepted.candidate.text == "A cat sat on a mat."
        assert result.accepted.distance_to_target < 0.01

    @pytest.mark.asyncio
    async def test_target_profile_adds_comparison(self):
        embeddings = FakeEmbeddingService(anchor=WEATHER)
        profile = profile_from_samples([DifficultyComponents(0.0, 0.0, 1.0, 0.2)])
        pipeline = FixedPipeline(embeddings, ["A cat sat on a mat."])

        result = await pipeline.run(GenerationRequest(WEATHER, target_profile=profile))

        assert result.to_dict()["targetComparison"]["compliance"] == "within"


class TestClozePipeline:
    """Tests for the cloze pipeline end to end."""

    @pytest.mark.asyncio
    async def test_without_generator_softens_deterministic_candidate(self):
        embeddings = FakeEmbeddingService(anchor=WEATHER)
        pipeline = ClozePipeline(embeddings)

        result = await pipeline.run(GenerationRequest(WEATHER))

        candidate = result.accepted.candidate
        assert result.tier == FallbackTier.SOFTENING
        assert candidate.text == "The _______ is bright and mild this morning."
        assert candidate.correct_answer == "weather"
        assert len(candidate.distractors) == 3
        assert candidate.origin == CandidateOrigin.SOFTENED
        assert result.accepted.jaccard_to_source == pytest.approx(3 / 11)

    @pytest.mark.asyncio
    async def test_result_payload(self):
        result = await ClozePipeline(FakeEmbeddingService(anchor=WEATHER)).run(GenerationRequest(WEATHER))
        payload = result.to_dict()

        assert payload["item"]["correct"] == "weather"
        assert payload["similarityRange"] == {"min": 0.15, "max": 0.95, "maxJaccard": 0.75}
        assert payload["answerKey"] == ["weather"]
        assert payload["slots"][0]["missingCount"] == 7
        assert payload["source"]["slotSource"] == "none"
        assert payload["debug"]["tier"] == "softening"
        assert payload["distanceToTarget"] is None

    @pytest.mark.asyncio
    async def test_generated_candidate_accepted_without_softening(self):
        embeddings = FakeEmbeddingService(anchor=PARK_PLAIN)
        generator = ScriptedGenerator([PASSAGE_REPLY, '{"answers": ["cousins"]}'])
        pipeline = ClozePipeline(embeddings, generator)

        result = await pipeline.run(GenerationRequest(PARK))

        candidate = result.accepted.candidate
        assert result.tier == FallbackTier.PRIMARY
        assert candidate.origin == CandidateOrigin.GENERATED
        assert candidate.text == "Last summer my _______ swam happily in the lake behind the old farmhouse."
        assert candidate.correct_answers == ("cousins",)
        assert FallbackTier.SOFTENING not in tiers(result.run)
        assert len(generator.prompts) == 2

    @pytest.mark.asyncio
    async def test_source_answers_excluded_from_selection(self):
        embeddings = FakeEmbeddingService(anchor=PARK_PLAIN)
        generator = ScriptedGenerator(
            [
                '{"text": "Last summer my cousins swam happily in the lake behind the farmhouse every day."}',
                '{"answers": ["happily"]}',
            ]
        )
        pipeline = ClozePipeline(embeddings, generator)

        result = await pipeline.run(GenerationRequest(PARK, source_answers=("happily",)))

        # the excluded selection is replaced by the longest remaining content word
        assert result.accepted.candidate.correct_answers == ("farmhouse",)
        assert "Never choose any of these words: happily" in generator.prompts[1]

    @pytest.mark.asyncio
    async def test_repair_tier(self):
        embeddings = FakeEmbeddingService(anchor=WEATHER)
        generator = ScriptedGenerator(
            [
                "no slots here",
                "not json",
                '{"text": "Our _______ was bright and mild that morning."}',
            ]
        )
        config = PipelineConfig(max_attempts=1, softening_rounds=0)
        pipeline = ClozePipeline(embeddings, generator, config)

        result = await pipeline.run(GenerationRequest(WEATHER))

        assert result.tier == FallbackTier.REPAIR
        assert result.accepted.candidate.origin == CandidateOrigin.REPAIRED
        assert result.accepted.candidate.text == "Our _______ was bright and mild that morning."

    @pytest.mark.asyncio
    async def test_repair_that_changes_blanks_is_discarded(self):
        embeddings = FakeEmbeddingService(anchor=WEATHER)
        generator = ScriptedGenerator(
            ["no slots here", "not json", '{"text": "Our _____ was bright and mild that morning."}']
        )
        config = PipelineConfig(max_attempts=1, softening_rounds=0)

        result = await ClozePipeline(embeddings, generator, config).run(GenerationRequest(WEATHER))

        assert result.tier == FallbackTier.FALLBACK_ACCEPTANCE
        assert "repair_changed_blanks" in result.similarity_warning

    @pytest.mark.asyncio
    async def test_empty_source(self):
        with pytest.raises(EmptySourceError) as exc_info:
            await ClozePipeline(FakeEmbeddingService()).run(GenerationRequest("   "))

        assert exc_info.value.run is not None

    @pytest.mark.asyncio
    async def test_no_candidate(self):
        with pytest.raises(NoCandidateError):
            await ClozePipeline(FakeEmbeddingService()).run(GenerationRequest("It is a cat."))

    @pytest.mark.asyncio
    async def test_no_candidate_when_every_attempt_fails_to_carve(self):
        """Attempts that build nothing end in NoCandidateError, not a validation failure."""
        # the first reply answers the slot repair request
        generator = ScriptedGenerator(
            ["no slots here"] + ['{"text": "A dog ran by."}', '{"answers": ["zebra"]}'] * 3
        )

        with pytest.raises(NoCandidateError) as exc_info:
            await ClozePipeline(FakeEmbeddingService(), generator).run(GenerationRequest("It is a cat."))

        assert exc_info.value.reason == "blank_carving_failed"
        assert len(generator.prompts) == 7

    @pytest.mark.asyncio
    async def test_every_candidate_invalid(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            await ClozePipeline(FakeEmbeddingService()).run(GenerationRequest("I saw it today"))

        assert exc_info.value.reason == "BLANK_AT_END"

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self):
        generator = ScriptedGenerator([ProviderUnavailableError("busy", reason="http_503")])

        with pytest.raises(ProviderUnavailableError):
            await ClozePipeline(FakeEmbeddingService(), generator).run(GenerationRequest(PARK))
