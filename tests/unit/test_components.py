"""
Unit tests for the lexical, structural and ambiguity components.
"""
import numpy as np
import pytest

from difficulty_gate.errors import EmbeddingError, InvalidInputError
from difficulty_gate.scoring.ambiguity import semantic_ambiguity, semantic_ambiguity_from_text
from difficulty_gate.scoring.difficulty_score import DifficultyWeights
from difficulty_gate.scoring.item_evaluator import compute_components, evaluate_item
from difficulty_gate.scoring.lexical_structural import compute_lexical_structural
from difficulty_gate.scoring.text_metrics import compute_text_metrics, min_max
from difficulty_gate.semantic.embedding_service import HashEmbeddingService
from tests.fakes import FakeEmbeddingService, vector_at

SHORT = "The cat sat."
LONG = (
    "Although the committee had deliberated extensively, the recommendations remained "
    "controversial because several representatives considered them insufficiently ambitious. "
    "However, negotiations continued while journalists speculated, and eventually a compromise "
    "emerged. Nevertheless, disagreements persisted."
)


class TestTextMetrics:
    """Tests for surface text metrics."""

    def test_counts(self):
        metrics = compute_text_metrics("I ran and she walked. We stopped!")

        assert metrics.word_count == 7
        assert metrics.sentence_count == 2
        assert metrics.clause_count == 1

    def test_text_without_terminal_punctuation_is_one_sentence(self):
        assert compute_text_metrics("no punctuation here").sentence_count == 1

    def test_empty_text(self):
        metrics = compute_text_metrics("")

        assert metrics.word_count == 0
        assert metrics.avg_word_length == 0.0
        assert metrics.sentence_count == 0

    def test_min_max_clamps(self):
        assert min_max(-5, 0, 10) == 0.0
        assert min_max(20, 0, 10) == 1.0
        assert min_max(5, 0, 10) == pytest.approx(0.5)

    def test_min_max_rejects_empty_range(self):
        with pytest.raises(InvalidInputError):
            min_max(1, 3, 3)


class TestLexicalStructural:
    """Tests for L and S."""

    def test_short_simple_text_scores_zero(self):
        assert compute_lexical_structural(SHORT) == (0.0, 0.0)

    def test_long_complex_text_scores_higher(self):
        short_l, short_s = compute_lexical_structural(SHORT)
        long_l, long_s = compute_lexical_structural(LONG)

        assert long_l > short_l
        assert long_s > short_s

    def test_scores_stay_in_unit_range(self):
        text = " ".join(["incomprehensibilities"] * 300) + " and" * 20
        lexical, structural = compute_lexical_structural(text)

        assert 0.0 <= lexical <= 1.0
        assert 0.0 <= structural <= 1.0


class TestAmbiguity:
    """Tests for semantic ambiguity A."""

    def test_mean_cosine(self):
        correct = vector_at(1.0)
        distractors = [vector_at(0.8), vector_at(0.4)]

        assert semantic_ambiguity(correct, distractors) == pytest.approx(0.6)

    def test_requires_distractors(self):
        with pytest.raises(InvalidInputError) as exc_info:
            semantic_ambiguity(vector_at(1.0), [])

        assert exc_info.value.reason == "no_distractors"

    def test_zero_vector_raises(self):
        with pytest.raises(EmbeddingError):
            semantic_ambiguity(np.ones(8), [np.zeros(8)])

    def test_from_text_uses_embeddings(self):
        embeddings = FakeEmbeddingService(anchor="happy", overrides={"glad": 0.9, "sad": 0.3})

        value = semantic_ambiguity_from_text("happy", ["glad", "sad"], embeddings, 8)

        assert value == pytest.approx(0.6)

    def test_from_text_requires_answer(self):
        with pytest.raises(InvalidInputError):
            semantic_ambiguity_from_text("  ", ["glad"], HashEmbeddingService(), 8)


class TestItemEvaluator:
    """Tests for whole-item evaluation."""

    def test_compute_components(self):
        embeddings = FakeEmbeddingService(anchor="happy", default_similarity=0.7)

        components = compute_components(SHORT, "happy", ["glad"], 2, embeddings)

        assert components.L == 0.0
        assert components.S == 0.0
        assert components.A == pytest.approx(0.7)
        assert components.R == pytest.approx(0.4)

    def test_evaluate_item_is_deterministic_with_hash_embeddings(self):
        weights = DifficultyWeights(0.2, 0.2, 0.3, 0.3)
        first = evaluate_item(LONG, "compromise", ["agreement", "dispute"], 3, weights, HashEmbeddingService())
        second = evaluate_item(LONG, "compromise", ["agreement", "dispute"], 3, weights, HashEmbeddingService())

        assert first == second
        assert 0.0 <= first.D <= 1.0
