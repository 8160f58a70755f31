"""
Unit tests for settings and the values derived from them.
"""
import pytest
from pydantic import ValidationError

from config import Settings
from difficulty_gate.generation.candidates import TaskType


class TestSettings:
    """Tests for Settings defaults and helpers."""

    def test_default_weights_sum_to_one(self, settings):
        assert settings.get_difficulty_weights().total == pytest.approx(1.0)

    def test_default_bands(self, settings):
        cloze = settings.get_similarity_band(TaskType.CLOZE)
        mc = settings.get_similarity_band(TaskType.MULTIPLE_CHOICE)

        assert (cloze.min_sim, cloze.max_sim, cloze.max_jaccard) == (0.15, 0.95, 0.75)
        assert (mc.min_sim, mc.max_sim, mc.max_jaccard) == (0.30, 0.90, 0.60)

    def test_cors_origins_split(self):
        settings = Settings(_env_file=None, cors_origins="http://a.test, http://b.test,")

        assert settings.get_cors_origins() == ["http://a.test", "http://b.test"]

    def test_negative_weight_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, weight_lexical=-0.5)

    def test_attempts_capped_at_three(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, generation_max_attempts=4)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MC_MAX_JACCARD", "0.4")

        settings = Settings(_env_file=None)

        assert settings.get_similarity_band(TaskType.MULTIPLE_CHOICE).max_jaccard == 0.4

    def test_pipeline_config_carries_settings(self, settings):
        config = settings.get_pipeline_config()

        assert config.max_attempts == 3
        assert config.softening_rounds == 2
        assert config.allow_fallback_acceptance is True
        assert config.weights == settings.get_difficulty_weights()

    def test_public_config_hides_secrets(self):
        settings = Settings(_env_file=None, llm_backend="gemini", gemini_api_key="secret-key")
        public = settings.public_config()

        assert public["llmConfigured"] is True
        assert "secret-key" not in str(public)
        assert public["similarityBands"]["cloze"]["maxJaccard"] == 0.75
        assert public["mcComboThresholds"]["max_jaccard"] == 0.5
