"""
Configuration settings for the difficulty-gate service.

Uses Pydantic Settings for environment variable management with .env file support.
Domain code never reads settings directly: the ``get_*`` helpers below turn
them into immutable values (weights, bands, pipeline and provider config)
that are passed explicitly at call time.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from difficulty_gate.generation.candidates import TaskType
from difficulty_gate.generation.llm_client import LLMConfig
from difficulty_gate.generation.pipeline import PipelineConfig
from difficulty_gate.scoring.difficulty_score import DifficultyWeights
from difficulty_gate.semantic.similarity_service import SimilarityBand


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # API Server
    # ========================================
    api_host: str = Field(
        default="127.0.0.1",
        description="API server host",
    )
    api_port: int = Field(
        default=8100,
        description="API server port",
    )
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Difficulty Weights
    # ========================================
    weight_lexical: float = Field(default=0.2, ge=0.0, description="wL: lexical complexity weight")
    weight_structural: float = Field(default=0.2, ge=0.0, description="wS: structural complexity weight")
    weight_ambiguity: float = Field(default=0.3, ge=0.0, description="wA: semantic ambiguity weight")
    weight_reasoning: float = Field(default=0.3, ge=0.0, description="wR: reasoning depth weight")
    reasoning_max_steps: int = Field(
        default=5,
        gt=0,
        description="Reasoning steps at which R saturates at 1.0",
    )

    # ========================================
    # Similarity Bands
    # ========================================
    cloze_min_similarity: float = Field(default=0.15, description="Lowest cosine to source for cloze")
    cloze_max_similarity: float = Field(default=0.95, description="Highest cosine to source for cloze")
    cloze_max_jaccard: float = Field(default=0.75, description="Highest token Jaccard to source for cloze")
    mc_min_similarity: float = Field(default=0.30, description="Lowest cosine to source for multiple choice")
    mc_max_similarity: float = Field(default=0.90, description="Highest cosine to source for multiple choice")
    mc_max_jaccard: float = Field(default=0.60, description="Highest token Jaccard to source for multiple choice")

    # ========================================
    # Slot Extraction
    # ========================================
    extraction_max_slots: int = Field(default=6, ge=1, description="Maximum slots kept per text")
    extraction_context_radius: int = Field(default=24, ge=0, description="Characters either side of a slot in contextSnippet")
    extraction_loose_confidence: float = Field(
        default=0.58,
        ge=0.0,
        le=1.0,
        description="Fixed confidence of slots found by the last-resort loose regex",
    )

    # ========================================
    # Target Estimation
    # ========================================
    target_max_sources: int = Field(default=3, ge=1, description="Maximum reference texts per target")

    # ========================================
    # Generation State Machine
    # ========================================
    generation_max_attempts: int = Field(default=3, ge=1, le=3, description="External generation attempts per run")
    softening_rounds: int = Field(default=2, ge=0, le=2, description="Synonym softening rounds")
    allow_fallback_acceptance: bool = Field(
        default=True,
        description="Return the best valid candidate with a similarityWarning instead of failing",
    )
    cloze_word_count_window: int = Field(default=15, ge=0, description="Allowed word-count drift from the source")

    # ========================================
    # Multiple-Choice Validation
    # ========================================
    mc_ngram_copy_threshold: float = Field(
        default=0.65,
        description="Share of a choice's n-grams found in the passage above which it counts as copied",
    )
    mc_ngram_size: int = Field(default=3, ge=1, description="n for passage-copy detection")
    mc_sentence_min_words: int = Field(default=4, ge=1, description="Words before a choice counts as a sentence")
    mc_min_grounding_tokens: int = Field(default=1, ge=0, description="Content words the correct choice must share with the passage")
    mc_pregenerate_passage: bool = Field(default=True, description="Generate a fresh passage before rewriting")
    # Combo variant thresholds (stricter copy and grounding limits)
    mc_combo_ngram_copy_threshold: float = Field(default=0.5, description="Combo variant n-gram copy threshold")
    mc_combo_min_grounding_tokens: int = Field(default=2, ge=0, description="Combo variant grounding requirement")
    mc_combo_max_jaccard: float = Field(default=0.5, description="Combo variant Jaccard ceiling")

    # ========================================
    # LLM Provider
    # ========================================
    llm_backend: Literal["none", "gemini", "openai_compatible"] = Field(
        default="none",
        description="Text generation provider (none disables external generation)",
    )
    gemini_api_key: str | None = Field(
        default=None,
        description="Google Generative AI (Gemini) API key",
    )
    ai_model: str = Field(
        default="gemini-2.0-flash",
        description="Gemini model for generation",
    )
    openai_base_url: str = Field(
        default="https://api.gradient.ai/v1",
        description="Base URL of an OpenAI-compatible chat completions API",
    )
    openai_api_key: str | None = Field(
        default=None,
        description="API key for the OpenAI-compatible provider",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="Model name for the OpenAI-compatible provider",
    )
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    llm_max_output_tokens: int = Field(default=900, ge=1, description="Maximum tokens per reply")
    llm_max_retries: int = Field(default=3, ge=1, description="Attempts for transient provider errors")
    llm_base_delay: float = Field(default=0.5, ge=0.0, description="Base backoff delay in seconds")
    llm_timeout_seconds: float = Field(default=30.0, gt=0.0, description="Per-request timeout")

    # ========================================
    # Embeddings
    # ========================================
    embedding_backend: Literal["hash", "sentence_transformers"] = Field(
        default="hash",
        description="Embedding backend (hash is offline and deterministic)",
    )
    embedding_model: str = Field(
        default="all-MiniLM-L6-v2",
        description="Sentence transformer model for embeddings",
    )
    embedding_dimension: int = Field(
        default=8,
        gt=0,
        description="Vector dimension for the hash backend",
    )

    # ========================================
    # Helpers
    # ========================================
    def get_cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def get_difficulty_weights(self) -> DifficultyWeights:
        """Default weights as an immutable value."""
        return DifficultyWeights(
            wL=self.weight_lexical,
            wS=self.weight_structural,
            wA=self.weight_ambiguity,
            wR=self.weight_reasoning,
        )

    def get_similarity_band(self, task_type: TaskType) -> SimilarityBand:
        if task_type == TaskType.MULTIPLE_CHOICE:
            return SimilarityBand(self.mc_min_similarity, self.mc_max_similarity, self.mc_max_jaccard)
        return SimilarityBand(self.cloze_min_similarity, self.cloze_max_similarity, self.cloze_max_jaccard)

    def get_pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(
            weights=self.get_difficulty_weights(),
            cloze_band=self.get_similarity_band(TaskType.CLOZE),
            mc_band=self.get_similarity_band(TaskType.MULTIPLE_CHOICE),
            max_attempts=self.generation_max_attempts,
            softening_rounds=self.softening_rounds,
            allow_fallback_acceptance=self.allow_fallback_acceptance,
            reasoning_max_steps=self.reasoning_max_steps,
            embedding_dim=self.embedding_dimension,
            word_count_window=self.cloze_word_count_window,
            mc_ngram_copy_threshold=self.mc_ngram_copy_threshold,
            mc_ngram_size=self.mc_ngram_size,
            mc_sentence_min_words=self.mc_sentence_min_words,
            mc_min_grounding_tokens=self.mc_min_grounding_tokens,
            mc_pregenerate_passage=self.mc_pregenerate_passage,
        )

    def get_llm_config(self) -> LLMConfig:
        return LLMConfig(
            backend=self.llm_backend,
            gemini_api_key=self.gemini_api_key,
            gemini_model=self.ai_model,
            openai_base_url=self.openai_base_url,
            openai_api_key=self.openai_api_key,
            openai_model=self.openai_model,
            temperature=self.llm_temperature,
            max_output_tokens=self.llm_max_output_tokens,
            max_retries=self.llm_max_retries,
            base_delay=self.llm_base_delay,
            timeout_seconds=self.llm_timeout_seconds,
        )

    def get_combo_config(self) -> dict[str, Any]:
        """Thresholds for the stricter "combo" multiple-choice variant."""
        return {
            "ngram_copy_threshold": self.mc_combo_ngram_copy_threshold,
            "min_grounding_tokens": self.mc_combo_min_grounding_tokens,
            "max_jaccard": self.mc_combo_max_jaccard,
        }

    def public_config(self) -> dict[str, Any]:
        """Non-secret configuration for the /config endpoint."""
        return {
            "weights": self.get_difficulty_weights().to_dict(),
            "reasoningMaxSteps": self.reasoning_max_steps,
            "similarityBands": {
                TaskType.CLOZE.value: self.get_similarity_band(TaskType.CLOZE).to_dict(),
                TaskType.MULTIPLE_CHOICE.value: self.get_similarity_band(TaskType.MULTIPLE_CHOICE).to_dict(),
            },
            "generation": {
                "maxAttempts": self.generation_max_attempts,
                "softeningRounds": self.softening_rounds,
                "allowFallbackAcceptance": self.allow_fallback_acceptance,
            },
            "mcComboThresholds": self.get_combo_config(),
            "llmBackend": self.llm_backend,
            "llmConfigured": bool(
                (self.llm_backend == "gemini" and self.gemini_api_key)
                or (self.llm_backend == "openai_compatible" and self.openai_api_key)
            ),
            "embeddingBackend": self.embedding_backend,
            "embeddingDimension": self.embedding_dimension,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def get_difficulty_weights() -> DifficultyWeights:
    return get_settings().get_difficulty_weights()


def get_similarity_band(task_type: TaskType) -> SimilarityBand:
    return get_settings().get_similarity_band(task_type)


def get_pipeline_config() -> PipelineConfig:
    return get_settings().get_pipeline_config()


def get_llm_config() -> LLMConfig:
    return get_settings().get_llm_config()
