"""
Error taxonomy for the difficulty gate.

Every externally visible failure derives from DifficultyGateError and
carries enough context for an operator to see why a request failed:
the failing validation reason and the last similarity/jaccard pair the
pipeline observed. The HTTP layer and the CLI map each class to a fixed
error type, status code and exit code.
"""
from __future__ import annotations

from typing import Any


class DifficultyGateError(Exception):
    """Base class for all domain errors."""

    error_type: str = "INTERNAL_ERROR"
    http_status: int = 500
    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        reason: str | None = None,
        similarity: float | None = None,
        jaccard: float | None = None,
        run: Any | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.similarity = similarity
        self.jaccard = jaccard
        # GenerationRun when the failure happened inside a pipeline run
        self.run = run

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "error": self.message,
            "errorType": self.error_type,
            "reason": self.reason,
            "similarity": self.similarity,
            "jaccard": self.jaccard,
        }
        if self.run is not None:
            payload["runId"] = self.run.run_id
            payload["sourceId"] = self.run.source_id
            payload["debug"] = self.run.debug_dict()
        return payload


class InvalidInputError(DifficultyGateError):
    """Malformed or missing input. Client-caused, never retried."""

    error_type = "BAD_REQUEST"
    http_status = 400
    exit_code = 2


class InvalidComponentError(InvalidInputError):
    """A difficulty component was NaN or infinite."""


class EmptySourceError(DifficultyGateError):
    """No usable reference text after trimming."""

    error_type = "EMPTY_SOURCE"
    http_status = 400
    exit_code = 3


class EmbeddingError(DifficultyGateError):
    """Embedding vectors were empty, zero or of mismatched dimension."""

    error_type = "EMBEDDING_ERROR"
    http_status = 502
    exit_code = 4


class ProviderUnavailableError(DifficultyGateError):
    """The text generation provider failed.

    ``transient`` is True when the provider kept answering 429/503 (or
    timing out) until the retry budget ran out, False when it failed in
    a way retrying cannot fix.
    """

    error_type = "PROVIDER_UNAVAILABLE"
    http_status = 503
    exit_code = 5

    def __init__(self, message: str, *, transient: bool = True, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.transient = transient


class ValidationFailedError(DifficultyGateError):
    """No candidate survived the structural/format checks."""

    error_type = "VALIDATION_FAILED"
    http_status = 422
    exit_code = 6


class StructuredOutputError(ValidationFailedError):
    """Provider output could not be decoded into the expected schema."""


class SimilarityRejectedError(DifficultyGateError):
    """Valid candidates existed but none could be accepted by the gate."""

    error_type = "SIMILARITY_REJECTED"
    http_status = 422
    exit_code = 7


class NoCandidateError(DifficultyGateError):
    """Nothing could be constructed, deterministic or generated."""

    error_type = "NO_CANDIDATE"
    http_status = 422
    exit_code = 8
