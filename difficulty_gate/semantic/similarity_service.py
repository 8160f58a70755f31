"""
Similarity & anti-plagiarism gate.

Two independent signals decide whether a candidate is far enough from its
source without drifting off-topic:

1. Cosine similarity of embedding vectors must lie inside a band
   [min_sim, max_sim].
2. Token overlap (Jaccard) must not exceed max_jaccard.

Both must hold. Token overlap uses whitespace tokens for Latin-script text
and character bigrams for CJK text, selected through an ordered table of
(detector, tokenizer) rules. A candidate whose token set equals the
source's (Jaccard 1.0) is always rejected, whatever the band allows.
"""
from __future__ import annotations

import math
import re
import string
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import numpy as np

from difficulty_gate.errors import EmbeddingError, InvalidInputError

BLANK_RUN = re.compile(r"_+")
PUNCTUATION = string.punctuation.replace("'", "") + "“”‘’。、，．！？：；「」『』（）【】…—–"

CJK_RANGES = (
    (0x3040, 0x309F),  # Hiragana
    (0x30A0, 0x30FF),  # Katakana
    (0x3400, 0x4DBF),  # CJK Extension A
    (0x4E00, 0x9FFF),  # CJK Unified Ideographs
    (0xAC00, 0xD7AF),  # Hangul syllables
    (0xF900, 0xFAFF),  # CJK Compatibility Ideographs
)
CJK_SHARE_THRESHOLD = 0.3


# =============================================================================
# Vector similarity
# =============================================================================


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """
    Cosine similarity between two vectors.

    Raises:
        EmbeddingError: On empty vectors, mismatched dimensions or a zero vector
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.size == 0 or vb.size == 0:
        raise EmbeddingError("Cannot compare empty vectors", reason="empty_vector")
    if va.shape != vb.shape:
        raise EmbeddingError(
            f"Vector dimension mismatch: {va.shape[0]} vs {vb.shape[0]}",
            reason="dimension_mismatch",
        )
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0 or norm_b == 0:
        raise EmbeddingError("Cannot compare a zero vector", reason="zero_vector")
    value = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, value))


# =============================================================================
# Token overlap
# =============================================================================


def _is_cjk_char(char: str) -> bool:
    code = ord(char)
    return any(low <= code <= high for low, high in CJK_RANGES)


def is_cjk(text: str) -> bool:
    """True when CJK characters make up a meaningful share of the text."""
    visible = [char for char in text if not char.isspace() and char not in PUNCTUATION]
    if not visible:
        return False
    cjk = sum(1 for char in visible if _is_cjk_char(char))
    return cjk / len(visible) >= CJK_SHARE_THRESHOLD


def normalize_for_similarity(text: str) -> str:
    """Lower-case, drop blank runs and collapse whitespace."""
    text = BLANK_RUN.sub(" ", text.lower())
    return " ".join(text.split())


def whitespace_tokens(text: str) -> set[str]:
    tokens = (token.strip(PUNCTUATION) for token in normalize_for_similarity(text).split())
    return {token for token in tokens if token}


def cjk_bigrams(text: str) -> set[str]:
    chars = [
        char
        for char in normalize_for_similarity(text)
        if not char.isspace() and char not in PUNCTUATION
    ]
    if len(chars) == 1:
        return {chars[0]}
    return {chars[i] + chars[i + 1] for i in range(len(chars) - 1)}


TOKENIZER_RULES: list[tuple[Callable[[str], bool], Callable[[str], set[str]]]] = [
    (is_cjk, cjk_bigrams),
    (lambda _text: True, whitespace_tokens),
]


def overlap_tokens(text: str) -> set[str]:
    """Tokenize for Jaccard using the first matching script rule."""
    for detector, tokenizer in TOKENIZER_RULES:
        if detector(text):
            return tokenizer(text)
    return set()


def jaccard(a: set[str], b: set[str]) -> float:
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def jaccard_similarity(text_a: str, text_b: str) -> float:
    return jaccard(overlap_tokens(text_a), overlap_tokens(text_b))


def word_ngrams(text: str, n: int = 3) -> set[tuple[str, ...]]:
    tokens = [
        token.strip(PUNCTUATION)
        for token in normalize_for_similarity(text).split()
        if token.strip(PUNCTUATION)
    ]
    return {tuple(tokens[i : i + n]) for i in range(len(tokens) - n + 1)}


def ngram_copy_ratio(fragment: str, reference: str, n: int = 3) -> float:
    """Share of ``fragment``'s n-grams that also occur in ``reference``."""
    grams = word_ngrams(fragment, n)
    if not grams:
        return 0.0
    return len(grams & word_ngrams(reference, n)) / len(grams)


# =============================================================================
# Gate
# =============================================================================


@dataclass(frozen=True)
class SimilarityBand:
    """Acceptance band for one task type."""

    min_sim: float
    max_sim: float
    max_jaccard: float

    def __post_init__(self):
        values = (self.min_sim, self.max_sim, self.max_jaccard)
        if not all(math.isfinite(v) for v in values):
            raise InvalidInputError("Similarity band values must be finite")
        if self.min_sim > self.max_sim:
            raise InvalidInputError(
                f"Similarity band min {self.min_sim} exceeds max {self.max_sim}"
            )

    def violation(self, similarity: float, jaccard_value: float) -> float:
        """How far a pair of metrics sits outside the band (0 when inside)."""
        return (
            max(0.0, self.min_sim - similarity)
            + max(0.0, similarity - self.max_sim)
            + max(0.0, jaccard_value - self.max_jaccard)
        )

    def to_dict(self) -> dict[str, float]:
        return {"min": self.min_sim, "max": self.max_sim, "maxJaccard": self.max_jaccard}


@dataclass(frozen=True)
class GateDecision:
    accepted: bool
    similarity: float
    jaccard: float
    reason: str | None = None


def gate(
    source_vector: Sequence[float] | np.ndarray,
    candidate_vector: Sequence[float] | np.ndarray,
    source_tokens: set[str],
    candidate_tokens: set[str],
    band: SimilarityBand,
) -> GateDecision:
    """
    Decide whether a candidate is acceptably distant from its source.

    Args:
        source_vector: Embedding of the source
        candidate_vector: Embedding of the candidate
        source_tokens: Overlap tokens of the source
        candidate_tokens: Overlap tokens of the candidate
        band: Acceptance band for the task type

    Returns:
        GateDecision with both metrics and, when rejected, the reason
    """
    similarity = cosine_similarity(source_vector, candidate_vector)
    overlap = jaccard(source_tokens, candidate_tokens)
    return decide(similarity, overlap, band)


def decide(similarity: float, overlap: float, band: SimilarityBand) -> GateDecision:
    """Apply the band to already-computed metrics. Identical tokens always fail."""
    if overlap >= 1.0:
        return GateDecision(False, similarity, overlap, "identical_to_source")
    if overlap > band.max_jaccard:
        return GateDecision(False, similarity, overlap, "token_overlap_too_high")
    if similarity > band.max_sim:
        return GateDecision(False, similarity, overlap, "too_similar")
    if similarity < band.min_sim:
        return GateDecision(False, similarity, overlap, "too_dissimilar")
    return GateDecision(True, similarity, overlap)
