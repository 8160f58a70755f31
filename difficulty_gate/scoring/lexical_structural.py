"""
Lexical (L) and structural (S) complexity.

L blends passage length with average word length; S blends clause
density (counted through coordinating/subordinating conjunctions) with
sentence count. Both are clamped min-max normalizations over fixed
reference ranges.
"""
from __future__ import annotations

from difficulty_gate.scoring.text_metrics import TextMetrics, compute_text_metrics, min_max

WORD_COUNT_RANGE = (5, 150)
AVG_WORD_LENGTH_RANGE = (3, 8)
CLAUSE_RANGE = (0, 8)
SENTENCE_RANGE = (1, 10)


def lexical_score(metrics: TextMetrics) -> float:
    length = min_max(metrics.word_count, *WORD_COUNT_RANGE)
    word_length = min_max(metrics.avg_word_length, *AVG_WORD_LENGTH_RANGE)
    return 0.5 * length + 0.5 * word_length


def structural_score(metrics: TextMetrics) -> float:
    clauses = min_max(metrics.clause_count, *CLAUSE_RANGE)
    sentences = min_max(metrics.sentence_count, *SENTENCE_RANGE)
    return 0.6 * clauses + 0.4 * sentences


def compute_lexical_structural(text: str) -> tuple[float, float]:
    """Return (L, S) for a text."""
    metrics = compute_text_metrics(text)
    return lexical_score(metrics), structural_score(metrics)
