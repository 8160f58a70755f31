"""
Surface text metrics used by the lexical and structural scores.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from difficulty_gate.errors import InvalidInputError

WORD_PATTERN = re.compile(r"[A-Za-z0-9']+")
SENTENCE_END_PATTERN = re.compile(r"[.!?]+")

CONJUNCTIONS = frozenset(
    {
        "and",
        "or",
        "but",
        "because",
        "although",
        "since",
        "while",
        "whereas",
        "if",
        "when",
        "though",
        "unless",
        "however",
        "therefore",
        "moreover",
        "so",
        "yet",
    }
)


@dataclass(frozen=True)
class TextMetrics:
    word_count: int
    avg_word_length: float
    sentence_count: int
    clause_count: int


def words(text: str) -> list[str]:
    return WORD_PATTERN.findall(text)


def count_sentences(text: str) -> int:
    found = len(SENTENCE_END_PATTERN.findall(text))
    if found:
        return found
    return 1 if text.strip() else 0


def count_clauses(text: str) -> int:
    return sum(1 for word in words(text) if word.lower() in CONJUNCTIONS)


def compute_text_metrics(text: str) -> TextMetrics:
    tokens = words(text)
    avg = sum(len(token) for token in tokens) / len(tokens) if tokens else 0.0
    return TextMetrics(
        word_count=len(tokens),
        avg_word_length=avg,
        sentence_count=count_sentences(text),
        clause_count=count_clauses(text),
    )


def min_max(value: float, low: float, high: float) -> float:
    """Min-max normalize ``value`` into [0, 1], clamping outside the range."""
    if high <= low:
        raise InvalidInputError(f"Invalid normalization range: [{low}, {high}]")
    return max(0.0, min(1.0, (value - low) / (high - low)))
