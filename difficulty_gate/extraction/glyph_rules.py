"""
Normalization rule chain for noisy source text.

OCR and copy-paste produce many look-alikes for a blank: asterisks,
runs of en/em dashes, ellipses, full-width low lines. Each rule is a
(pattern, normalizer) pair applied in order, so support for another
script or glyph is one more table row.
"""
from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class GlyphRule:
    name: str
    pattern: re.Pattern[str]
    normalizer: Callable[[re.Match[str]], str]

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.normalizer, text)


def _underscores_per_glyph(glyphs: str, width: int = 1) -> Callable[[re.Match[str]], str]:
    def normalize(match: re.Match[str]) -> str:
        count = sum(1 for char in match.group(0) if char in glyphs)
        return "_" * (count * width)

    return normalize


GLYPH_RULES: list[GlyphRule] = [
    GlyphRule("full_width_low_line", re.compile(r"[＿‗]"), lambda m: "_"),
    GlyphRule(
        "asterisk_run",
        re.compile(r"\*(?:[ \t]?\*)+"),
        _underscores_per_glyph("*"),
    ),
    GlyphRule(
        "dash_run",
        re.compile(r"[–—](?:[ \t]?[–—])+"),
        _underscores_per_glyph("–—", width=2),
    ),
    # a lone ellipsis between spaces (or ellipsis runs) stands for a blank;
    # "Well… maybe" does not
    GlyphRule(
        "ellipsis",
        re.compile(r"(?<![^\s(])…(?![^\s.,!?;:)])|…{2,}"),
        _underscores_per_glyph("…", width=3),
    ),
    GlyphRule("horizontal_space", re.compile(r"[ \t\u00a0\u3000]+"), lambda m: " "),
]

INSTRUCTION_LINES = re.compile(
    r"^\s*(?:complete the sentences?|choose the correct (?:answer|word|option)s?)\b.*$",
    re.IGNORECASE | re.MULTILINE,
)


def normalize_glyphs(text: str, rules: list[GlyphRule] | None = None) -> str:
    """Apply the glyph rule chain and trim each line."""
    for rule in rules or GLYPH_RULES:
        text = rule.apply(text)
    return "\n".join(line.strip() for line in text.splitlines()).strip()


def strip_instructions(text: str) -> str:
    """Drop worksheet instruction lines such as "Complete the sentence."."""
    return INSTRUCTION_LINES.sub("", text).strip()
