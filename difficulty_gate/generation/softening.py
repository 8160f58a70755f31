"""
Softening pass: lower a candidate's overlap with its source through fixed
synonym substitutions.

Round 1 swaps common content words; round 2 adds connective and
function-phrase swaps on top of round 1. Blanks and answer words are
never touched.
"""
from __future__ import annotations

import re

PRIMARY_SYNONYMS: dict[str, str] = {
    "big": "large",
    "small": "little",
    "happy": "glad",
    "sad": "unhappy",
    "quick": "fast",
    "quickly": "rapidly",
    "begin": "start",
    "began": "started",
    "important": "significant",
    "help": "assist",
    "helps": "assists",
    "show": "reveal",
    "shows": "reveals",
    "many": "numerous",
    "often": "frequently",
    "buy": "purchase",
    "bought": "purchased",
    "enough": "sufficient",
    "difficult": "hard",
    "easy": "simple",
    "sunny": "bright",
    "warm": "mild",
    "cold": "chilly",
    "today": "this morning",
    "people": "folks",
    "children": "kids",
    "house": "home",
    "city": "town",
    "road": "street",
    "answer": "reply",
    "idea": "notion",
    "problem": "issue",
    "reduce": "lower",
    "reduces": "lowers",
    "improve": "enhance",
    "improves": "enhances",
    "increase": "raise",
    "increases": "raises",
    "large": "sizable",
    "fast": "swift",
    "study": "research",
    "student": "learner",
    "students": "learners",
    "teacher": "instructor",
    "work": "labor",
    "job": "position",
    "watch": "observe",
    "look": "glance",
    "said": "stated",
    "says": "states",
    "think": "believe",
    "thinks": "believes",
}

SECONDARY_SYNONYMS: dict[str, str] = {
    "because": "since",
    "however": "still",
    "but": "yet",
    "also": "too",
    "very": "really",
    "so": "therefore",
    "about": "around",
    "a lot of": "plenty of",
    "lots of": "plenty of",
    "in order to": "to",
    "at first": "initially",
    "in the end": "finally",
    "is": "remains",
    "get": "obtain",
    "got": "obtained",
    "went": "traveled",
    "go": "travel",
}

SOFTENING_ROUNDS: tuple[dict[str, str], ...] = (PRIMARY_SYNONYMS, SECONDARY_SYNONYMS)

BLANK_TOKEN = re.compile(r"[A-Za-z]*_[_ ]*")


def _match_case(original: str, replacement: str) -> str:
    if original.isupper() and len(original) > 1:
        return replacement.upper()
    if original[0].isupper():
        return replacement[0].upper() + replacement[1:]
    return replacement


def soften_text(text: str, round_number: int, protected: frozenset[str] = frozenset()) -> str:
    """
    Apply synonym substitutions for rounds 1..``round_number``.

    Args:
        text: Text to soften
        round_number: 1 or 2; later rounds include earlier tables
        protected: Lower-cased words that must never be replaced

    Returns:
        The softened text (unchanged when nothing applied)
    """
    table: dict[str, str] = {}
    for substitutions in SOFTENING_ROUNDS[:round_number]:
        table.update(substitutions)
    table = {k: v for k, v in table.items() if k not in protected}
    if not table:
        return text

    # longest phrases first so "a lot of" wins over single words
    alternation = "|".join(re.escape(k) for k in sorted(table, key=len, reverse=True))
    pattern = re.compile(rf"(?<![A-Za-z_'])({alternation})(?![A-Za-z_'])", re.IGNORECASE)

    def replace(match: re.Match[str]) -> str:
        original = match.group(0)
        return _match_case(original, table[original.lower()])

    # keep blanks (and their prefix letters) out of the substitution
    pieces = []
    cursor = 0
    for blank in BLANK_TOKEN.finditer(text):
        pieces.append(pattern.sub(replace, text[cursor : blank.start()]))
        pieces.append(blank.group(0))
        cursor = blank.end()
    pieces.append(pattern.sub(replace, text[cursor:]))
    return "".join(pieces)
