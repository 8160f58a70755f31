"""
Classify an item's surface format from its text.
"""
from __future__ import annotations

import re
from enum import Enum

from difficulty_gate.extraction.slot_extractor import scan_strict

MC_MARKER = re.compile(r"^\s*\(?[A-Da-d][).]", re.MULTILINE)


class ItemFormat(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    FULL_BLANK = "full_blank"
    PREFIX_BLANK = "prefix_blank"
    CONSTRUCTED_RESPONSE = "constructed_response"
    UNKNOWN = "unknown"


def has_mc_markers(text: str) -> bool:
    return MC_MARKER.search(text) is not None


def count_blanks(text: str) -> int:
    """Number of blanks, prefix-attached or bare."""
    return len(scan_strict(text))


def classify_format(text: str) -> ItemFormat:
    """
    Decide which exercise format a (normalized) text represents.

    Two or more choice markers at line starts make it multiple choice;
    otherwise any blank with visible prefix letters makes it a prefix
    blank, a bare blank makes it a full blank, and text without blanks
    is a constructed response.
    """
    if not text or not text.strip():
        return ItemFormat.UNKNOWN
    if len(MC_MARKER.findall(text)) >= 2:
        return ItemFormat.MULTIPLE_CHOICE
    slots = scan_strict(text)
    if not slots:
        return ItemFormat.CONSTRUCTED_RESPONSE
    if any(slot.prefix for slot in slots):
        return ItemFormat.PREFIX_BLANK
    return ItemFormat.FULL_BLANK
