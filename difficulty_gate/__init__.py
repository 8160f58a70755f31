"""
difficulty-gate: evaluation-guided generation of language-learning exercises.

Scores item difficulty on four axes, derives difficulty targets from
reference texts, extracts blank slots from noisy worksheet text and runs
a retry state machine that generates cloze and multiple-choice items
close to a target without copying their source.
"""

__version__ = "0.1.0"

API_VERSION = "v1"
