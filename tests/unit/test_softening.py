"""
Unit tests for synonym softening.
"""
from difficulty_gate.generation.softening import soften_text


class TestSoftening:
    """Tests for synonym softening."""

    def test_round_one(self):
        assert soften_text("The _______ is sunny and warm today.", 1) == "The _______ is bright and mild this morning."

    def test_round_two_includes_round_one(self):
        assert soften_text("The _______ is sunny and warm today.", 2) == "The _______ remains bright and mild this morning."

    def test_preserves_capitalization(self):
        assert soften_text("Happy people smile.", 1) == "Glad folks smile."

    def test_protected_words_kept(self):
        assert soften_text("A warm day.", 1, frozenset({"warm"})) == "A warm day."

    def test_blank_prefix_untouched(self):
        assert soften_text("I am hap__ and happy.", 1) == "I am hap__ and glad."

    def test_phrase_substitution(self):
        assert soften_text("We had a lot of fun.", 2) == "We had plenty of fun."

    def test_unchanged_text(self):
        assert soften_text("Xyz qrs.", 2) == "Xyz qrs."

