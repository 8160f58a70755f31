"""Slot extraction, format classification and multiple-choice parsing."""
