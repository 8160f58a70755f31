"""Command line interface for difficulty-gate."""
