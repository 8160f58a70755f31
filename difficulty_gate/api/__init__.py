"""HTTP surface for difficulty-gate."""
