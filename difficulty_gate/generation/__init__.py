"""Candidate generation: providers, builders, validators and the retry state machine."""
