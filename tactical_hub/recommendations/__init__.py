"""Recommendation synthesis: candidate heuristics, prioritisation and ranking."""
