"""Insight derivation: trends, anomalies and cross-metric correlations."""
