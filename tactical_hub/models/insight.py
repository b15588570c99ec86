"""
Insight model.

An insight is a significant pattern (trend, anomaly, or cross-metric
correlation) derived from recent history and predictions. Insights whose
confidence falls below the configured floor are still produced, with
``surfaced=False``; they are kept for audit but never returned by the
external operations.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, Trend
from tactical_hub.taxonomy.recommendation_taxonomy import InsightKind


class Insight(BaseModel):
    """A ranked, explainable pattern over one or more metrics.

    Attributes:
        insight_id: Deterministic id (kind + metrics), stable across cycles.
        kind: Pattern family.
        category: Category of the primary metric.
        source_metrics: ``"<source>/<metric>"`` keys the insight is about.
        confidence_score: 0–100, from sample size and holdout agreement.
        impact_score: 0–100, from pattern magnitude and category weight.
        significance: p-value surrogate of the pattern (lower = stronger).
        direction: Up/down for trends; sign of r for correlations.
        discovered_at: When the pattern was derived.
        next_evaluation: When the pattern must be re-derived at the latest.
        surfaced: False when confidence is below the surfacing floor.
        basis: Prediction ids the insight drew on.
    """

    model_config = ConfigDict(frozen=True)

    insight_id: str
    kind: InsightKind
    category: MetricCategory
    source_metrics: tuple[str, ...]
    confidence_score: float
    impact_score: float
    significance: float
    direction: Optional[Trend] = None
    title: str
    description: str
    recommendations: tuple[str, ...] = ()
    discovered_at: datetime
    next_evaluation: datetime
    surfaced: bool = True
    basis: tuple[str, ...] = ()
    module_access: frozenset[str] = frozenset()

    @field_validator("confidence_score", "impact_score")
    @classmethod
    def validate_score(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"Scores must be in [0, 100], got {v}.")
        return v

    @field_validator("source_metrics")
    @classmethod
    def validate_metrics(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("source_metrics must not be empty.")
        return v

    @model_validator(mode="after")
    def validate_schedule(self) -> "Insight":
        if self.next_evaluation < self.discovered_at:
            raise ValueError("next_evaluation must not precede discovered_at.")
        return self

    @property
    def primary_metric(self) -> str:
        """Metric name (without source) of the first source metric."""
        return self.source_metrics[0].split("/", 1)[-1]
