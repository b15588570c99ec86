"""
Recommendation models and caller-supplied context.

``RecommendationContext`` and ``RecommendationFilters`` are request
parameters only - they are never stored as pipeline state.
``RecommendationSummary`` is always derived from a recommendation list on
demand (see ``tactical_hub.recommendations.engine.summarize``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from tactical_hub.taxonomy.recommendation_taxonomy import (
    ActionType,
    CompanySize,
    Priority,
    RecommendationCategory,
    RiskTolerance,
    Urgency,
)


class PotentialImpact(BaseModel):
    """Estimated effect of acting on a recommendation.

    Monetary values are in the metric's own units. ``cost_impact`` is
    negative when acting reduces cost.
    """

    model_config = ConfigDict(frozen=True)

    revenue_impact: float = 0.0
    cost_impact: float = 0.0
    risk_impact: float = 0.0
    timeline_days: int = 30
    estimated_investment: float = 0.0


class BudgetConstraints(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_investment: Optional[float] = None
    preferred_roi_months: Optional[int] = None


class RecommendationContext(BaseModel):
    """Business context that shapes prioritisation for one request."""

    model_config = ConfigDict(frozen=True)

    business_sector: str = "general"
    company_size: CompanySize = CompanySize.MEDIUM
    risk_tolerance: RiskTolerance = RiskTolerance.MODERATE
    budget_constraints: BudgetConstraints = BudgetConstraints()
    priorities: tuple[RecommendationCategory, ...] = ()


class RecommendationFilters(BaseModel):
    """Caller filters, applied after ranking. Empty sets mean "any"."""

    model_config = ConfigDict(frozen=True)

    categories: frozenset[RecommendationCategory] = frozenset()
    priorities: frozenset[Priority] = frozenset()
    urgencies: frozenset[Urgency] = frozenset()
    limit: Optional[int] = None

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError(f"limit must be >= 0, got {v}.")
        return v


class Recommendation(BaseModel):
    """An actionable, prioritised recommendation.

    ``confidence_score`` is the minimum of the confidences it was derived
    from; ``priority`` is a pure function of confidence, impact, urgency and
    the request context.
    """

    model_config = ConfigDict(frozen=True)

    recommendation_id: str
    title: str
    description: str
    category: RecommendationCategory
    priority: Priority
    urgency: Urgency
    action_type: ActionType
    confidence_score: float
    impact_score: float
    priority_score: float
    potential_impact: PotentialImpact
    specific_actions: tuple[str, ...] = ()
    success_metrics: tuple[str, ...] = ()
    risk_factors: tuple[str, ...] = ()
    metric: str
    basis: tuple[str, ...]
    created_at: datetime
    expires_at: datetime
    module_access: frozenset[str] = frozenset()

    @field_validator("confidence_score", "impact_score")
    @classmethod
    def validate_score(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"Scores must be in [0, 100], got {v}.")
        return v

    @field_validator("basis")
    @classmethod
    def validate_basis(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("A recommendation must cite at least one prediction or insight.")
        return v

    @model_validator(mode="after")
    def validate_expiry(self) -> "Recommendation":
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be after created_at.")
        return self


class RecommendationSummary(BaseModel):
    """Aggregate view over a recommendation list."""

    model_config = ConfigDict(frozen=True)

    total: int
    by_category: dict[RecommendationCategory, int]
    by_priority: dict[Priority, int]
    by_urgency: dict[Urgency, int]
    total_revenue_impact: float
    total_cost_impact: float
    average_confidence: float
