"""
Recommendation prioritisation: a pure function of confidence, impact,
urgency and the caller's context.

Score formula (0–100)
---------------------
    priority_score = (confidence / 100) * (impact / 100)
                     * urgency_weight * context_multiplier * 100

urgency (from impact):
    impact >= 70 → immediate  (weight 1.0, timeline  7 days)
    impact >= 40 → short_term (weight 0.8, timeline 30 days)
    otherwise    → long_term  (weight 0.6, timeline 90 days)

context_multiplier (product of):
    1.15  category listed in context.priorities
    0.80  market_opportunity under a conservative risk tolerance
    1.10  market_opportunity under an aggressive risk tolerance
    0.50  estimated investment above budget_constraints.max_investment

Priority cut-offs come from ``RecommendationConfig``; the *critical* bar is
raised by 15 points for conservative contexts and lowered by 10 for
aggressive ones:

    score >= critical_bar → critical
    score >= high_score   → high
    score >= medium_score → medium
    otherwise             → low
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tactical_hub.config import RecommendationConfig
from tactical_hub.models.recommendation import RecommendationContext
from tactical_hub.taxonomy.recommendation_taxonomy import (
    Priority,
    RecommendationCategory,
    RiskTolerance,
    Urgency,
)

URGENCY_WEIGHT: dict[Urgency, float] = {
    Urgency.IMMEDIATE:  1.0,
    Urgency.SHORT_TERM: 0.8,
    Urgency.LONG_TERM:  0.6,
}

TIMELINE_DAYS: dict[Urgency, int] = {
    Urgency.IMMEDIATE:  7,
    Urgency.SHORT_TERM: 30,
    Urgency.LONG_TERM:  90,
}

# risk tolerance → (critical bar offset, market-opportunity factor)
_RISK_POLICY: dict[RiskTolerance, tuple[float, float]] = {
    RiskTolerance.CONSERVATIVE: (15.0,  0.80),
    RiskTolerance.MODERATE:     (0.0,   1.00),
    RiskTolerance.AGGRESSIVE:   (-10.0, 1.10),
}

_PRIORITY_BOOST = 1.15
_OVER_BUDGET_FACTOR = 0.5
_INVESTMENT_PER_IMPACT = 200.0


@dataclass(frozen=True)
class PriorityDecision:
    """Outcome of prioritising one candidate.

    Attributes:
        urgency:        Derived urgency.
        multiplier:     Context multiplier applied.
        score:          Priority score, 0–100 (can exceed 100 only via boosts
                        before clamping; always clamped here).
        priority:       Bucketed priority.
        critical_bar:   Score needed for ``critical`` in this context.
    """

    urgency:      Urgency
    multiplier:   float
    score:        float
    priority:     Priority
    critical_bar: float


def determine_urgency(impact: float) -> Urgency:
    if impact >= 70.0:
        return Urgency.IMMEDIATE
    if impact >= 40.0:
        return Urgency.SHORT_TERM
    return Urgency.LONG_TERM


def estimate_investment(impact: float) -> float:
    """Rough implementation cost in metric units, proportional to impact."""
    return round(impact * _INVESTMENT_PER_IMPACT, 2)


def context_multiplier(
    category: RecommendationCategory,
    investment: float,
    context: Optional[RecommendationContext],
) -> float:
    if context is None:
        return 1.0
    multiplier = 1.0
    if category in context.priorities:
        multiplier *= _PRIORITY_BOOST
    if category == RecommendationCategory.MARKET_OPPORTUNITY:
        multiplier *= _RISK_POLICY[context.risk_tolerance][1]
    max_investment = context.budget_constraints.max_investment
    if max_investment is not None and investment > max_investment:
        multiplier *= _OVER_BUDGET_FACTOR
    return multiplier


def critical_bar(config: RecommendationConfig, context: Optional[RecommendationContext]) -> float:
    tolerance = context.risk_tolerance if context is not None else RiskTolerance.MODERATE
    return max(config.high_score, config.critical_score + _RISK_POLICY[tolerance][0])


def classify_priority(
    score: float,
    config: RecommendationConfig,
    context: Optional[RecommendationContext] = None,
) -> Priority:
    if score >= critical_bar(config, context):
        return Priority.CRITICAL
    if score >= config.high_score:
        return Priority.HIGH
    if score >= config.medium_score:
        return Priority.MEDIUM
    return Priority.LOW


def prioritize(
    confidence: float,
    impact: float,
    category: RecommendationCategory,
    config: RecommendationConfig,
    context: Optional[RecommendationContext] = None,
) -> PriorityDecision:
    """Derive urgency, score and priority for one candidate."""
    urgency = determine_urgency(impact)
    multiplier = context_multiplier(category, estimate_investment(impact), context)
    raw = (confidence / 100.0) * (impact / 100.0) * URGENCY_WEIGHT[urgency] * multiplier * 100.0
    score = round(_clamp(raw, 0.0, 100.0), 4)
    return PriorityDecision(
        urgency=urgency,
        multiplier=round(multiplier, 4),
        score=score,
        priority=classify_priority(score, config, context),
        critical_bar=critical_bar(config, context),
    )


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))
