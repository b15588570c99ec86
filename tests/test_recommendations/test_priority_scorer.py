"""
Tests for tactical_hub/recommendations/scorer.py.

What we test
------------
determine_urgency():  impact cut-offs at 70 and 40.
context_multiplier(): priority boost, market-opportunity risk factor,
                      over-budget penalty; 1.0 without context.
classify_priority():  cut-offs from config; critical bar moves with risk
                      tolerance but never drops below the high cut-off.
prioritize():         formula, clamping and determinism.
"""

from __future__ import annotations

import pytest

from tactical_hub.config import RecommendationConfig
from tactical_hub.models.recommendation import BudgetConstraints, RecommendationContext
from tactical_hub.recommendations.scorer import (
    classify_priority,
    context_multiplier,
    critical_bar,
    determine_urgency,
    estimate_investment,
    prioritize,
)
from tactical_hub.taxonomy.recommendation_taxonomy import (
    Priority,
    RecommendationCategory,
    RiskTolerance,
    Urgency,
)

_C = RecommendationCategory


# ── Helpers ────────────────────────────────────────────────────────────────────

def _ctx(**kwargs) -> RecommendationContext:
    return RecommendationContext(**kwargs)


class TestUrgency:
    @pytest.mark.parametrize("impact,urgency", [
        (100.0, Urgency.IMMEDIATE),
        (70.0, Urgency.IMMEDIATE),
        (69.99, Urgency.SHORT_TERM),
        (40.0, Urgency.SHORT_TERM),
        (39.99, Urgency.LONG_TERM),
        (0.0, Urgency.LONG_TERM),
    ])
    def test_cutoffs(self, impact, urgency):
        assert determine_urgency(impact) == urgency

    def test_investment_proportional(self):
        assert estimate_investment(50.0) == 10_000.0


class TestContextMultiplier:
    def test_no_context(self):
        assert context_multiplier(_C.MARKET_OPPORTUNITY, 1e9, None) == 1.0

    def test_priority_boost(self):
        ctx = _ctx(priorities=(_C.COST_REDUCTION,))
        assert context_multiplier(_C.COST_REDUCTION, 0.0, ctx) == pytest.approx(1.15)
        assert context_multiplier(_C.RISK_MITIGATION, 0.0, ctx) == pytest.approx(1.0)

    @pytest.mark.parametrize("tolerance,factor", [
        (RiskTolerance.CONSERVATIVE, 0.80),
        (RiskTolerance.MODERATE, 1.00),
        (RiskTolerance.AGGRESSIVE, 1.10),
    ])
    def test_market_opportunity_risk_factor(self, tolerance, factor):
        ctx = _ctx(risk_tolerance=tolerance)
        assert context_multiplier(_C.MARKET_OPPORTUNITY, 0.0, ctx) == pytest.approx(factor)
        assert context_multiplier(_C.COST_REDUCTION, 0.0, ctx) == pytest.approx(1.0)

    def test_over_budget_halves(self):
        ctx = _ctx(budget_constraints=BudgetConstraints(max_investment=1000.0))
        assert context_multiplier(_C.COST_REDUCTION, 5000.0, ctx) == pytest.approx(0.5)
        assert context_multiplier(_C.COST_REDUCTION, 500.0, ctx) == pytest.approx(1.0)


class TestClassifyPriority:
    def test_default_cutoffs(self):
        config = RecommendationConfig()
        assert classify_priority(60.0, config) == Priority.CRITICAL
        assert classify_priority(59.9, config) == Priority.HIGH
        assert classify_priority(40.0, config) == Priority.HIGH
        assert classify_priority(20.0, config) == Priority.MEDIUM
        assert classify_priority(19.9, config) == Priority.LOW

    def test_conservative_raises_critical_bar(self):
        config = RecommendationConfig()
        conservative = _ctx(risk_tolerance=RiskTolerance.CONSERVATIVE)
        assert critical_bar(config, conservative) == 75.0
        assert classify_priority(70.0, config, conservative) == Priority.HIGH
        assert classify_priority(70.0, config) == Priority.CRITICAL

    def test_aggressive_lowers_critical_bar(self):
        config = RecommendationConfig()
        aggressive = _ctx(risk_tolerance=RiskTolerance.AGGRESSIVE)
        assert critical_bar(config, aggressive) == 50.0
        assert classify_priority(55.0, config, aggressive) == Priority.CRITICAL

    def test_critical_bar_never_below_high(self):
        config = RecommendationConfig(critical_score=45.0, high_score=40.0)
        aggressive = _ctx(risk_tolerance=RiskTolerance.AGGRESSIVE)
        assert critical_bar(config, aggressive) == 40.0


class TestPrioritize:
    def test_formula(self):
        decision = prioritize(80.0, 75.0, _C.COST_REDUCTION, RecommendationConfig())
        assert decision.urgency == Urgency.IMMEDIATE
        assert decision.score == pytest.approx(60.0)
        assert decision.priority == Priority.CRITICAL
        assert decision.multiplier == 1.0

    def test_short_term_weight(self):
        decision = prioritize(50.0, 50.0, _C.COST_REDUCTION, RecommendationConfig())
        assert decision.urgency == Urgency.SHORT_TERM
        assert decision.score == pytest.approx(20.0)
        assert decision.priority == Priority.MEDIUM

    def test_clamped_to_100(self):
        ctx = _ctx(priorities=(_C.RISK_MITIGATION,))
        decision = prioritize(100.0, 100.0, _C.RISK_MITIGATION, RecommendationConfig(), ctx)
        assert decision.score == 100.0

    def test_deterministic(self):
        ctx = _ctx(risk_tolerance=RiskTolerance.AGGRESSIVE, priorities=(_C.MARKET_OPPORTUNITY,))
        a = prioritize(66.0, 58.0, _C.MARKET_OPPORTUNITY, RecommendationConfig(), ctx)
        b = prioritize(66.0, 58.0, _C.MARKET_OPPORTUNITY, RecommendationConfig(), ctx)
        assert a == b

    def test_zero_confidence_is_low(self):
        decision = prioritize(0.0, 100.0, _C.REVENUE_OPTIMIZATION, RecommendationConfig())
        assert decision.score == 0.0
        assert decision.priority == Priority.LOW
