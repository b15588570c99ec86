"""
Recommendation synthesis from predictions and surfaced insights.

Pipeline per request:

  1. Propose candidates
       - from each prediction whose projected change crosses a category
         heuristic for its metric family (see ``_prediction_category``);
       - from each surfaced insight, paired with the predictions of the
         metrics it covers;
       - one risk_mitigation / monitor candidate per source whose
         predictions are volatile (large projected move or low confidence).
  2. Confidence = min(contributing confidences). Never an average.
  3. Prioritise with ``scorer.prioritize`` (pure, deterministic).
  4. Merge candidates addressing the same metric, keeping the
     highest-priority variant.
  5. Rank by (priority, score, confidence, id), then apply caller filters.

Given identical inputs the output is
identical, ids and timestamps included: ``created_at`` is the latest
timestamp among the inputs, not the wall clock.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from tactical_hub.config import RecommendationConfig
from tactical_hub.models.forecast import Prediction
from tactical_hub.models.insight import Insight
from tactical_hub.models.recommendation import (
    PotentialImpact,
    Recommendation,
    RecommendationContext,
    RecommendationFilters,
    RecommendationSummary,
)
from tactical_hub.recommendations.scorer import (
    TIMELINE_DAYS,
    estimate_investment,
    prioritize,
)
from tactical_hub.taxonomy.metric_taxonomy import MetricFamily, Trend, adverse_trend, classify_metric
from tactical_hub.taxonomy.recommendation_taxonomy import (
    ActionType,
    InsightKind,
    Priority,
    RecommendationCategory,
    Urgency,
)

logger = logging.getLogger(__name__)

_C = RecommendationCategory

# category → (title template, description template, actions, success metrics, risks)
_TEMPLATES: dict[RecommendationCategory, tuple[str, str, tuple[str, ...], tuple[str, ...], tuple[str, ...]]] = {
    _C.REVENUE_OPTIMIZATION: (
        "Recover declining {metric}",
        "{metric} is projected to move {change:+.1%}. Act on pricing, retention and conversion levers.",
        ("Audit pricing and discount policy", "Run a retention campaign for at-risk accounts",
         "Review funnel conversion by segment"),
        ("{metric} returns to its prior trend", "Conversion rate stabilises"),
        ("Market conditions may be the driver", "Customer price sensitivity"),
    ),
    _C.COST_REDUCTION: (
        "Contain rising {metric}",
        "{metric} is projected to move {change:+.1%}. Identify and remove the cost drivers.",
        ("Break down {metric} by driver", "Renegotiate or consolidate top vendors",
         "Automate the most manual steps"),
        ("{metric} growth below plan", "Unit cost reduced"),
        ("Service quality impact", "Implementation effort"),
    ),
    _C.MARKET_OPPORTUNITY: (
        "Capitalise on {metric} growth",
        "{metric} is projected to move {change:+.1%}. Scale what is working while momentum lasts.",
        ("Increase investment in the growing channel", "Expand capacity ahead of demand",
         "Test premium offerings"),
        ("Sustained {metric} growth", "Market share gain"),
        ("Growth may not persist", "Competitive response", "Execution capacity"),
    ),
    _C.RISK_MITIGATION: (
        "Mitigate {metric} risk",
        "{metric} shows a risk signal ({change:+.1%} projected). Contain it before it escalates.",
        ("Investigate root cause", "Put monitoring and alerting on {metric}",
         "Prepare a contingency plan"),
        ("{metric} back within normal range", "No repeat incidents"),
        ("False positive signal", "Remediation may disrupt operations"),
    ),
    _C.OPERATIONAL_EFFICIENCY: (
        "Improve {metric} efficiency",
        "{metric} is trending the wrong way ({change:+.1%} projected). Optimise the underlying process.",
        ("Profile the slowest steps", "Remove bottlenecks and rebalance load",
         "Track {metric} against a target"),
        ("{metric} meets target", "Throughput improved"),
        ("Change may shift load elsewhere", "Team bandwidth"),
    ),
}

_VOLATILITY_TEMPLATE = (
    "Manage volatility in {metric}",
    "Forecasts for {metric} are volatile (largest projected move {change:+.1%}). "
    "Hold major decisions on them until the signal settles.",
    ("Tighten monitoring and alerting on {metric}", "Prepare contingency plans for large swings",
     "Re-check the forecasts once more data arrives"),
    ("Forecast confidence recovers", "Projected swings narrow"),
    ("Unexpected market shifts", "Volatility may reflect data quality problems"),
)

_DEFAULT_ACTION: dict[RecommendationCategory, ActionType] = {
    _C.REVENUE_OPTIMIZATION:   ActionType.OPTIMIZE,
    _C.COST_REDUCTION:         ActionType.OPTIMIZE,
    _C.MARKET_OPPORTUNITY:     ActionType.IMPLEMENT,
    _C.RISK_MITIGATION:        ActionType.INVESTIGATE,
    _C.OPERATIONAL_EFFICIENCY: ActionType.OPTIMIZE,
}

_PREDICTION_IMPACT_SCALE = 500.0
_PIVOT_IMPACT = 85.0


@dataclass(frozen=True)
class _Candidate:
    category: RecommendationCategory
    metric_label: str
    metric: str
    confidence: float
    impact: float
    basis: tuple[str, ...]
    created_at: datetime
    change_pct: float
    delta: float
    module_access: frozenset[str]
    insight_kind: Optional[InsightKind] = None
    volatile: bool = False


@dataclass
class RecommendationRun:
    """Recommendations of one pass plus inputs that could not be processed."""

    recommendations: list[Recommendation] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


class RecommendationEngine:
    """Turns predictions and insights into prioritised recommendations.

    Args:
        config: Recommendation section of ``AppConfig``.
    """

    def __init__(self, config: RecommendationConfig) -> None:
        self.config = config

    def generate(
        self,
        predictions: Iterable[Prediction],
        insights: Iterable[Insight],
        context: Optional[RecommendationContext] = None,
        filters: Optional[RecommendationFilters] = None,
    ) -> list[Recommendation]:
        return self.run(predictions, insights, context, filters).recommendations

    def run(
        self,
        predictions: Iterable[Prediction],
        insights: Iterable[Insight],
        context: Optional[RecommendationContext] = None,
        filters: Optional[RecommendationFilters] = None,
    ) -> RecommendationRun:
        result = RecommendationRun()
        by_label = {f"{p.source.value}/{p.metric}": p for p in predictions}

        candidates: list[_Candidate] = []
        for label, prediction in sorted(by_label.items()):
            try:
                candidate = self._from_prediction(label, prediction)
            except Exception as exc:
                logger.error("Recommendation candidate failed for %s: %s", label, exc)
                result.failed[label] = str(exc)
                continue
            if candidate is not None:
                candidates.append(candidate)
        candidates.extend(self._volatility_candidates(by_label))

        for insight in insights:
            if not insight.surfaced:
                continue
            try:
                candidate = self._from_insight(insight, by_label)
            except Exception as exc:
                logger.error("Recommendation candidate failed for %s: %s", insight.insight_id, exc)
                result.failed[insight.source_metrics[0]] = str(exc)
                continue
            if candidate is not None:
                candidates.append(candidate)

        recommendations = [self._materialise(c, context) for c in candidates]
        ranked = rank_recommendations(merge_by_metric(recommendations))
        result.recommendations = apply_filters(ranked, filters, self.config.max_results)
        logger.debug(
            "Recommendations | candidates=%d | merged=%d | returned=%d",
            len(candidates), len(ranked), len(result.recommendations),
        )
        return result

    # ── Candidate proposal ───────────────────────────────────────────────────

    def _prediction_category(self, prediction: Prediction) -> Optional[RecommendationCategory]:
        cfg = self.config
        change = prediction.change_pct
        family = classify_metric(prediction.metric)
        if family == MetricFamily.REVENUE:
            if change <= -cfg.revenue_decline_pct:
                return _C.REVENUE_OPTIMIZATION
            if change >= cfg.growth_pct:
                return _C.MARKET_OPPORTUNITY
        elif family == MetricFamily.GROWTH:
            if change >= cfg.growth_pct:
                return _C.MARKET_OPPORTUNITY
            if change <= -cfg.revenue_decline_pct:
                return _C.RISK_MITIGATION
        elif family == MetricFamily.COST:
            if change >= cfg.cost_increase_pct:
                return _C.COST_REDUCTION
        elif family == MetricFamily.RISK:
            if change >= cfg.risk_increase_pct:
                return _C.RISK_MITIGATION
        elif family == MetricFamily.OPERATIONS:
            adverse = adverse_trend(prediction.metric)
            if (adverse == Trend.UP and change >= cfg.operations_degradation_pct) or (
                adverse == Trend.DOWN and change <= -cfg.operations_degradation_pct
            ):
                return _C.OPERATIONAL_EFFICIENCY
        return None

    def _from_prediction(self, label: str, prediction: Prediction) -> Optional[_Candidate]:
        category = self._prediction_category(prediction)
        if category is None:
            return None
        return _Candidate(
            category=category,
            metric_label=label,
            metric=prediction.metric,
            confidence=prediction.confidence_score,
            impact=_prediction_impact(prediction),
            basis=(prediction.prediction_id,),
            created_at=prediction.generated_at,
            change_pct=prediction.change_pct,
            delta=prediction.final_value - prediction.current_value,
            module_access=prediction.module_access,
        )

    def _volatility_candidates(self, predictions: dict[str, Prediction]) -> list[_Candidate]:
        cfg = self.config
        by_source: dict[str, list[Prediction]] = {}
        for _, prediction in sorted(predictions.items()):
            if (
                abs(prediction.change_pct) > cfg.volatility_change_pct
                or prediction.confidence_score < cfg.volatility_confidence
            ):
                by_source.setdefault(prediction.source.value, []).append(prediction)

        out: list[_Candidate] = []
        for source, volatile in sorted(by_source.items()):
            widest = max(volatile, key=lambda p: abs(p.change_pct))
            access: frozenset[str] = frozenset()
            for p in volatile:
                access |= p.module_access
            out.append(_Candidate(
                category=_C.RISK_MITIGATION,
                metric_label=f"{source}/volatility",
                metric=", ".join(p.metric for p in volatile),
                confidence=min(p.confidence_score for p in volatile),
                impact=cfg.volatility_impact,
                basis=tuple(p.prediction_id for p in volatile),
                created_at=max(p.generated_at for p in volatile),
                change_pct=widest.change_pct,
                delta=0.0,
                module_access=access,
                volatile=True,
            ))
        return out

    def _from_insight(self, insight: Insight, predictions: dict[str, Prediction]) -> Optional[_Candidate]:
        category = _insight_category(insight)
        if category is None:
            return None
        paired = [predictions[label] for label in insight.source_metrics if label in predictions]
        primary = paired[0] if paired and paired[0].metric == insight.primary_metric else None

        confidence = min([insight.confidence_score] + [p.confidence_score for p in paired])
        impact = max([insight.impact_score] + [_prediction_impact(p) for p in paired])
        access = insight.module_access
        for p in paired:
            access |= p.module_access
        basis = tuple(dict.fromkeys((insight.insight_id,) + tuple(p.prediction_id for p in paired)))
        created = max([insight.discovered_at] + [p.generated_at for p in paired])
        return _Candidate(
            category=category,
            metric_label=insight.source_metrics[0],
            metric=insight.primary_metric,
            confidence=confidence,
            impact=impact,
            basis=basis,
            created_at=created,
            change_pct=primary.change_pct if primary else 0.0,
            delta=(primary.final_value - primary.current_value) if primary else 0.0,
            module_access=access,
            insight_kind=insight.kind,
        )

    # ── Materialisation ──────────────────────────────────────────────────────

    def _materialise(
        self,
        candidate: _Candidate,
        context: Optional[RecommendationContext],
    ) -> Recommendation:
        decision = prioritize(
            candidate.confidence, candidate.impact, candidate.category, self.config, context
        )
        template = _VOLATILITY_TEMPLATE if candidate.volatile else _TEMPLATES[candidate.category]
        title, description, actions, success, risks = template
        fmt = {"metric": candidate.metric, "change": candidate.change_pct}
        timeline = TIMELINE_DAYS[decision.urgency]
        family = classify_metric(candidate.metric)

        return Recommendation(
            recommendation_id=recommendation_id(candidate.category, candidate.metric_label, candidate.basis),
            title=title.format(**fmt),
            description=description.format(**fmt),
            category=candidate.category,
            priority=decision.priority,
            urgency=decision.urgency,
            action_type=_action_type(candidate, decision.urgency),
            confidence_score=round(candidate.confidence, 2),
            impact_score=round(candidate.impact, 2),
            priority_score=decision.score,
            potential_impact=PotentialImpact(
                revenue_impact=round(abs(candidate.delta), 4) if family == MetricFamily.REVENUE else 0.0,
                cost_impact=round(-abs(candidate.delta), 4) if family == MetricFamily.COST else 0.0,
                risk_impact=round(candidate.impact, 2) if candidate.category == _C.RISK_MITIGATION else 0.0,
                timeline_days=timeline,
                estimated_investment=estimate_investment(candidate.impact),
            ),
            specific_actions=tuple(a.format(**fmt) for a in actions),
            success_metrics=tuple(s.format(**fmt) for s in success),
            risk_factors=risks,
            metric=candidate.metric_label,
            basis=candidate.basis,
            created_at=candidate.created_at,
            expires_at=candidate.created_at + timedelta(days=timeline),
            module_access=candidate.module_access,
        )


# ── Module helpers ────────────────────────────────────────────────────────────

def _prediction_impact(prediction: Prediction) -> float:
    return round(min(100.0, _PREDICTION_IMPACT_SCALE * abs(prediction.change_pct)), 2)


def _insight_category(insight: Insight) -> Optional[RecommendationCategory]:
    if insight.kind == InsightKind.ANOMALY:
        return _C.RISK_MITIGATION
    if insight.kind == InsightKind.CORRELATION:
        return _C.OPERATIONAL_EFFICIENCY
    if insight.kind == InsightKind.TREND:
        metric = insight.primary_metric
        family = classify_metric(metric)
        rising = insight.direction == Trend.UP
        if family == MetricFamily.REVENUE:
            return _C.MARKET_OPPORTUNITY if rising else _C.REVENUE_OPTIMIZATION
        if family == MetricFamily.GROWTH:
            return _C.MARKET_OPPORTUNITY if rising else _C.RISK_MITIGATION
        if family == MetricFamily.COST:
            return _C.COST_REDUCTION if rising else None
        if family == MetricFamily.RISK:
            return _C.RISK_MITIGATION if rising else None
        if family == MetricFamily.OPERATIONS:
            return _C.OPERATIONAL_EFFICIENCY if insight.direction == adverse_trend(metric) else None
        return None
    raise ValueError(f"Unsupported insight kind '{insight.kind}'.")


def _action_type(candidate: _Candidate, urgency: Urgency) -> ActionType:
    if candidate.volatile or candidate.insight_kind == InsightKind.CORRELATION:
        return ActionType.MONITOR
    if candidate.category == _C.RISK_MITIGATION and urgency == Urgency.IMMEDIATE:
        return ActionType.IMPLEMENT
    if candidate.category == _C.REVENUE_OPTIMIZATION and candidate.impact >= _PIVOT_IMPACT:
        return ActionType.PIVOT
    return _DEFAULT_ACTION[candidate.category]


def recommendation_id(category: RecommendationCategory, metric_label: str, basis: tuple[str, ...]) -> str:
    digest = hashlib.sha1(
        f"{category.value}|{metric_label}|{'|'.join(sorted(basis))}".encode()
    ).hexdigest()
    return f"rec-{digest[:12]}"


def _rank_key(rec: Recommendation) -> tuple:
    return (-rec.priority.rank, -rec.priority_score, -rec.confidence_score, rec.recommendation_id)


def merge_by_metric(recommendations: Iterable[Recommendation]) -> list[Recommendation]:
    """Keep only the highest-priority recommendation per metric."""
    best: dict[str, Recommendation] = {}
    for rec in recommendations:
        current = best.get(rec.metric)
        if current is None or _rank_key(rec) < _rank_key(current):
            best[rec.metric] = rec
    return list(best.values())


def rank_recommendations(recommendations: Iterable[Recommendation]) -> list[Recommendation]:
    """Deterministic order: priority, score, confidence (all desc), then id."""
    return sorted(recommendations, key=_rank_key)


def apply_filters(
    recommendations: list[Recommendation],
    filters: Optional[RecommendationFilters],
    max_results: Optional[int] = None,
) -> list[Recommendation]:
    """Apply caller filters to an already-ranked list."""
    out = recommendations
    if filters is not None:
        if filters.categories:
            out = [r for r in out if r.category in filters.categories]
        if filters.priorities:
            out = [r for r in out if r.priority in filters.priorities]
        if filters.urgencies:
            out = [r for r in out if r.urgency in filters.urgencies]
        if filters.limit is not None:
            out = out[: filters.limit]
    if max_results is not None:
        out = out[:max_results]
    return out


def summarize(recommendations: Iterable[Recommendation]) -> RecommendationSummary:
    """Derive an aggregate view of ``recommendations``."""
    recs = list(recommendations)
    by_category = {c: 0 for c in RecommendationCategory}
    by_priority = {p: 0 for p in Priority}
    by_urgency = {u: 0 for u in Urgency}
    for rec in recs:
        by_category[rec.category] += 1
        by_priority[rec.priority] += 1
        by_urgency[rec.urgency] += 1
    return RecommendationSummary(
        total=len(recs),
        by_category=by_category,
        by_priority=by_priority,
        by_urgency=by_urgency,
        total_revenue_impact=round(sum(r.potential_impact.revenue_impact for r in recs), 4),
        total_cost_impact=round(sum(r.potential_impact.cost_impact for r in recs), 4),
        average_confidence=round(sum(r.confidence_score for r in recs) / len(recs), 2) if recs else 0.0,
    )
