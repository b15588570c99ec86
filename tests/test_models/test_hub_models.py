"""
Tests for tactical_hub/models/.

What we test
------------
DataPoint      - naive timestamps become UTC; blank metric rejected; frozen;
                 non-finite values accepted and flagged by ``is_finite``.
MetricSeries   - from_points validation; clean() drops NaN and out-of-order
                 samples; tail() and since().
ForecastPoint  - band invariant lower <= predicted <= upper.
Prediction     - point count must equal horizon; confidence non-increasing.
Insight        - source_metrics non-empty; next_evaluation >= discovered_at.
Recommendation - basis non-empty; expires_at after created_at.
Snapshot       - business_content() ignores cycle bookkeeping.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from conftest import T0, make_points, make_series
from tactical_hub.models.datapoint import DataPoint, MetricSeries
from tactical_hub.models.forecast import ForecastPoint, Prediction
from tactical_hub.models.insight import Insight
from tactical_hub.models.recommendation import PotentialImpact, Recommendation
from tactical_hub.models.snapshot import HubState, Snapshot
from tactical_hub.taxonomy.metric_taxonomy import (
    HealthStatus,
    MetricCategory,
    ModelType,
    SourceKind,
    Trend,
)
from tactical_hub.taxonomy.recommendation_taxonomy import (
    ActionType,
    InsightKind,
    Priority,
    RecommendationCategory,
    Urgency,
)


def _point(**overrides) -> DataPoint:
    fields = dict(
        timestamp=T0,
        source=SourceKind.SYSTEM_HEALTH,
        category=MetricCategory.SYSTEM_HEALTH,
        metric="cpu_usage",
        value=42.0,
    )
    fields.update(overrides)
    return DataPoint(**fields)


def _forecast_point(step: int, confidence: float) -> ForecastPoint:
    return ForecastPoint(
        step=step,
        timestamp=T0 + timedelta(minutes=step),
        predicted_value=10.0,
        lower_bound=9.0,
        upper_bound=11.0,
        confidence=confidence,
    )


def _prediction(points: tuple[ForecastPoint, ...], horizon: int) -> Prediction:
    return Prediction(
        prediction_id="pred:x",
        source=SourceKind.BUSINESS_ANALYTICS,
        metric="revenue",
        category=MetricCategory.BUSINESS,
        model_type=ModelType.ENSEMBLE,
        horizon=horizon,
        points=points,
        confidence_score=80.0,
        trend=Trend.STABLE,
        change_pct=0.0,
        current_value=10.0,
        generated_at=T0,
    )


class TestDataPoint:
    def test_naive_timestamp_becomes_utc(self):
        point = _point(timestamp=datetime(2026, 1, 5, 12, 0))
        assert point.timestamp == T0

    def test_blank_metric_rejected(self):
        with pytest.raises(ValidationError):
            _point(metric="   ")

    def test_metric_stripped(self):
        assert _point(metric=" cpu_usage ").metric == "cpu_usage"

    def test_frozen(self):
        point = _point()
        with pytest.raises(ValidationError):
            point.value = 1.0  # type: ignore[misc]

    def test_nan_accepted_but_not_finite(self):
        point = _point(value=float("nan"))
        assert not point.is_finite
        assert _point().is_finite

    def test_defaults(self):
        point = _point()
        assert point.status == HealthStatus.HEALTHY
        assert point.module_access == frozenset()
        assert point.out_of_order is False
        assert point.key == (SourceKind.SYSTEM_HEALTH, "cpu_usage")

    def test_ids_unique(self):
        assert _point().id != _point().id


class TestMetricSeries:
    def test_from_points_empty_raises(self):
        with pytest.raises(ValueError):
            MetricSeries.from_points([])

    def test_from_points_mixed_series_raises(self):
        points = make_points([1.0]) + make_points([2.0], metric="mrr")
        with pytest.raises(ValueError):
            MetricSeries.from_points(points)

    def test_module_access_is_union(self):
        points = make_points([1.0], module_access=["a"]) + make_points(
            [2.0], module_access=["b"], start=T0 + timedelta(minutes=5)
        )
        assert MetricSeries.from_points(points).module_access == frozenset({"a", "b"})

    def test_clean_drops_nan_and_out_of_order(self):
        points = make_points([1.0, float("nan"), 3.0, 4.0])
        points[3] = points[3].model_copy(update={"out_of_order": True})
        stamps, values, rejected = MetricSeries.from_points(points).clean()
        assert values == [1.0, 3.0]
        assert len(stamps) == 2
        assert rejected == 2

    def test_tail(self):
        series = make_series([1.0, 2.0, 3.0, 4.0])
        assert series.tail(2).values == (3.0, 4.0)
        assert series.tail(10) is series

    def test_since(self):
        series = make_series([1.0, 2.0, 3.0, 4.0], step_seconds=60)
        recent = series.since(T0 + timedelta(minutes=2))
        assert recent.values == (3.0, 4.0)

    def test_label(self):
        assert make_series([1.0]).label == "business_analytics/revenue"


class TestForecastModels:
    def test_band_violation_rejected(self):
        with pytest.raises(ValidationError):
            ForecastPoint(
                step=1, timestamp=T0, predicted_value=12.0,
                lower_bound=9.0, upper_bound=11.0, confidence=80.0,
            )

    def test_point_confidence_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            _forecast_point(1, 120.0)

    def test_point_count_must_match_horizon(self):
        with pytest.raises(ValidationError):
            _prediction((_forecast_point(1, 80.0),), horizon=2)

    def test_confidence_must_not_increase(self):
        with pytest.raises(ValidationError):
            _prediction((_forecast_point(1, 70.0), _forecast_point(2, 75.0)), horizon=2)

    def test_valid_prediction(self):
        prediction = _prediction((_forecast_point(1, 80.0), _forecast_point(2, 76.0)), horizon=2)
        assert prediction.final_value == 10.0


class TestInsightAndRecommendation:
    def _insight(self, **overrides) -> Insight:
        fields = dict(
            insight_id="ins-1",
            kind=InsightKind.TREND,
            category=MetricCategory.BUSINESS,
            source_metrics=("business_analytics/revenue",),
            confidence_score=70.0,
            impact_score=50.0,
            significance=0.01,
            title="t",
            description="d",
            discovered_at=T0,
            next_evaluation=T0 + timedelta(minutes=15),
        )
        fields.update(overrides)
        return Insight(**fields)

    def test_insight_primary_metric(self):
        assert self._insight().primary_metric == "revenue"

    def test_insight_requires_metrics(self):
        with pytest.raises(ValidationError):
            self._insight(source_metrics=())

    def test_insight_schedule_invariant(self):
        with pytest.raises(ValidationError):
            self._insight(next_evaluation=T0 - timedelta(seconds=1))

    def test_insight_score_range(self):
        with pytest.raises(ValidationError):
            self._insight(impact_score=101.0)

    def _recommendation(self, **overrides) -> Recommendation:
        fields = dict(
            recommendation_id="rec-1",
            title="t",
            description="d",
            category=RecommendationCategory.COST_REDUCTION,
            priority=Priority.HIGH,
            urgency=Urgency.SHORT_TERM,
            action_type=ActionType.OPTIMIZE,
            confidence_score=70.0,
            impact_score=50.0,
            priority_score=28.0,
            potential_impact=PotentialImpact(),
            metric="business_analytics/cloud_cost",
            basis=("pred:x",),
            created_at=T0,
            expires_at=T0 + timedelta(days=30),
        )
        fields.update(overrides)
        return Recommendation(**fields)

    def test_recommendation_requires_basis(self):
        with pytest.raises(ValidationError):
            self._recommendation(basis=())

    def test_recommendation_expiry_after_creation(self):
        with pytest.raises(ValidationError):
            self._recommendation(expires_at=T0)

    def test_priority_ordering(self):
        assert Priority.CRITICAL > Priority.HIGH > Priority.MEDIUM > Priority.LOW
        assert max([Priority.MEDIUM, Priority.CRITICAL, Priority.LOW]) == Priority.CRITICAL


class TestSnapshot:
    def test_business_content_ignores_bookkeeping(self):
        a = Snapshot(
            snapshot_id="snap-000001", cycle=1, generated_at=T0,
            hub_state=HubState.RUNNING, overall_status=HealthStatus.HEALTHY,
        )
        b = a.model_copy(update={
            "snapshot_id": "snap-000002", "cycle": 2,
            "generated_at": T0 + timedelta(seconds=5),
        })
        assert a.business_content() == b.business_content()
        assert not a.is_stale

    def test_business_content_sees_status_change(self):
        a = Snapshot(
            snapshot_id="snap-000001", cycle=1, generated_at=T0,
            hub_state=HubState.RUNNING, overall_status=HealthStatus.HEALTHY,
        )
        b = a.model_copy(update={"overall_status": HealthStatus.WARNING})
        assert a.business_content() != b.business_content()

    def test_nan_value_preserved(self):
        assert math.isnan(_point(value=float("nan")).value)
