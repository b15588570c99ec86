"""
Tests for tactical_hub/insights/generator.py.

What we test
------------
trend insights:
  - Steadily rising revenue with its prediction → surfaced trend insight
    citing the prediction id.
  - Constant series → nothing.
  - Short history: derived but below the confidence floor → surfaced=False.

anomaly insights:
  - A burst of spikes on a quiet series → anomaly insight, direction UP.
  - Conservative context raises anomaly impact.

correlation insights:
  - Two metrics in one category whose step changes move together.
  - Metrics in different categories are never paired.
  - Series sampled at different rates are compared on a shared time grid.

run():
  - A failing derivation for one metric lands in ``failed``; the rest
    are still derived.
  - Ordering by impact desc, then confidence.
  - Ids are stable across runs; next_evaluation follows the configured
    re-evaluation interval.
"""

from __future__ import annotations

from datetime import timedelta

import numpy as np
import pytest

from conftest import T0, make_series
from tactical_hub.config import ForecastConfig, InsightConfig
from tactical_hub.forecasting.engine import ForecastingEngine
from tactical_hub.insights.generator import InsightGenerator, insight_id, rank_insights
from tactical_hub.models.recommendation import RecommendationContext
from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, SourceKind, Trend
from tactical_hub.taxonomy.recommendation_taxonomy import InsightKind, RiskTolerance


def _generator(clock) -> InsightGenerator:
    return InsightGenerator(InsightConfig(), ForecastConfig(), clock)


def _predict(series, clock):
    engine = ForecastingEngine(ForecastConfig(), clock)
    return engine.predict(engine.fit(series), 5)


def _spiky(metric: str = "revenue"):
    values = [100.0 if i % 2 else 102.0 for i in range(37)] + [150.0, 150.0, 150.0]
    return make_series(values, metric=metric)


def _correlated_pair():
    a = [100.0 + i + (3.0 if i % 3 == 0 else 0.0) for i in range(30)]
    b = [2.0 * v + 5.0 for v in a]
    return (
        make_series(a, metric="mrr"),
        make_series(b, metric="order_value"),
    )


class TestTrendInsights:
    def test_rising_revenue_surfaces_trend(self, clock):
        series = make_series([1000.0 + 10.0 * i for i in range(30)])
        prediction = _predict(series, clock)
        run = _generator(clock).run([prediction], [series])
        trends = [i for i in run.insights if i.kind == InsightKind.TREND]
        assert len(trends) == 1
        insight = trends[0]
        assert insight.surfaced
        assert insight.direction == Trend.UP
        assert insight.confidence_score == pytest.approx(75.0)
        assert insight.basis == (prediction.prediction_id,)
        assert insight.source_metrics == ("business_analytics/revenue",)
        assert insight.module_access == frozenset({"business"})
        assert "rising" in insight.title

    def test_constant_series_yields_nothing(self, clock):
        series = make_series([42.0] * 30)
        run = _generator(clock).run([_predict(series, clock)], [series])
        assert run.insights == []
        assert run.failed == {}

    def test_no_trend_without_prediction(self, clock):
        series = make_series([1000.0 + 10.0 * i for i in range(30)])
        run = _generator(clock).run([], [series])
        assert not any(i.kind == InsightKind.TREND for i in run.insights)

    def test_short_history_below_floor_not_surfaced(self, clock):
        series = make_series([1000.0 + 10.0 * i for i in range(12)])
        run = _generator(clock).run([_predict(series, clock)], [series])
        assert len(run.insights) == 1
        assert run.insights[0].confidence_score < 60.0
        assert not run.insights[0].surfaced
        assert run.surfaced == []

    def test_series_below_min_samples_skipped(self, clock):
        series = make_series([1.0, 5.0, 9.0])
        assert _generator(clock).run([], [series]).insights == []


class TestAnomalyInsights:
    def test_spike_burst_detected(self, clock):
        run = _generator(clock).run([], [_spiky()])
        anomalies = [i for i in run.insights if i.kind == InsightKind.ANOMALY]
        assert len(anomalies) == 1
        insight = anomalies[0]
        assert insight.direction == Trend.UP
        assert insight.surfaced
        assert insight.significance < 0.05
        assert insight.basis == ()

    def test_conservative_context_raises_impact(self, clock):
        series = make_series(
            [100.0 if i % 2 else 102.0 for i in range(37)] + [106.0, 106.0, 106.0],
            metric="cpu_usage",
            source=SourceKind.SYSTEM_HEALTH,
            category=MetricCategory.SYSTEM_HEALTH,
        )
        generator = _generator(clock)
        base = generator.generate([], [series])
        cautious = generator.generate(
            [], [series], RecommendationContext(risk_tolerance=RiskTolerance.CONSERVATIVE)
        )
        assert base and cautious
        assert cautious[0].impact_score > base[0].impact_score


class TestCorrelationInsights:
    def test_correlated_metrics_same_category(self, clock):
        a, b = _correlated_pair()
        run = _generator(clock).run([], [a, b])
        correlations = [i for i in run.insights if i.kind == InsightKind.CORRELATION]
        assert len(correlations) == 1
        insight = correlations[0]
        assert set(insight.source_metrics) == {a.label, b.label}
        assert insight.direction == Trend.UP
        assert insight.confidence_score == pytest.approx(75.0)

    def test_mismatched_sample_rates_aligned_by_time(self, clock):
        walk = 500.0 + np.cumsum(np.random.default_rng(7).normal(0.0, 5.0, 400))
        per_minute = make_series(walk.tolist(), metric="checkouts", step_seconds=60.0)
        per_ten_minutes = make_series(
            walk[9::10].tolist(), metric="gmv",
            start=T0 + timedelta(minutes=9), step_seconds=600.0,
        )
        assert len(per_ten_minutes.values) == 40
        assert per_minute.timestamps[-1] == per_ten_minutes.timestamps[-1]

        run = _generator(clock).run([], [per_minute, per_ten_minutes])
        [insight] = [i for i in run.insights if i.kind == InsightKind.CORRELATION]
        assert insight.direction == Trend.UP
        assert insight.significance == 0.0
        assert "over 12 samples" in insight.description
        assert insight.confidence_score == pytest.approx(100.0 * 12 / 22, abs=0.01)

    def test_different_categories_not_paired(self, clock):
        a, _ = _correlated_pair()
        values = [2.0 * v + 5.0 for v in a.values]
        b = make_series(
            values, metric="order_value",
            source=SourceKind.CUSTOMER_INTELLIGENCE, category=MetricCategory.CUSTOMER,
        )
        run = _generator(clock).run([], [a, b])
        assert not any(i.kind == InsightKind.CORRELATION for i in run.insights)


class TestRun:
    def test_failure_contained(self, clock, monkeypatch):
        generator = _generator(clock)
        spiky = _spiky()
        rising = make_series([float(i) for i in range(30)], metric="mrr")

        original = generator._anomaly_insight

        def flaky(item, prediction, context, now):
            if item.series.metric == "mrr":
                raise RuntimeError("bad window")
            return original(item, prediction, context, now)

        monkeypatch.setattr(generator, "_anomaly_insight", flaky)
        run = generator.run([], [spiky, rising])
        assert run.failed == {"business_analytics/mrr": "bad window"}
        assert any(i.kind == InsightKind.ANOMALY for i in run.insights)

    def test_ids_stable_and_schedule(self, clock):
        generator = _generator(clock)
        first = generator.run([], [_spiky()]).insights
        clock.advance(30)
        second = generator.run([], [_spiky()]).insights
        assert [i.insight_id for i in first] == [i.insight_id for i in second]
        assert second[0].discovered_at == T0 + timedelta(seconds=30)
        assert second[0].next_evaluation == second[0].discovered_at + timedelta(minutes=15)

    def test_insight_id_ignores_label_order(self):
        assert insight_id(InsightKind.CORRELATION, ("a/x", "b/y")) == insight_id(
            InsightKind.CORRELATION, ("b/y", "a/x")
        )
        assert insight_id(InsightKind.TREND, ("a/x",)) != insight_id(InsightKind.ANOMALY, ("a/x",))

    def test_ranking(self, clock):
        a, b = _correlated_pair()
        insights = _generator(clock).run([], [_spiky("revenue"), a, b]).insights
        assert insights == rank_insights(insights)
        impacts = [i.impact_score for i in insights]
        assert impacts == sorted(impacts, reverse=True)
