"""Tests for metric and recommendation taxonomy: families, adverse direction, ranked enums."""

from __future__ import annotations

import pytest

from tactical_hub.taxonomy.metric_taxonomy import (
    HealthStatus,
    MetricFamily,
    SourceKind,
    Trend,
    adverse_trend,
    classify_metric,
    worst_status,
)
from tactical_hub.taxonomy.recommendation_taxonomy import AlertLevel, Priority


class TestClassifyMetric:
    @pytest.mark.parametrize("metric,family", [
        ("revenue", MetricFamily.REVENUE),
        ("daily_revenue", MetricFamily.REVENUE),
        ("conversion_rate", MetricFamily.REVENUE),
        ("cloud_cost", MetricFamily.COST),
        ("error_rate", MetricFamily.RISK),
        ("churn_rate", MetricFamily.RISK),
        ("failed_auth_attempts", MetricFamily.RISK),
        ("response_time", MetricFamily.OPERATIONS),
        ("cpu_usage", MetricFamily.OPERATIONS),
        ("workflow_success_rate", MetricFamily.OPERATIONS),
        ("active_users_now", MetricFamily.GROWTH),
        ("customer_satisfaction", MetricFamily.GROWTH),
        ("widgets", MetricFamily.OTHER),
    ])
    def test_family(self, metric, family):
        assert classify_metric(metric) == family

    def test_case_insensitive(self):
        assert classify_metric("REVENUE") == MetricFamily.REVENUE


class TestAdverseTrend:
    @pytest.mark.parametrize("metric,adverse", [
        ("revenue", Trend.DOWN),
        ("active_users_now", Trend.DOWN),
        ("workflow_success_rate", Trend.DOWN),
        ("uptime", Trend.DOWN),
        ("compliance_score", Trend.DOWN),
        ("cpu_usage", Trend.UP),
        ("cloud_cost", Trend.UP),
        ("error_rate", Trend.UP),
    ])
    def test_direction(self, metric, adverse):
        assert adverse_trend(metric) == adverse


class TestStatus:
    def test_worst_status(self):
        assert worst_status([]) == HealthStatus.HEALTHY
        assert worst_status([HealthStatus.WARNING, HealthStatus.HEALTHY]) == HealthStatus.WARNING
        assert worst_status(
            [HealthStatus.WARNING, HealthStatus.CRITICAL, HealthStatus.HEALTHY]
        ) == HealthStatus.CRITICAL

    def test_source_kinds_unique(self):
        values = [m.value for m in SourceKind]
        assert len(values) == len(set(values)) == 6


class TestRankedEnums:
    def test_priority_rank(self):
        assert [p.rank for p in Priority] == [0, 1, 2, 3]
        assert sorted([Priority.HIGH, Priority.LOW, Priority.CRITICAL]) == [
            Priority.LOW, Priority.HIGH, Priority.CRITICAL,
        ]

    def test_alert_level_compares_by_rank_not_string(self):
        # "warning" > "critical" as strings; by rank it is the other way round
        assert AlertLevel.CRITICAL > AlertLevel.WARNING

    def test_cross_type_comparison_unsupported(self):
        with pytest.raises(TypeError):
            Priority.HIGH < AlertLevel.CRITICAL  # noqa: B015
