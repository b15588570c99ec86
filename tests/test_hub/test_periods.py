"""Tests for tactical_hub/hub/periods.py (calendar roll-up of history)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import T0, make_points
from tactical_hub.hub.periods import aggregate_by_period, period_key
from tactical_hub.taxonomy.metric_taxonomy import AggregationPeriod, MetricCategory, SourceKind


class TestPeriodKey:
    @pytest.mark.parametrize("stamp,period,expected", [
        (T0, "day", "2026-01-05"),
        (T0, "week", "2026-01-04"),
        (T0, "month", "2026-01"),
        (datetime(2026, 1, 4, 23, 59, tzinfo=timezone.utc), "week", "2026-01-04"),
        (datetime(2026, 1, 10, 8, 0, tzinfo=timezone.utc), "week", "2026-01-04"),
        (datetime(2026, 1, 31, 8, 0, tzinfo=timezone.utc), "week", "2026-01-25"),
        (datetime(2026, 3, 1, 0, 30), AggregationPeriod.MONTH, "2026-03"),
    ])
    def test_keys(self, stamp, period, expected):
        assert period_key(stamp, period) == expected

    def test_keys_use_utc(self):
        late_evening_west = datetime(2026, 1, 5, 20, 0, tzinfo=timezone(timedelta(hours=-8)))
        assert period_key(late_evening_west, "day") == "2026-01-06"

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            period_key(T0, "quarter")


class TestAggregateByPeriod:
    def _points(self):
        # 12-hourly from Monday noon: three calendar days
        return make_points([10.0, 20.0, 30.0, 40.0, 50.0], step_seconds=12 * 3600)

    def test_daily_buckets(self):
        grouped = aggregate_by_period(self._points(), "day")
        assert list(grouped) == ["2026-01-05", "2026-01-06", "2026-01-07"]
        [monday] = grouped["2026-01-05"]
        assert monday.count == 1
        [tuesday] = grouped["2026-01-06"]
        assert tuesday.count == 2
        assert tuesday.mean == 25.0
        assert tuesday.minimum == 20.0
        assert tuesday.maximum == 30.0
        assert tuesday.total == 50.0
        assert tuesday.last_value == 30.0
        assert tuesday.first_at == T0 + timedelta(hours=12)
        assert tuesday.metric == "revenue"
        assert tuesday.module_access == frozenset({"business"})

    def test_weekly_and_monthly(self):
        points = self._points()
        assert [a.count for a in aggregate_by_period(points, "week")["2026-01-04"]] == [5]
        [month] = aggregate_by_period(points, AggregationPeriod.MONTH)["2026-01"]
        assert month.mean == 30.0

    def test_split_by_metric_and_tags(self):
        points = (
            make_points([1.0, 2.0])
            + make_points([5.0], metric="mrr")
            + make_points([9.0], module_access=("finance",))
        )
        [bucket] = aggregate_by_period(points, "day").values()
        assert [(a.metric, sorted(a.module_access), a.count) for a in bucket] == [
            ("mrr", ["business"], 1),
            ("revenue", ["business"], 2),
            ("revenue", ["finance"], 1),
        ]

    def test_bounds_inclusive(self):
        grouped = aggregate_by_period(
            self._points(), "day",
            start=T0 + timedelta(hours=12), end=T0 + timedelta(hours=24),
        )
        assert list(grouped) == ["2026-01-06"]
        assert grouped["2026-01-06"][0].count == 2

    def test_category_and_source_filters(self):
        points = make_points([1.0]) + make_points(
            [70.0], metric="cpu_usage",
            source=SourceKind.SYSTEM_HEALTH, category=MetricCategory.SYSTEM_HEALTH,
        )
        by_category = aggregate_by_period(points, "day", categories=["system_health"])
        assert [a.metric for a in by_category["2026-01-05"]] == ["cpu_usage"]
        by_source = aggregate_by_period(points, "day", sources=[SourceKind.BUSINESS_ANALYTICS])
        assert [a.metric for a in by_source["2026-01-05"]] == ["revenue"]

    def test_non_finite_skipped(self):
        grouped = aggregate_by_period(make_points([1.0, float("nan"), 3.0]), "day")
        assert grouped["2026-01-05"][0].count == 2

    def test_empty(self):
        assert aggregate_by_period([], "week") == {}

    @pytest.mark.parametrize("kwargs", [
        {"period": "hour"},
        {"period": "day", "categories": ["weather"]},
        {"period": "day", "start": T0 + timedelta(days=1), "end": T0},
    ])
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            aggregate_by_period(self._points(), **kwargs)
