"""
Tests for the in-process connectors: StaticConnector, ManualConnector,
SyntheticConnector and the shared record normalisation.
"""

from __future__ import annotations

from conftest import T0, make_points
from tactical_hub.ingestion.static import ManualConnector, StaticConnector
from tactical_hub.ingestion.synthetic import SeriesSpec, SyntheticConnector, default_synthetic_connectors
from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, SourceKind


class TestNormalisation:
    def _connector(self, clock) -> StaticConnector:
        return StaticConnector(
            "billing", SourceKind.BUSINESS_ANALYTICS, MetricCategory.BUSINESS, ("business",),
            records=[], clock=clock,
        )

    def test_defaults_applied(self, clock):
        [point] = self._connector(clock).normalize_records([{"metric": " revenue ", "value": "12.5"}], T0)
        assert point.metric == "revenue"
        assert point.value == 12.5
        assert point.timestamp == T0
        assert point.category == MetricCategory.BUSINESS
        assert point.module_access == frozenset({"business"})

    def test_record_overrides(self, clock):
        [point] = self._connector(clock).normalize_records([{
            "metric": "nps", "value": 40, "category": "customer",
            "module_access": [], "metadata": {"region": "eu"},
            "timestamp": "2026-01-05T11:00:00+01:00",
        }], T0)
        assert point.category == MetricCategory.CUSTOMER
        assert point.module_access == frozenset()
        assert point.metadata == {"region": "eu"}
        assert point.timestamp.hour == 10

    def test_bad_records_skipped(self, clock):
        points = self._connector(clock).normalize_records([
            {"metric": "revenue"},
            {"metric": "revenue", "value": 1.0, "category": "nonsense"},
            {"metric": "", "value": 1.0},
            {"metric": "revenue", "value": 2.0},
        ], T0)
        assert [p.value for p in points] == [2.0]

    def test_datapoints_pass_through(self, clock):
        original = make_points([7.0])
        assert self._connector(clock).normalize_records(original) == original


class TestStaticConnector:
    def test_fixture_records_by_default(self, clock):
        connector = StaticConnector("monitoring", SourceKind.SYSTEM_HEALTH, MetricCategory.SYSTEM_HEALTH,
                                    clock=clock)
        points = connector.pull()
        assert [p.metric for p in points] == ["cpu_usage", "memory_usage", "response_time", "error_rate"]
        assert all(p.timestamp == T0 for p in points)
        assert connector.pull_count == 1

    def test_producer_receives_poll_time(self, clock):
        seen = []

        def producer(now):
            seen.append(now)
            return [{"metric": "revenue", "value": 1.0}]

        connector = StaticConnector("billing", SourceKind.BUSINESS_ANALYTICS, MetricCategory.BUSINESS,
                                    producer=producer, clock=clock)
        clock.advance(30)
        connector.pull()
        assert seen == [clock()]


class TestManualConnector:
    def test_emit_routes_to_callback(self, clock):
        received, errors = [], []
        connector = ManualConnector("feed", SourceKind.SECURITY_COMPLIANCE, MetricCategory.SECURITY,
                                    ("security",), clock=clock)
        connector.start(received.extend, errors.append)
        assert connector.is_started
        assert connector.emit([{"metric": "failed_auth_attempts", "value": 3}]) == 1
        assert received[0].source == SourceKind.SECURITY_COMPLIANCE
        connector.fail(RuntimeError("socket closed"))
        assert str(errors[0]) == "socket closed"

    def test_emit_after_stop_dropped(self, clock):
        received = []
        connector = ManualConnector("feed", SourceKind.SECURITY_COMPLIANCE, MetricCategory.SECURITY,
                                    clock=clock)
        connector.start(received.extend, lambda exc: None)
        connector.stop()
        assert connector.emit([{"metric": "x", "value": 1}]) == 0
        assert received == []
        connector.fail(RuntimeError("ignored"))


class TestSyntheticConnector:
    def test_deterministic_series(self, clock):
        spec = SeriesSpec("revenue", base=100.0, slope=2.0, amplitude=0.0)
        a = SyntheticConnector("a", SourceKind.BUSINESS_ANALYTICS, MetricCategory.BUSINESS,
                               series=[spec], clock=clock)
        b = SyntheticConnector("b", SourceKind.BUSINESS_ANALYTICS, MetricCategory.BUSINESS,
                               series=[spec], clock=clock)
        values_a = [a.pull()[0].value for _ in range(3)]
        values_b = [b.pull()[0].value for _ in range(3)]
        assert values_a == values_b == [100.0, 102.0, 104.0]

    def test_seasonal_component(self):
        spec = SeriesSpec("cpu", base=50.0, amplitude=10.0, period=4)
        assert spec.value_at(1) == 60.0
        assert abs(spec.value_at(2) - 50.0) < 1e-9

    def test_default_connectors(self, clock):
        connectors = default_synthetic_connectors(clock)
        assert len(connectors) == len(SourceKind)
        assert len({c.name for c in connectors}) == len(connectors)
        business = default_synthetic_connectors(clock, [SourceKind.BUSINESS_ANALYTICS])
        [connector] = business
        assert "executive_summary" in connector.module_access
        assert {p.metric for p in connector.pull()} >= {"revenue", "active_users_now"}
