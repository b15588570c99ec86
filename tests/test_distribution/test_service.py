"""
Tests for tactical_hub/distribution/service.py.

DashboardService wraps a manually driven hub; every method (history
roll-ups included) returns a JSON-ready dict and typed hub errors come back as error payloads.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import T0
from tactical_hub.distribution.service import DashboardService, error_payload
from tactical_hub.errors import (
    AlertStateConflictError,
    HubStateError,
    InsufficientDataError,
    UnknownAlertError,
)
from tactical_hub.hub.aggregator import AggregationHub
from tactical_hub.ingestion.static import ManualConnector
from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, SourceKind


@pytest.fixture
def billing(clock) -> ManualConnector:
    return ManualConnector(
        "billing", SourceKind.BUSINESS_ANALYTICS, MetricCategory.BUSINESS,
        ("business", "executive_summary"), clock=clock,
    )


@pytest.fixture
def monitoring(clock) -> ManualConnector:
    return ManualConnector(
        "monitoring", SourceKind.SYSTEM_HEALTH, MetricCategory.SYSTEM_HEALTH,
        ("technical",), clock=clock,
    )


@pytest.fixture
def service(app_config, clock, billing, monitoring):
    hub = AggregationHub(app_config, [billing, monitoring], clock=clock)
    svc = DashboardService(hub)
    assert svc.start_hub(run_workers=False) == {"state": "running", "changed": True, "message": ""}
    yield svc
    svc.stop_hub()


def _rising_revenue(n: int = 30) -> list[dict]:
    return [
        {"metric": "revenue", "value": 1000.0 + 10.0 * i, "timestamp": T0 - timedelta(minutes=n - i)}
        for i in range(n)
    ]


class TestErrorPayload:
    def test_insufficient_data(self):
        payload = error_payload(InsufficientDataError("revenue", 3, 10, "business_analytics"))
        assert payload["error"] == "insufficient_data"
        assert payload["metric"] == "revenue"
        assert payload["source"] == "business_analytics"
        assert payload["sample_count"] == 3
        assert payload["required"] == 10

    def test_alert_errors(self):
        assert error_payload(UnknownAlertError("alert-x")) == {
            "error": "unknown_alert", "message": "Unknown alert 'alert-x'", "alert_id": "alert-x",
        }
        conflict = error_payload(AlertStateConflictError("alert-x", "resolved", "acknowledge"))
        assert conflict["error"] == "alert_state_conflict"
        assert conflict["state"] == "resolved"

    def test_hub_state_and_value_error(self):
        assert error_payload(HubStateError("stopped"))["error"] == "hub_state"
        assert error_payload(ValueError("bad"))["error"] == "invalid_request"

    def test_unmapped_error_reraised(self):
        with pytest.raises(RuntimeError):
            error_payload(RuntimeError("boom"))


class TestReads:
    def test_snapshot_is_json_ready(self, service, billing):
        billing.emit(_rising_revenue())
        forced = service.force_aggregation()
        assert forced["snapshot_id"] == "snap-000001"
        payload = service.get_snapshot(["business"])
        assert payload["cycle"] == 1
        assert isinstance(payload["generated_at"], str)
        assert payload["predictions"][0]["metric"] == "revenue"

    def test_snapshot_filtered_by_module(self, service, billing):
        billing.emit(_rising_revenue())
        service.force_aggregation()
        payload = service.get_snapshot(["security"])
        assert payload["predictions"] == []
        assert len(payload["sources"]) == 2

    def test_stream_ends_on_timeout(self, service, billing):
        billing.emit(_rising_revenue())
        service.force_aggregation()
        payloads = list(service.stream_snapshots(["business"], timeout=0))
        assert [p["cycle"] for p in payloads] == [1]

    def test_insights_and_recommendations(self, service, billing):
        billing.emit(_rising_revenue())
        service.force_aggregation()
        insights = service.generate_insights()
        assert insights["count"] == len(insights["insights"]) >= 1
        recs = service.generate_recommendations()
        assert recs["summary"]["total"] == len(recs["recommendations"]) >= 1

    def test_recommendation_filters_from_dicts(self, service, billing):
        billing.emit(_rising_revenue())
        service.force_aggregation()
        payload = service.generate_recommendations(
            context={"risk_tolerance": "conservative"},
            filters={"categories": ["cost_reduction"]},
        )
        assert payload["recommendations"] == []
        assert payload["summary"]["total"] == 0

    def test_invalid_filters(self, service):
        payload = service.generate_recommendations(filters={"limit": -1})
        assert payload["error"] == "invalid_request"
        payload = service.generate_recommendations(context={"risk_tolerance": "reckless"})
        assert payload["error"] == "invalid_request"


class TestPredict:
    def test_prediction_payload(self, service, billing):
        billing.emit(_rising_revenue())
        service.force_aggregation()
        payload = service.predict("revenue", horizon=3)
        assert payload["horizon"] == 3
        assert len(payload["points"]) == 3

    def test_insufficient_data(self, service, billing):
        billing.emit(_rising_revenue(3))
        service.force_aggregation()
        payload = service.predict("revenue")
        assert payload["error"] == "insufficient_data"
        assert payload["sample_count"] == 3

    def test_unknown_metric(self, service):
        assert service.predict("nothing")["error"] == "insufficient_data"

    def test_bad_horizon(self, service):
        assert service.predict("revenue", horizon=0)["error"] == "invalid_request"


class TestAlertsAndLifecycle:
    def test_acknowledge_flow(self, service, monitoring):
        monitoring.emit([{"metric": "cpu_usage", "value": 91.0}])
        service.force_aggregation()
        active = service.get_active_alerts()
        assert active["count"] == 1
        alert_id = active["alerts"][0]["alert_id"]
        acked = service.acknowledge_alert(alert_id, "ops-oncall")
        assert acked["state"] == "acknowledged"
        assert acked["acknowledged_by"] == "ops-oncall"

    def test_acknowledge_unknown(self, service):
        payload = service.acknowledge_alert("alert-missing", "ops-oncall")
        assert payload["error"] == "unknown_alert"

    def test_force_when_stopped(self, service):
        assert service.stop_hub() == {"state": "stopped", "changed": True, "message": ""}
        assert service.force_aggregation()["error"] == "hub_state"

    def test_start_twice_is_noop(self, service):
        assert service.start_hub(run_workers=False)["changed"] is False

    def test_emergency_stop(self, service, billing):
        billing.emit(_rising_revenue())
        service.force_aggregation()
        ack = service.stop_hub(emergency=True)
        assert ack == {"state": "stopped", "changed": True, "message": "emergency stop"}
        assert service.get_snapshot(["business"])["stale_since"] is not None


class TestAggregateHistory:
    def test_buckets_payload(self, service, billing):
        billing.emit(_rising_revenue())
        service.force_aggregation()
        payload = service.aggregate_history(
            "day", ["business"], start="2026-01-05T11:00:00Z", end="2026-01-05T12:00:00Z",
        )
        assert payload["period"] == "day"
        assert payload["count"] == 1
        [revenue] = payload["buckets"]["2026-01-05"]
        assert revenue["metric"] == "revenue"
        assert revenue["count"] == 30
        assert revenue["maximum"] == 1290.0
        assert isinstance(revenue["first_at"], str)

    def test_hidden_from_other_modules(self, service, billing):
        billing.emit(_rising_revenue())
        service.force_aggregation()
        assert service.aggregate_history("week", ["security"])["buckets"] == {}

    @pytest.mark.parametrize("kwargs", [
        {"period": "quarter"},
        {"period": "day", "start": "yesterday"},
        {"period": "day", "sources": ["carrier_pigeon"]},
    ])
    def test_invalid_request(self, service, kwargs):
        period = kwargs.pop("period")
        assert service.aggregate_history(period, ["*"], **kwargs)["error"] == "invalid_request"
