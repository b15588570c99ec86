"""
Tests for tactical_hub/hub/workers.py and the threaded hub loop.

poll_once(): success hands points to the inbox; SourceUnavailableError and
unexpected errors are both contained and recorded; backoff skips pulls.
Threaded run: workers and the aggregation thread publish snapshots on
their own and shut down within the timeout.
"""

from __future__ import annotations

import time

from tactical_hub.config import BackoffConfig, build_config
from tactical_hub.errors import SourceUnavailableError
from tactical_hub.hub.aggregator import AggregationHub
from tactical_hub.hub.buffer import SourceInbox
from tactical_hub.hub.workers import ConnectorWorker
from tactical_hub.ingestion.health import ConnectorHealth
from tactical_hub.ingestion.static import StaticConnector
from tactical_hub.models.snapshot import HubState
from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, SourceKind


def _worker(clock, producer=None) -> ConnectorWorker:
    connector = StaticConnector(
        "monitoring", SourceKind.SYSTEM_HEALTH, MetricCategory.SYSTEM_HEALTH,
        ("technical",), producer=producer, clock=clock,
    )
    health = ConnectorHealth(
        name="monitoring",
        source=SourceKind.SYSTEM_HEALTH,
        failure_threshold=2,
        backoff=BackoffConfig(strategy="fixed", base_seconds=10.0, max_seconds=10.0),
    )
    return ConnectorWorker(connector, SourceInbox("monitoring", 100), health, 1000, clock)


def _raise(exc):
    def producer(now):
        raise exc
    return producer


class TestPollOnce:
    def test_success_fills_inbox(self, clock):
        worker = _worker(clock)
        assert worker.poll_once() == 4
        assert len(worker.inbox) == 4
        assert worker.health.last_success_at == clock()

    def test_source_failure_contained(self, clock):
        worker = _worker(clock, _raise(SourceUnavailableError("monitoring", "timeout")))
        assert worker.poll_once() == 0
        assert worker.health.consecutive_failures == 1
        assert "timeout" in worker.health.last_error

    def test_unexpected_failure_contained(self, clock):
        worker = _worker(clock, _raise(RuntimeError("bug in producer")))
        assert worker.poll_once() == 0
        assert worker.health.last_error == "bug in producer"

    def test_backoff_window_skips_pull(self, clock):
        worker = _worker(clock, _raise(SourceUnavailableError("monitoring", "down")))
        worker.poll_once()
        clock.advance(5)
        worker.poll_once()
        assert worker.connector.pull_count == 1
        clock.advance(5)
        worker.poll_once()
        assert worker.connector.pull_count == 2
        assert worker.health.degraded

    def test_connector_interval_overrides_default(self, clock):
        connector = StaticConnector(
            "fast", SourceKind.SYSTEM_HEALTH, MetricCategory.SYSTEM_HEALTH,
            poll_interval_ms=250, clock=clock,
        )
        health = ConnectorHealth("fast", SourceKind.SYSTEM_HEALTH, 3, BackoffConfig())
        worker = ConnectorWorker(connector, SourceInbox("fast", 10), health, 5000, clock)
        assert worker.interval_ms == 250


class TestThreadedHub:
    def test_publishes_and_stops(self):
        config = build_config({
            "hub": {"update_interval_ms": 20, "shutdown_timeout_ms": 2000},
            "connectors": {"poll_interval_ms": 10},
        })
        connector = StaticConnector(
            "monitoring", SourceKind.SYSTEM_HEALTH, MetricCategory.SYSTEM_HEALTH, ("technical",),
        )
        hub = AggregationHub(config, [connector])
        hub.start()
        try:
            deadline = time.monotonic() + 5.0
            while hub.get_snapshot().cycle < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
            snapshot = hub.get_snapshot()
            assert snapshot.cycle >= 2
            assert snapshot.performance.buffered_points > 0
            assert connector.pull_count > 0
        finally:
            ack = hub.stop()
        assert ack.state == HubState.STOPPED
        assert hub.get_snapshot().is_stale
        cycle = hub.get_snapshot().cycle
        time.sleep(0.1)
        assert hub.get_snapshot().cycle == cycle
