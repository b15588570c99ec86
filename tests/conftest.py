"""
Shared pytest fixtures for the Tactical Analytics Hub test suite.

Provides:
  - ``FakeClock`` / ``clock``: a manually advanced UTC clock so hub cycles,
    backoff windows and alert timestamps are deterministic.
  - ``make_points`` / ``make_series``: factories for data points and series.
  - ``app_config``: default ``AppConfig`` with small, test-friendly values.
  - ``in_memory_db``: a fresh in-memory SQLite connection with the schema.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Generator, Iterable, Sequence

import pytest

from tactical_hub.config import AppConfig, build_config
from tactical_hub.models.datapoint import DataPoint, MetricSeries
from tactical_hub.store.schema import apply_schema
from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, SourceKind

T0 = datetime(2026, 1, 5, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def make_points(
    values: Sequence[float],
    metric: str = "revenue",
    source: SourceKind = SourceKind.BUSINESS_ANALYTICS,
    category: MetricCategory = MetricCategory.BUSINESS,
    start: datetime = T0,
    step_seconds: float = 60.0,
    module_access: Iterable[str] = ("business",),
) -> list[DataPoint]:
    """One point per value, ``step_seconds`` apart starting at ``start``."""
    return [
        DataPoint(
            timestamp=start + timedelta(seconds=step_seconds * i),
            source=source,
            category=category,
            metric=metric,
            value=value,
            module_access=frozenset(module_access),
        )
        for i, value in enumerate(values)
    ]


def make_series(values: Sequence[float], **kwargs) -> MetricSeries:
    return MetricSeries.from_points(make_points(values, **kwargs))


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def app_config() -> AppConfig:
    """Defaults, except fixed 1s backoff so degraded-source tests stay short."""
    return build_config({
        "connectors": {"backoff": {"strategy": "fixed", "base_seconds": 1.0, "max_seconds": 1.0}},
        "store": {"memory_capacity": 20},
    })


@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    apply_schema(conn)
    yield conn
    conn.close()
