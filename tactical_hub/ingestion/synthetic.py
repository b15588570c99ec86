"""
Deterministic synthetic sources for demos and local runs.

Each poll advances a tick counter and emits one value per configured
series: ``base + slope * tick + amplitude * sin(2π * tick / period)``.
No randomness is involved, so runs are reproducible.

``default_synthetic_connectors()`` builds one connector per ``SourceKind``
with metric names and module tags matching a typical admin dashboard.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from tactical_hub.ingestion.base import PollingConnector
from tactical_hub.models.datapoint import DataPoint
from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, SourceKind
from tactical_hub.utils.time_utils import Clock, utcnow


@dataclass(frozen=True)
class SeriesSpec:
    metric: str
    base: float
    slope: float = 0.0
    amplitude: float = 0.0
    period: int = 24

    def value_at(self, tick: int) -> float:
        wave = self.amplitude * math.sin(2.0 * math.pi * tick / self.period) if self.period else 0.0
        return self.base + self.slope * tick + wave


class SyntheticConnector(PollingConnector):
    """Polling connector generating deterministic series."""

    def __init__(
        self,
        *args,
        series: Iterable[SeriesSpec],
        clock: Clock = utcnow,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.series = tuple(series)
        self.clock = clock
        self.tick = 0

    def pull(self) -> list[DataPoint]:
        now = self.clock()
        records = [
            {"metric": spec.metric, "value": round(spec.value_at(self.tick), 4), "timestamp": now}
            for spec in self.series
        ]
        self.tick += 1
        return self.normalize_records(records, received_at=now)


_DEFAULT_PROFILES: dict[SourceKind, tuple[MetricCategory, tuple[str, ...], tuple[SeriesSpec, ...]]] = {
    SourceKind.SYSTEM_HEALTH: (
        MetricCategory.SYSTEM_HEALTH,
        ("system_health", "technical"),
        (
            SeriesSpec("cpu_usage", 45.0, 0.05, 12.0, 48),
            SeriesSpec("memory_usage", 60.0, 0.02, 6.0, 96),
            SeriesSpec("response_time", 320.0, 0.5, 60.0, 24),
            SeriesSpec("error_rate", 1.2, 0.0, 0.6, 12),
        ),
    ),
    SourceKind.BUSINESS_ANALYTICS: (
        MetricCategory.BUSINESS,
        ("business", "executive_summary"),
        (
            SeriesSpec("revenue", 12_000.0, 15.0, 800.0, 96),
            SeriesSpec("conversion_rate", 3.4, -0.002, 0.2, 48),
            SeriesSpec("active_users_now", 420.0, 0.8, 90.0, 96),
        ),
    ),
    SourceKind.WORKFLOW_PERFORMANCE: (
        MetricCategory.WORKFLOW,
        ("workflow", "technical"),
        (
            SeriesSpec("workflow_success_rate", 97.0, -0.01, 1.0, 24),
            SeriesSpec("execution_time", 850.0, 1.0, 120.0, 24),
        ),
    ),
    SourceKind.CUSTOMER_INTELLIGENCE: (
        MetricCategory.CUSTOMER,
        ("customer", "executive_summary"),
        (
            SeriesSpec("customer_satisfaction", 4.3, 0.0, 0.1, 96),
            SeriesSpec("churn_rate", 2.1, 0.004, 0.2, 96),
        ),
    ),
    SourceKind.SECURITY_COMPLIANCE: (
        MetricCategory.SECURITY,
        ("security", "compliance"),
        (
            SeriesSpec("failed_auth_attempts", 4.0, 0.02, 3.0, 12),
            SeriesSpec("compliance_score", 96.0, 0.0, 0.5, 96),
        ),
    ),
    SourceKind.INFRASTRUCTURE: (
        MetricCategory.INFRASTRUCTURE,
        ("infrastructure", "technical"),
        (
            SeriesSpec("disk_usage", 55.0, 0.03, 0.0, 24),
            SeriesSpec("network_latency", 35.0, 0.0, 8.0, 24),
        ),
    ),
}


def default_synthetic_connectors(
    clock: Clock = utcnow,
    sources: Optional[Iterable[SourceKind]] = None,
) -> list[SyntheticConnector]:
    """One synthetic connector per source kind (or per ``sources``)."""
    connectors: list[SyntheticConnector] = []
    for raw_kind in sources or _DEFAULT_PROFILES:
        kind = SourceKind(raw_kind)
        category, access, series = _DEFAULT_PROFILES[kind]
        connectors.append(
            SyntheticConnector(
                f"synthetic-{kind.value}",
                kind,
                category,
                access,
                series=series,
                clock=clock,
            )
        )
    return connectors
