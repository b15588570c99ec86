"""
Snapshot models - the hub's published, read-only view of the pipeline.

A ``Snapshot`` is composed once per aggregation cycle and published with a
single reference swap. It is never mutated afterwards; RBAC filtering and
staleness marking produce new copies via ``model_copy(update=...)``.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from tactical_hub.models.alert import Alert
from tactical_hub.models.datapoint import DataPoint
from tactical_hub.models.forecast import Prediction
from tactical_hub.models.insight import Insight
from tactical_hub.models.recommendation import Recommendation
from tactical_hub.taxonomy.metric_taxonomy import HealthStatus, MetricCategory, SourceKind


class HubState(StrEnum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    DEGRADED = "degraded"
    STOPPING = "stopping"


class SourceState(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    STOPPED = "stopped"


class SourceStatus(BaseModel):
    """Health of one connector as of the snapshot."""

    model_config = ConfigDict(frozen=True)

    name: str
    source: SourceKind
    state: SourceState
    consecutive_failures: int = 0
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None
    next_attempt_at: Optional[datetime] = None


class MetricSummary(BaseModel):
    """Rollup of the buffered history of one (source, metric)."""

    model_config = ConfigDict(frozen=True)

    source: SourceKind
    metric: str
    category: MetricCategory
    latest_value: float
    latest_at: datetime
    mean: float
    minimum: float
    maximum: float
    count: int
    status: HealthStatus
    change_pct: float = 0.0
    module_access: frozenset[str] = frozenset()


class CategorySummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: MetricCategory
    status: HealthStatus
    point_count: int
    metrics: tuple[MetricSummary, ...]


class PipelineMetrics(BaseModel):
    """Hub self-metrics for the cycle that produced the snapshot."""

    model_config = ConfigDict(frozen=True)

    active_sources: int = 0
    total_sources: int = 0
    degraded_sources: tuple[str, ...] = ()
    buffered_points: int = 0
    dropped_points: int = 0
    aggregation_latency_ms: float = 0.0
    memory_estimate_mb: float = 0.0
    subscribers: int = 0
    models_ready: int = 0


class Snapshot(BaseModel):
    """Consistent, immutable view of all dashboard data for one cycle."""

    model_config = ConfigDict(frozen=True)

    snapshot_id: str
    cycle: int
    generated_at: datetime
    hub_state: HubState
    overall_status: HealthStatus
    stale_since: Optional[datetime] = None
    categories: tuple[CategorySummary, ...] = ()
    latest_points: tuple[DataPoint, ...] = ()
    alerts: tuple[Alert, ...] = ()
    predictions: tuple[Prediction, ...] = ()
    insights: tuple[Insight, ...] = ()
    recommendations: tuple[Recommendation, ...] = ()
    sources: tuple[SourceStatus, ...] = ()
    degraded_metrics: tuple[str, ...] = ()
    performance: PipelineMetrics = PipelineMetrics()

    @property
    def is_stale(self) -> bool:
        return self.stale_since is not None

    def business_content(self) -> dict:
        """Everything except cycle bookkeeping and self-metrics.

        Two snapshots built from the same buffered data compare equal here.
        """
        return self.model_dump(
            mode="json",
            exclude={"snapshot_id", "cycle", "generated_at", "performance", "stale_since"},
        )
