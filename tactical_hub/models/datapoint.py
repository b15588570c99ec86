"""
Canonical metric sample.

``DataPoint`` is what every connector normalises its feed into. Points are
frozen: once the hub has buffered a point it is never mutated, only evicted.
The hub derives ``status`` from the configured thresholds and sets
``out_of_order`` when a point arrives with a timestamp earlier than the last
buffered point for the same (source, metric); both happen via
``model_copy(update=...)`` before the point enters the buffer.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tactical_hub.taxonomy.metric_taxonomy import HealthStatus, MetricCategory, SourceKind
from tactical_hub.utils.time_utils import ensure_utc


class DataPoint(BaseModel):
    """A single metric observation from one source.

    Attributes:
        id: Unique identifier (uuid4 hex by default).
        timestamp: Observation time, normalised to UTC.
        source: Upstream feed that produced the value.
        category: Dashboard section the metric belongs to.
        metric: Metric name, e.g. ``"revenue"`` or ``"cpu_usage"``.
        value: Observed value. Non-finite values are accepted here and
            rejected per-point by the consumers that need finite input.
        status: Threshold classification derived at buffering time.
        metadata: Free-form connector metadata.
        module_access: RBAC module tags allowed to see this point.
        out_of_order: True if the point arrived behind its series.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: datetime
    source: SourceKind
    category: MetricCategory
    metric: str
    value: float
    status: HealthStatus = HealthStatus.HEALTHY
    metadata: dict[str, Any] = Field(default_factory=dict)
    module_access: frozenset[str] = frozenset()
    out_of_order: bool = False

    @field_validator("timestamp")
    @classmethod
    def normalise_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator("metric")
    @classmethod
    def metric_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("metric must not be empty.")
        return v.strip()

    @property
    def key(self) -> tuple[SourceKind, str]:
        """The (source, metric) series this point belongs to."""
        return (self.source, self.metric)

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.value)


class MetricSeries(BaseModel):
    """Ordered history of one (source, metric), as buffered by the hub.

    ``values`` may contain non-finite entries and ``out_of_order`` flags;
    ``clean()`` returns only the samples usable for fitting.
    """

    model_config = ConfigDict(frozen=True)

    source: SourceKind
    metric: str
    category: MetricCategory
    timestamps: tuple[datetime, ...]
    values: tuple[float, ...]
    out_of_order: tuple[bool, ...]
    module_access: frozenset[str] = frozenset()

    @classmethod
    def from_points(cls, points: list[DataPoint]) -> "MetricSeries":
        """Build a series from points of a single (source, metric), oldest first.

        Raises:
            ValueError: If ``points`` is empty or mixes series.
        """
        if not points:
            raise ValueError("Cannot build a MetricSeries from no points.")
        first = points[0]
        if any(p.key != first.key for p in points):
            raise ValueError("All points of a MetricSeries must share (source, metric).")
        access: frozenset[str] = frozenset()
        for p in points:
            access |= p.module_access
        return cls(
            source=first.source,
            metric=first.metric,
            category=points[-1].category,
            timestamps=tuple(p.timestamp for p in points),
            values=tuple(p.value for p in points),
            out_of_order=tuple(p.out_of_order for p in points),
            module_access=access,
        )

    @property
    def key(self) -> tuple[SourceKind, str]:
        return (self.source, self.metric)

    @property
    def label(self) -> str:
        return f"{self.source.value}/{self.metric}"

    def clean(self) -> tuple[list[datetime], list[float], int]:
        """Return (timestamps, values, rejected_count) of usable samples."""
        stamps: list[datetime] = []
        vals: list[float] = []
        rejected = 0
        for ts, value, ooo in zip(self.timestamps, self.values, self.out_of_order):
            if ooo or not math.isfinite(value):
                rejected += 1
                continue
            stamps.append(ts)
            vals.append(value)
        return stamps, vals, rejected

    def tail(self, n: int) -> "MetricSeries":
        """The most recent ``n`` samples."""
        if n >= len(self.values):
            return self
        return self.model_copy(update={
            "timestamps": self.timestamps[-n:],
            "values": self.values[-n:],
            "out_of_order": self.out_of_order[-n:],
        })

    def since(self, cutoff: datetime) -> "MetricSeries":
        """Samples at or after ``cutoff``."""
        keep = [i for i, ts in enumerate(self.timestamps) if ts >= cutoff]
        return self.model_copy(update={
            "timestamps": tuple(self.timestamps[i] for i in keep),
            "values": tuple(self.values[i] for i in keep),
            "out_of_order": tuple(self.out_of_order[i] for i in keep),
        })


class PeriodAggregate(BaseModel):
    """Statistics of one (source, metric) over one calendar period.

    Attributes:
        period: Bucket key: ``YYYY-MM-DD`` for days, the Sunday starting the
            week for weeks, ``YYYY-MM`` for months.
        count: Finite samples in the bucket.
        first_at: Earliest sample time in the bucket.
        last_at: Latest sample time in the bucket.
        last_value: Value of the sample at ``last_at``.
        module_access: RBAC tags shared by every sample in the bucket.
    """

    model_config = ConfigDict(frozen=True)

    period: str
    source: SourceKind
    metric: str
    category: MetricCategory
    count: int
    mean: float
    minimum: float
    maximum: float
    total: float
    first_at: datetime
    last_at: datetime
    last_value: float
    module_access: frozenset[str] = frozenset()
