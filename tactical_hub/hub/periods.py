"""
Calendar roll-up of buffered history.

Points are bucketed by UTC calendar period and reduced to one
``PeriodAggregate`` per (period, source, metric, tag set):

    day    2026-01-05   ISO date of the sample
    week   2026-01-04   the Sunday that starts the sample's week
    month  2026-01      year and month

Non-finite values are skipped. Out-of-order points are kept: bucketing only
depends on each point's own timestamp.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Iterable, Optional

from tactical_hub.models.datapoint import DataPoint, PeriodAggregate
from tactical_hub.taxonomy.metric_taxonomy import AggregationPeriod, MetricCategory, SourceKind
from tactical_hub.utils.time_utils import ensure_utc


def period_key(timestamp: datetime, period: AggregationPeriod | str) -> str:
    """Bucket key of ``timestamp`` for ``period``.

    Raises:
        ValueError: If ``period`` is not day, week or month.
    """
    period = AggregationPeriod(period)
    day = ensure_utc(timestamp).date()
    if period == AggregationPeriod.DAY:
        return day.isoformat()
    if period == AggregationPeriod.WEEK:
        # Monday=0 .. Sunday=6
        return (day - timedelta(days=(day.weekday() + 1) % 7)).isoformat()
    return f"{day.year:04d}-{day.month:02d}"


def aggregate_by_period(
    points: Iterable[DataPoint],
    period: AggregationPeriod | str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    categories: Optional[Iterable[MetricCategory | str]] = None,
    sources: Optional[Iterable[SourceKind | str]] = None,
) -> dict[str, list[PeriodAggregate]]:
    """Group ``points`` into calendar buckets, oldest bucket first.

    ``start`` and ``end`` are inclusive bounds on the sample timestamp.
    ``categories`` / ``sources`` restrict the points considered; ``None``
    means all of them.

    Raises:
        ValueError: On an unknown period, category or source, or when
            ``start`` is after ``end``.
    """
    period = AggregationPeriod(period)
    start = ensure_utc(start) if start is not None else None
    end = ensure_utc(end) if end is not None else None
    if start is not None and end is not None and start > end:
        raise ValueError(f"start {start.isoformat()} is after end {end.isoformat()}.")
    wanted_categories = {MetricCategory(c) for c in categories} if categories is not None else None
    wanted_sources = {SourceKind(s) for s in sources} if sources is not None else None

    buckets: dict[tuple[str, str, str, tuple[str, ...]], list[DataPoint]] = {}
    for point in points:
        if not math.isfinite(point.value):
            continue
        if start is not None and point.timestamp < start:
            continue
        if end is not None and point.timestamp > end:
            continue
        if wanted_categories is not None and point.category not in wanted_categories:
            continue
        if wanted_sources is not None and point.source not in wanted_sources:
            continue
        key = (
            period_key(point.timestamp, period),
            point.source.value,
            point.metric,
            tuple(sorted(point.module_access)),
        )
        buckets.setdefault(key, []).append(point)

    grouped: dict[str, list[PeriodAggregate]] = {}
    for key in sorted(buckets):
        grouped.setdefault(key[0], []).append(_reduce(key[0], buckets[key]))
    return grouped


def _reduce(period: str, points: list[DataPoint]) -> PeriodAggregate:
    ordered = sorted(points, key=lambda p: p.timestamp)
    values = [p.value for p in ordered]
    first, last = ordered[0], ordered[-1]
    return PeriodAggregate(
        period=period,
        source=last.source,
        metric=last.metric,
        category=last.category,
        count=len(values),
        mean=round(sum(values) / len(values), 6),
        minimum=min(values),
        maximum=max(values),
        total=round(sum(values), 6),
        first_at=first.timestamp,
        last_at=last.timestamp,
        last_value=last.value,
        module_access=last.module_access,
    )
