"""
Ingestion handoff and buffered history.

``SourceInbox`` is the non-blocking handoff between one connector and the
hub. The connector thread is its only writer (``offer``), the aggregation
thread its only reader (``drain``). ``collections.deque`` append and
popleft are atomic, so neither side takes a lock; when the inbox is full
the newest point evicts the oldest.

``HistoryBuffer`` is owned by the aggregation thread alone. It keeps one
bounded deque per (source, category), flags out-of-order arrivals per
(source, metric) and evicts points older than the retention window.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from typing import Iterable

from tactical_hub.models.datapoint import DataPoint, MetricSeries
from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, SourceKind

logger = logging.getLogger(__name__)

BufferKey = tuple[SourceKind, MetricCategory]


class SourceInbox:
    """Bounded drop-oldest queue between one connector and the hub."""

    def __init__(self, name: str, capacity: int) -> None:
        self.name = name
        self.capacity = capacity
        self._queue: deque[DataPoint] = deque(maxlen=capacity)
        self.dropped = 0
        self.halted = False

    def offer(self, points: Iterable[DataPoint]) -> int:
        """Append ``points``; returns how many were accepted."""
        if self.halted:
            return 0
        accepted = 0
        for point in points:
            if len(self._queue) == self.capacity:
                self.dropped += 1
            self._queue.append(point)
            accepted += 1
        return accepted

    def drain(self) -> list[DataPoint]:
        """Remove and return everything currently queued, oldest first."""
        out: list[DataPoint] = []
        while True:
            try:
                out.append(self._queue.popleft())
            except IndexError:
                return out

    def halt(self) -> None:
        """Refuse further points and discard anything pending."""
        self.halted = True
        self._queue.clear()

    def resume(self) -> None:
        self.halted = False

    def __len__(self) -> int:
        return len(self._queue)


class HistoryBuffer:
    """Retained points per (source, category), oldest evicted first.

    Args:
        capacity: Maximum points kept per (source, category).
    """

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self._buffers: dict[BufferKey, deque[DataPoint]] = {}
        self._last_seen: dict[tuple[SourceKind, str], datetime] = {}
        self.evicted = 0

    def append(self, point: DataPoint) -> DataPoint:
        """Buffer ``point`` and return it as stored (out-of-order flagged)."""
        last = self._last_seen.get(point.key)
        if last is not None and point.timestamp < last:
            logger.warning(
                "Out-of-order point for %s/%s: %s < %s",
                point.source.value, point.metric, point.timestamp.isoformat(), last.isoformat(),
            )
            point = point.model_copy(update={"out_of_order": True})
        else:
            self._last_seen[point.key] = point.timestamp

        buffer = self._buffers.setdefault(
            (point.source, point.category), deque(maxlen=self.capacity)
        )
        if len(buffer) == self.capacity:
            self.evicted += 1
        buffer.append(point)
        return point

    def evict_older_than(self, cutoff: datetime) -> int:
        """Drop points with ``timestamp < cutoff``; returns how many."""
        removed = 0
        for key, buffer in list(self._buffers.items()):
            kept = [p for p in buffer if p.timestamp >= cutoff]
            if len(kept) == len(buffer):
                continue
            removed += len(buffer) - len(kept)
            if kept:
                self._buffers[key] = deque(kept, maxlen=self.capacity)
            else:
                del self._buffers[key]
        if removed:
            live = {p.key for buffer in self._buffers.values() for p in buffer}
            for series_key in [k for k in self._last_seen if k not in live]:
                del self._last_seen[series_key]
            logger.debug("Retention evicted %d points", removed)
        self.evicted += removed
        return removed

    def points(self, source: SourceKind, category: MetricCategory) -> list[DataPoint]:
        return list(self._buffers.get((source, category), ()))

    def all_points(self) -> list[DataPoint]:
        return [point for buffer in self._buffers.values() for point in buffer]

    def series(self, by_access: bool = False) -> list[MetricSeries]:
        """One ``MetricSeries`` per (source, metric), in arrival order.

        With ``by_access`` the points of a (source, metric) are further split
        by their RBAC tag set, so each returned series has uniform tags.
        """
        grouped: dict[tuple[str, str, tuple[str, ...]], list[DataPoint]] = {}
        for key in sorted(self._buffers, key=lambda k: (k[0].value, k[1].value)):
            for point in self._buffers[key]:
                grouped.setdefault(_group_key(point, by_access), []).append(point)
        return [MetricSeries.from_points(grouped[k]) for k in sorted(grouped)]

    def latest_points(self, by_access: bool = False) -> list[DataPoint]:
        """Most recent finite, in-order point per (source, metric).

        ``by_access`` keeps one per (source, metric, tag set) instead.
        """
        latest: dict[tuple[str, str, tuple[str, ...]], DataPoint] = {}
        for buffer in self._buffers.values():
            for point in buffer:
                if point.out_of_order or not point.is_finite:
                    continue
                key = _group_key(point, by_access)
                current = latest.get(key)
                if current is None or point.timestamp >= current.timestamp:
                    latest[key] = point
        return [latest[k] for k in sorted(latest)]

    def keys(self) -> list[BufferKey]:
        return list(self._buffers)

    def __len__(self) -> int:
        return sum(len(buffer) for buffer in self._buffers.values())


def _group_key(point: DataPoint, by_access: bool) -> tuple[str, str, tuple[str, ...]]:
    tags = tuple(sorted(point.module_access)) if by_access else ()
    return (point.source.value, point.metric, tags)
