"""
Source connector interfaces.

Two shapes of connector exist:

  - ``PollingConnector`` - the hub's worker thread calls ``pull()`` on a
    fixed interval. ``pull()`` raises ``SourceUnavailableError`` when the
    upstream cannot be reached; the worker contains the error, marks the
    source degraded and retries with backoff.
  - ``PushConnector`` - event-driven feeds. The hub calls
    ``start(emit, on_error)`` once; the connector calls ``emit(points)``
    whenever new data arrives and ``on_error(exc)`` when the feed breaks.

Every connector normalises its raw records into ``DataPoint`` via
``normalize_records()``. A malformed record is logged and skipped; it never
fails the batch it arrived in.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from tactical_hub.models.datapoint import DataPoint
from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, SourceKind
from tactical_hub.utils.time_utils import parse_timestamp, utcnow

logger = logging.getLogger(__name__)

EmitFn = Callable[[list[DataPoint]], None]
ErrorFn = Callable[[Exception], None]


class SourceConnector(ABC):
    """Shared identity and normalisation for all connectors.

    Attributes:
        name: Unique connector name within a hub.
        source: Source kind stamped on every point.
        default_category: Category used when a record carries none.
        module_access: Default RBAC tags for records without their own.
    """

    def __init__(
        self,
        name: str,
        source: SourceKind,
        default_category: MetricCategory,
        module_access: Iterable[str] = (),
    ) -> None:
        self.name = name
        self.source = SourceKind(source)
        self.default_category = MetricCategory(default_category)
        self.module_access = frozenset(module_access)

    def normalize_records(
        self,
        records: Iterable[dict[str, Any] | DataPoint],
        received_at: Optional[datetime] = None,
    ) -> list[DataPoint]:
        """Convert raw records into ``DataPoint`` objects.

        Accepted record keys: ``metric`` and ``value`` (required),
        ``timestamp``, ``category``, ``metadata``, ``module_access``.
        Already-built ``DataPoint`` objects pass through unchanged.
        """
        received_at = received_at or utcnow()
        points: list[DataPoint] = []
        skipped = 0
        for raw in records:
            if isinstance(raw, DataPoint):
                points.append(raw)
                continue
            try:
                points.append(self._to_point(raw, received_at))
            except (KeyError, TypeError, ValueError) as exc:
                skipped += 1
                logger.warning("%s: skipping malformed record %r: %s", self.name, raw, exc)
        if skipped:
            logger.info("%s: normalised %d records, skipped %d", self.name, len(points), skipped)
        return points

    def _to_point(self, raw: dict[str, Any], received_at: datetime) -> DataPoint:
        timestamp = raw.get("timestamp")
        access = raw.get("module_access")
        return DataPoint(
            timestamp=parse_timestamp(timestamp) if timestamp is not None else received_at,
            source=self.source,
            category=MetricCategory(raw.get("category", self.default_category)),
            metric=str(raw["metric"]),
            value=float(raw["value"]),
            metadata=dict(raw.get("metadata") or {}),
            module_access=frozenset(access) if access is not None else self.module_access,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, source={self.source.value!r})"


class PollingConnector(SourceConnector):
    """Connector whose data is fetched on a schedule by the hub."""

    def __init__(self, *args, poll_interval_ms: Optional[int] = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.poll_interval_ms = poll_interval_ms

    @abstractmethod
    def pull(self) -> list[DataPoint]:
        """Fetch and normalise the latest records.

        Raises:
            SourceUnavailableError: If the upstream cannot be reached.
        """

    def close(self) -> None:
        """Release any held resources. Default: nothing to release."""


class PushConnector(SourceConnector):
    """Connector that delivers data through a callback as it arrives."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._emit: Optional[EmitFn] = None
        self._on_error: Optional[ErrorFn] = None

    def start(self, emit: EmitFn, on_error: ErrorFn) -> None:
        self._emit = emit
        self._on_error = on_error

    def stop(self) -> None:
        self._emit = None
        self._on_error = None

    @property
    def is_started(self) -> bool:
        return self._emit is not None
