"""
In-process connectors: fixture/stub polling and manually driven push.

``StaticConnector`` serves fixture records (or whatever a ``producer``
callable returns) on every poll - the stub mode used when no real endpoint
is configured, and in tests. ``ManualConnector`` is a push connector whose
``emit()`` is called directly by the embedding application.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, ClassVar, Iterable, Optional

from tactical_hub.ingestion.base import PollingConnector, PushConnector
from tactical_hub.models.datapoint import DataPoint
from tactical_hub.utils.time_utils import Clock, utcnow

logger = logging.getLogger(__name__)

Producer = Callable[[datetime], Iterable[dict[str, Any] | DataPoint]]


class StaticConnector(PollingConnector):
    """Polling connector backed by fixture records or a producer callable.

    Args:
        records: Records returned on every poll (timestamps default to the
            poll time). Defaults to ``FIXTURE_RECORDS``.
        producer: Callable receiving the poll time and returning records.
            Takes precedence over ``records``. Exceptions propagate to the
            worker, which treats them as source failures.
        clock: Time source for poll timestamps.
    """

    FIXTURE_RECORDS: ClassVar[list[dict[str, Any]]] = [
        {"metric": "cpu_usage",            "value": 42.0},
        {"metric": "memory_usage",         "value": 61.5},
        {"metric": "response_time",        "value": 240.0},
        {"metric": "error_rate",           "value": 0.8},
    ]

    def __init__(
        self,
        *args,
        records: Optional[list[dict[str, Any]]] = None,
        producer: Optional[Producer] = None,
        clock: Clock = utcnow,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.records = list(records) if records is not None else list(self.FIXTURE_RECORDS)
        self.producer = producer
        self.clock = clock
        self.pull_count = 0

    def pull(self) -> list[DataPoint]:
        now = self.clock()
        self.pull_count += 1
        raw = self.producer(now) if self.producer is not None else self.records
        return self.normalize_records(raw, received_at=now)


class ManualConnector(PushConnector):
    """Push connector fed by explicit ``emit()`` calls.

    Records emitted before the hub starts the connector are dropped with a
    warning.
    """

    def __init__(self, *args, clock: Clock = utcnow, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.clock = clock

    def emit(self, records: Iterable[dict[str, Any] | DataPoint]) -> int:
        """Normalise and hand ``records`` to the hub. Returns points delivered."""
        points = self.normalize_records(records, received_at=self.clock())
        if self._emit is None:
            logger.warning("%s: not started, dropping %d points", self.name, len(points))
            return 0
        self._emit(points)
        return len(points)

    def fail(self, error: Exception) -> None:
        """Report a feed failure to the hub."""
        if self._on_error is not None:
            self._on_error(error)
