"""
Store interface and the bounded in-memory implementation.

The hub hands every published snapshot, every insight re-derivation and
every alert transition to its ``Store``. Persistence is a side channel: the
hub logs and carries on when a store call raises.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Iterable, Optional

from tactical_hub.models.alert import Alert
from tactical_hub.models.insight import Insight
from tactical_hub.models.snapshot import Snapshot


class Store(ABC):
    """Persistence capability consumed by the hub."""

    @abstractmethod
    def save_snapshot(self, snapshot: Snapshot) -> None: ...

    @abstractmethod
    def save_insights(self, insights: Iterable[Insight]) -> None: ...

    @abstractmethod
    def save_alert(self, alert: Alert) -> None: ...

    @abstractmethod
    def load_latest_snapshot(self) -> Optional[Snapshot]: ...

    def close(self) -> None:
        """Release resources. Default: nothing to release."""


class MemoryStore(Store):
    """Keeps the newest ``capacity`` snapshots plus current insights/alerts."""

    def __init__(self, capacity: int = 100) -> None:
        self.capacity = capacity
        self._lock = threading.Lock()
        self._snapshots: deque[Snapshot] = deque(maxlen=capacity)
        self.insights: dict[str, Insight] = {}
        self.alerts: dict[str, Alert] = {}

    def save_snapshot(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._snapshots.append(snapshot)

    def save_insights(self, insights: Iterable[Insight]) -> None:
        with self._lock:
            for insight in insights:
                self.insights[insight.insight_id] = insight

    def save_alert(self, alert: Alert) -> None:
        with self._lock:
            self.alerts[alert.alert_id] = alert

    def load_latest_snapshot(self) -> Optional[Snapshot]:
        with self._lock:
            return self._snapshots[-1] if self._snapshots else None

    def snapshots(self) -> list[Snapshot]:
        with self._lock:
            return list(self._snapshots)
