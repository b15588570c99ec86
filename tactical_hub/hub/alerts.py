"""
Threshold alerts and their lifecycle.

State machine per alert::

    active ──acknowledge──▶ acknowledged
      │                         │
      └──── recovered for N evaluations ────▶ resolved

An evaluation is one aggregation cycle in which the metric delivered at
least one in-order finite value. A cycle with any breaching value counts as
a breach (the worst value wins); a cycle with none counts towards recovery.
Acknowledging never resolves: an acknowledged alert stays acknowledged
until the metric itself recovers.

All state lives behind one lock, so a resolve from the aggregation thread
and a concurrent acknowledge from a caller thread cannot lose each other's
update.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from collections import deque
from datetime import datetime
from typing import Iterable, Optional

from tactical_hub.config import AlertConfig, MetricThreshold
from tactical_hub.errors import AlertStateConflictError, UnknownAlertError
from tactical_hub.models.alert import Alert
from tactical_hub.models.datapoint import DataPoint
from tactical_hub.taxonomy.metric_taxonomy import HealthStatus, SourceKind
from tactical_hub.taxonomy.recommendation_taxonomy import AlertLevel, AlertState
from tactical_hub.utils.time_utils import Clock, utcnow

logger = logging.getLogger(__name__)

_RESOLVED_HISTORY = 500

SeriesKey = tuple[SourceKind, str]


def classify_value(value: float, threshold: Optional[MetricThreshold]) -> HealthStatus:
    """Health of ``value`` against ``threshold`` (healthy when none)."""
    if threshold is None:
        return HealthStatus.HEALTHY
    if threshold.direction == "below":
        if value <= threshold.critical:
            return HealthStatus.CRITICAL
        if value <= threshold.warning:
            return HealthStatus.WARNING
        return HealthStatus.HEALTHY
    if value >= threshold.critical:
        return HealthStatus.CRITICAL
    if value >= threshold.warning:
        return HealthStatus.WARNING
    return HealthStatus.HEALTHY


def _level_for(status: HealthStatus) -> Optional[AlertLevel]:
    if status == HealthStatus.CRITICAL:
        return AlertLevel.CRITICAL
    if status == HealthStatus.WARNING:
        return AlertLevel.WARNING
    return None


def _alert_id(source: SourceKind, metric: str, raised_at: datetime) -> str:
    digest = hashlib.sha1(f"{source.value}/{metric}@{raised_at.isoformat()}".encode()).hexdigest()
    return f"alert-{digest[:12]}"


class AlertManager:
    """Raises, escalates, acknowledges and resolves threshold alerts.

    Args:
        config: Alert section of ``AppConfig``.
        clock: Time source for acknowledgements.
    """

    def __init__(self, config: AlertConfig, clock: Clock = utcnow) -> None:
        self.config = config
        self.clock = clock
        self._lock = threading.Lock()
        self._alerts: dict[str, Alert] = {}
        self._open: dict[SeriesKey, str] = {}
        self._recovery: dict[str, int] = {}
        self._resolved: deque[str] = deque()

    def threshold_for(self, metric: str) -> Optional[MetricThreshold]:
        return self.config.thresholds.get(metric)

    def status_for(self, metric: str, value: float) -> HealthStatus:
        return classify_value(value, self.threshold_for(metric))

    # ── Evaluation ───────────────────────────────────────────────────────────

    def evaluate_cycle(self, points: Iterable[DataPoint], now: datetime) -> list[Alert]:
        """Evaluate one cycle's drained points; returns alerts that changed."""
        worst: dict[SeriesKey, DataPoint] = {}
        for point in points:
            if point.out_of_order or not point.is_finite:
                continue
            if self.threshold_for(point.metric) is None:
                continue
            current = worst.get(point.key)
            if current is None or self._is_worse(point, current):
                worst[point.key] = point

        changed: list[Alert] = []
        with self._lock:
            for key in sorted(worst, key=lambda k: (k[0].value, k[1])):
                alert = self._evaluate_locked(worst[key], now)
                if alert is not None:
                    changed.append(alert)
        return changed

    def _is_worse(self, candidate: DataPoint, current: DataPoint) -> bool:
        a = self.status_for(candidate.metric, candidate.value)
        b = self.status_for(current.metric, current.value)
        if a.severity != b.severity:
            return a.severity > b.severity
        threshold = self.threshold_for(candidate.metric)
        if threshold is not None and threshold.direction == "below":
            return candidate.value < current.value
        return candidate.value > current.value

    def _evaluate_locked(self, point: DataPoint, now: datetime) -> Optional[Alert]:
        threshold = self.threshold_for(point.metric)
        assert threshold is not None
        level = _level_for(classify_value(point.value, threshold))
        alert_id = self._open.get(point.key)

        if level is None:
            if alert_id is None:
                return None
            streak = self._recovery.get(alert_id, 0) + 1
            self._recovery[alert_id] = streak
            if streak < self.config.resolve_after_cycles:
                return None
            return self._resolve_locked(alert_id, now)

        limit = threshold.critical if level == AlertLevel.CRITICAL else threshold.warning
        if alert_id is None:
            alert = Alert(
                alert_id=_alert_id(point.source, point.metric, now),
                source=point.source,
                metric=point.metric,
                level=level,
                value=point.value,
                threshold=limit,
                message=self._message(point, level, limit, threshold.direction),
                raised_at=now,
                updated_at=now,
                module_access=point.module_access,
            )
            self._alerts[alert.alert_id] = alert
            self._open[point.key] = alert.alert_id
            self._recovery[alert.alert_id] = 0
            logger.warning("Alert raised | %s", alert.message)
            return alert

        current = self._alerts[alert_id]
        self._recovery[alert_id] = 0
        if level > current.level:
            logger.warning("Alert escalated | %s/%s → %s", point.source.value, point.metric, level.value)
            updated = current.model_copy(update={
                "level": level,
                "threshold": limit,
                "value": point.value,
                "message": self._message(point, level, limit, threshold.direction),
                "updated_at": now,
            })
        elif point.value != current.value:
            updated = current.model_copy(update={"value": point.value, "updated_at": now})
        else:
            return None
        self._alerts[alert_id] = updated
        return updated

    def _resolve_locked(self, alert_id: str, now: datetime) -> Alert:
        current = self._alerts[alert_id]
        resolved = current.model_copy(update={
            "state": AlertState.RESOLVED,
            "resolved_at": now,
            "updated_at": now,
        })
        self._alerts[alert_id] = resolved
        del self._open[(current.source, current.metric)]
        del self._recovery[alert_id]
        self._resolved.append(alert_id)
        while len(self._resolved) > _RESOLVED_HISTORY:
            self._alerts.pop(self._resolved.popleft(), None)
        logger.info("Alert resolved | %s/%s (%s)", current.source.value, current.metric, alert_id)
        return resolved

    @staticmethod
    def _message(point: DataPoint, level: AlertLevel, limit: float, direction: str) -> str:
        relation = "at or below" if direction == "below" else "at or above"
        return (
            f"{point.source.value}/{point.metric} is {point.value:g}, "
            f"{relation} {level.value} threshold {limit:g}"
        )

    # ── Operations ───────────────────────────────────────────────────────────

    def acknowledge(self, alert_id: str, actor: str, now: Optional[datetime] = None) -> Alert:
        """Acknowledge an open alert. Acknowledging twice is a no-op.

        Raises:
            UnknownAlertError: If no alert has ``alert_id``.
            AlertStateConflictError: If the alert is already resolved.
        """
        now = now or self.clock()
        with self._lock:
            current = self._alerts.get(alert_id)
            if current is None:
                raise UnknownAlertError(alert_id)
            if current.state == AlertState.RESOLVED:
                raise AlertStateConflictError(alert_id, current.state.value, "acknowledge")
            if current.state == AlertState.ACKNOWLEDGED:
                return current
            updated = current.model_copy(update={
                "state": AlertState.ACKNOWLEDGED,
                "acknowledged_at": now,
                "acknowledged_by": actor,
                "updated_at": now,
            })
            self._alerts[alert_id] = updated
        logger.info("Alert acknowledged | %s by %s", alert_id, actor)
        return updated

    def get(self, alert_id: str) -> Alert:
        with self._lock:
            alert = self._alerts.get(alert_id)
        if alert is None:
            raise UnknownAlertError(alert_id)
        return alert

    def active(self) -> list[Alert]:
        """Open alerts, most severe first, then oldest."""
        with self._lock:
            alerts = [self._alerts[i] for i in self._open.values()]
        return sorted(alerts, key=lambda a: (-a.level.rank, a.raised_at, a.alert_id))

    def all(self) -> list[Alert]:
        with self._lock:
            return sorted(self._alerts.values(), key=lambda a: (a.raised_at, a.alert_id))
