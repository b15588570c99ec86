"""
Alert model.

Alerts are frozen; the ``AlertManager`` replaces an alert with an updated
copy on every transition, under its lock.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from tactical_hub.taxonomy.metric_taxonomy import SourceKind
from tactical_hub.taxonomy.recommendation_taxonomy import AlertLevel, AlertState


class Alert(BaseModel):
    """A threshold breach on one (source, metric).

    Attributes:
        alert_id: Unique id.
        level: Current severity; escalates while the breach worsens.
        value: Most recent breaching value.
        threshold: Level that ``value`` crossed.
        raised_at: When the alert was first raised.
        state: ``active`` → ``acknowledged`` → ``resolved``.
        acknowledged_by: Actor that acknowledged it, if any.
    """

    model_config = ConfigDict(frozen=True)

    alert_id: str
    source: SourceKind
    metric: str
    level: AlertLevel
    value: float
    threshold: float
    message: str
    raised_at: datetime
    updated_at: datetime
    state: AlertState = AlertState.ACTIVE
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    module_access: frozenset[str] = frozenset()

    @property
    def is_open(self) -> bool:
        return self.state != AlertState.RESOLVED
