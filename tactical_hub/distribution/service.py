"""
Transport-agnostic distribution layer over an ``AggregationHub``.

Every method returns a JSON-ready ``dict``. Typed hub errors become error
payloads instead of exceptions so an HTTP/SSE/WebSocket adapter can map
them to status codes without knowing the hub's exception classes::

    {"error": "insufficient_data", "message": "...", "metric": "revenue",
     "sample_count": 3, "required": 10}

Error codes:
    insufficient_data     InsufficientDataError
    unknown_alert         UnknownAlertError
    alert_state_conflict  AlertStateConflictError
    hub_state             HubStateError
    invalid_request       ValueError (bad horizon, filter values, period or dates)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Iterable, Iterator, Optional

from pydantic import ValidationError

from tactical_hub.errors import (
    AlertStateConflictError,
    HubStateError,
    InsufficientDataError,
    UnknownAlertError,
)
from tactical_hub.hub.aggregator import AggregationHub, HubAck
from tactical_hub.models.recommendation import RecommendationContext, RecommendationFilters
from tactical_hub.recommendations.engine import summarize
from tactical_hub.utils.time_utils import parse_timestamp

logger = logging.getLogger(__name__)

Payload = dict[str, Any]


def error_payload(exc: Exception) -> Payload:
    """Map a hub error to ``{"error": <code>, "message": ...}``."""
    if isinstance(exc, InsufficientDataError):
        return {
            "error": "insufficient_data",
            "message": str(exc),
            "metric": exc.metric,
            "source": exc.source,
            "sample_count": exc.sample_count,
            "required": exc.required,
        }
    if isinstance(exc, UnknownAlertError):
        return {"error": "unknown_alert", "message": str(exc), "alert_id": exc.alert_id}
    if isinstance(exc, AlertStateConflictError):
        return {
            "error": "alert_state_conflict",
            "message": str(exc),
            "alert_id": exc.alert_id,
            "state": exc.state,
        }
    if isinstance(exc, HubStateError):
        return {"error": "hub_state", "message": str(exc)}
    if isinstance(exc, ValueError):
        return {"error": "invalid_request", "message": str(exc)}
    raise exc


def _ack_payload(ack: HubAck) -> Payload:
    return {"state": ack.state.value, "changed": ack.changed, "message": ack.message}


class DashboardService:
    """Pull and push access to one hub, returning JSON-ready payloads."""

    def __init__(self, hub: AggregationHub) -> None:
        self.hub = hub

    def get_snapshot(self, caller_modules: Iterable[str]) -> Payload:
        return self.hub.get_snapshot(caller_modules).model_dump(mode="json")

    def stream_snapshots(
        self,
        caller_modules: Iterable[str],
        timeout: Optional[float] = None,
    ) -> Iterator[Payload]:
        """Yield filtered snapshot payloads until the hub stops or ``timeout``
        passes without a new snapshot."""
        with self.hub.stream_snapshots(caller_modules) as subscription:
            while True:
                snapshot = subscription.get(timeout)
                if snapshot is None:
                    return
                yield snapshot.model_dump(mode="json")

    def get_active_alerts(self) -> Payload:
        alerts = self.hub.get_active_alerts()
        return {"alerts": [a.model_dump(mode="json") for a in alerts], "count": len(alerts)}

    def acknowledge_alert(self, alert_id: str, actor: str) -> Payload:
        try:
            return self.hub.acknowledge_alert(alert_id, actor).model_dump(mode="json")
        except (UnknownAlertError, AlertStateConflictError) as exc:
            logger.info("Acknowledge rejected: %s", exc)
            return error_payload(exc)

    def force_aggregation(self) -> Payload:
        try:
            return self.hub.force_aggregation().model_dump(mode="json")
        except HubStateError as exc:
            return error_payload(exc)

    def predict(self, metric: str, horizon: Optional[int] = None, source: Optional[str] = None) -> Payload:
        try:
            return self.hub.predict(metric, horizon, source).model_dump(mode="json")
        except (InsufficientDataError, ValueError) as exc:
            return error_payload(exc)

    def generate_insights(self, window_ms: Optional[int] = None) -> Payload:
        window = timedelta(milliseconds=window_ms) if window_ms else None
        insights = self.hub.generate_insights(window)
        return {"insights": [i.model_dump(mode="json") for i in insights], "count": len(insights)}

    def aggregate_history(
        self,
        period: str,
        caller_modules: Iterable[str],
        start: Optional[str] = None,
        end: Optional[str] = None,
        categories: Optional[Iterable[str]] = None,
        sources: Optional[Iterable[str]] = None,
    ) -> Payload:
        """Visible buffered history bucketed by ``day``, ``week`` or ``month``.

        ``start`` / ``end`` accept anything ``parse_timestamp`` does.
        """
        try:
            grouped = self.hub.aggregate_history(
                period,
                start=parse_timestamp(start) if start is not None else None,
                end=parse_timestamp(end) if end is not None else None,
                categories=categories,
                sources=sources,
                caller_modules=caller_modules,
            )
        except ValueError as exc:
            return error_payload(exc)
        return {
            "period": period,
            "buckets": {
                key: [a.model_dump(mode="json") for a in aggregates]
                for key, aggregates in grouped.items()
            },
            "count": len(grouped),
        }

    def generate_recommendations(
        self,
        context: Optional[dict[str, Any]] = None,
        filters: Optional[dict[str, Any]] = None,
    ) -> Payload:
        """Recommendations plus their derived summary.

        ``context`` and ``filters`` are plain dicts validated into
        ``RecommendationContext`` / ``RecommendationFilters``.
        """
        try:
            ctx = RecommendationContext.model_validate(context) if context else None
            flt = RecommendationFilters.model_validate(filters) if filters else None
        except ValidationError as exc:
            return {"error": "invalid_request", "message": str(exc)}
        recs = self.hub.generate_recommendations(ctx, flt)
        return {
            "recommendations": [r.model_dump(mode="json") for r in recs],
            "summary": summarize(recs).model_dump(mode="json"),
        }

    def start_hub(self, run_workers: bool = True) -> Payload:
        try:
            return _ack_payload(self.hub.start(run_workers))
        except HubStateError as exc:
            return error_payload(exc)

    def stop_hub(self, emergency: bool = False) -> Payload:
        ack = self.hub.emergency_stop() if emergency else self.hub.stop()
        return _ack_payload(ack)
