"""Aggregation hub: buffering, alerting, RBAC and snapshot fan-out."""

from tactical_hub.hub.aggregator import AggregationHub, HubAck

__all__ = ["AggregationHub", "HubAck"]
