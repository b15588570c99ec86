"""
Typed error taxonomy for the tactical analytics hub.

Propagation rules:
  - ``SourceUnavailableError`` is raised by connectors and contained by the
    hub's connector workers (the source is marked degraded and retried with
    backoff). It never aborts an aggregation cycle.
  - ``InsufficientDataError`` is a legitimate result for cold metrics; the
    ``predict`` operation raises it instead of fabricating a forecast.
  - ``InvalidConfigurationError`` is raised by ``load_config()`` /
    ``build_config()``; it is fatal only to the configuration being loaded.
  - ``AlertStateConflictError`` signals an invalid alert transition.
"""

from __future__ import annotations

from typing import Optional


class TacticalHubError(Exception):
    """Base class for all errors raised by ``tactical_hub``."""


class SourceUnavailableError(TacticalHubError):
    """A connector could not reach its upstream source."""

    def __init__(self, source_name: str, reason: str) -> None:
        self.source_name = source_name
        self.reason = reason
        super().__init__(f"Source '{source_name}' unavailable: {reason}")


class InsufficientDataError(TacticalHubError):
    """Not enough clean samples to fit or serve a model."""

    def __init__(
        self,
        metric: str,
        sample_count: int,
        required: int,
        source: Optional[str] = None,
    ) -> None:
        self.metric = metric
        self.sample_count = sample_count
        self.required = required
        self.source = source
        where = f"{source}/{metric}" if source else metric
        super().__init__(
            f"Insufficient data for '{where}': {sample_count} samples, "
            f"{required} required."
        )


class InvalidConfigurationError(TacticalHubError, ValueError):
    """Configuration failed validation."""


class AlertStateConflictError(TacticalHubError):
    """An alert transition was requested from a state that forbids it."""

    def __init__(self, alert_id: str, state: str, attempted: str) -> None:
        self.alert_id = alert_id
        self.state = state
        self.attempted = attempted
        super().__init__(
            f"Alert '{alert_id}' is {state}; cannot {attempted}."
        )


class UnknownAlertError(TacticalHubError, KeyError):
    """No alert exists with the requested id."""

    def __init__(self, alert_id: str) -> None:
        self.alert_id = alert_id
        super().__init__(alert_id)

    def __str__(self) -> str:
        return f"Unknown alert '{self.alert_id}'"


class HubStateError(TacticalHubError):
    """A lifecycle operation is not valid in the hub's current state."""
