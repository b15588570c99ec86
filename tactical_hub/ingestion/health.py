"""
Connector health tracking with capped retry backoff.

Each connector worker owns one ``ConnectorHealth``. After
``failure_threshold`` consecutive failures the connector is *degraded*;
every failure schedules the next attempt using the configured backoff
strategy, capped at ``max_seconds``. One success resets everything.

Backoff strategies (attempt n = consecutive failures so far):
    exponential : base * 2^(n-1)
    linear      : base * n
    fixed       : base
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from tactical_hub.config import BackoffConfig
from tactical_hub.models.snapshot import SourceState, SourceStatus
from tactical_hub.taxonomy.metric_taxonomy import SourceKind

logger = logging.getLogger(__name__)


def compute_backoff_seconds(backoff: BackoffConfig, attempt: int) -> float:
    """Delay before retry number ``attempt`` (1-based), capped."""
    if attempt <= 0:
        return 0.0
    if backoff.strategy == "exponential":
        delay = backoff.base_seconds * (2 ** min(attempt - 1, 32))
    elif backoff.strategy == "linear":
        delay = backoff.base_seconds * attempt
    elif backoff.strategy == "fixed":
        delay = backoff.base_seconds
    else:
        raise ValueError(f"Unknown backoff strategy '{backoff.strategy}'.")
    return min(delay, backoff.max_seconds)


@dataclass
class ConnectorHealth:
    """Mutable health record for one connector, safe to read across threads."""

    name: str
    source: SourceKind
    failure_threshold: int
    backoff: BackoffConfig
    consecutive_failures: int = 0
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    last_error: Optional[str] = None
    next_attempt_at: Optional[datetime] = None
    stopped: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def degraded(self) -> bool:
        return self.consecutive_failures >= self.failure_threshold

    def ready(self, now: datetime) -> bool:
        """True when no backoff window is pending at ``now``."""
        with self._lock:
            return self.next_attempt_at is None or now >= self.next_attempt_at

    def record_success(self, now: datetime) -> None:
        with self._lock:
            if self.consecutive_failures >= self.failure_threshold:
                logger.info("%s recovered after %d failures", self.name, self.consecutive_failures)
            self.consecutive_failures = 0
            self.last_success_at = now
            self.last_error = None
            self.next_attempt_at = None

    def record_failure(self, now: datetime, error: Exception | str) -> None:
        with self._lock:
            self.consecutive_failures += 1
            self.last_failure_at = now
            self.last_error = str(error)
            delay = compute_backoff_seconds(self.backoff, self.consecutive_failures)
            self.next_attempt_at = now + timedelta(seconds=delay)
            failures = self.consecutive_failures
        if failures == self.failure_threshold:
            logger.warning(
                "%s degraded after %d consecutive failures: %s", self.name, failures, error
            )
        else:
            logger.debug("%s failure #%d, retry in %.1fs: %s", self.name, failures, delay, error)

    def to_status(self) -> SourceStatus:
        with self._lock:
            if self.stopped:
                state = SourceState.STOPPED
            elif self.consecutive_failures >= self.failure_threshold:
                state = SourceState.DEGRADED
            else:
                state = SourceState.HEALTHY
            return SourceStatus(
                name=self.name,
                source=self.source,
                state=state,
                consecutive_failures=self.consecutive_failures,
                last_success_at=self.last_success_at,
                last_error=self.last_error,
                next_attempt_at=self.next_attempt_at,
            )
