"""
Connector worker threads.

One ``ConnectorWorker`` per polling connector. Each poll either hands the
pulled points to the connector's inbox or records a failure in the
connector's ``ConnectorHealth``; while a backoff window is pending the
worker skips the pull. A failure never propagates past the worker.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Optional

from tactical_hub.errors import SourceUnavailableError
from tactical_hub.hub.buffer import SourceInbox
from tactical_hub.ingestion.base import PollingConnector
from tactical_hub.ingestion.health import ConnectorHealth
from tactical_hub.utils.time_utils import Clock, utcnow

logger = logging.getLogger(__name__)


class ConnectorWorker:
    """Polls one connector on its interval in a daemon thread."""

    def __init__(
        self,
        connector: PollingConnector,
        inbox: SourceInbox,
        health: ConnectorHealth,
        interval_ms: int,
        clock: Clock = utcnow,
    ) -> None:
        self.connector = connector
        self.inbox = inbox
        self.health = health
        self.interval_ms = connector.poll_interval_ms or interval_ms
        self.clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def poll_once(self, now: Optional[datetime] = None) -> int:
        """Pull once unless backing off; returns points handed to the inbox."""
        now = now or self.clock()
        if not self.health.ready(now):
            return 0
        try:
            points = self.connector.pull()
        except SourceUnavailableError as exc:
            self.health.record_failure(now, exc)
            return 0
        except Exception as exc:
            logger.error("%s: unexpected pull failure: %s", self.connector.name, exc)
            self.health.record_failure(now, exc)
            return 0
        self.health.record_success(now)
        return self.inbox.offer(points)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"connector-{self.connector.name}", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        interval = self.interval_ms / 1000.0
        logger.info("%s: worker started (every %.1fs)", self.connector.name, interval)
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(interval)
        logger.info("%s: worker stopped", self.connector.name)

    def signal_stop(self) -> None:
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the thread; returns False if it is still running."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
