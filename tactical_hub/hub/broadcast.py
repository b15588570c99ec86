"""
Snapshot fan-out to subscribers.

The hub publishes each snapshot once; every subscription holds a one-slot
mailbox. A new snapshot replaces an undelivered one (drop-oldest), so a
slow subscriber only ever sees the most recent state and never queues.
RBAC filtering happens when the subscriber reads, not when the hub
publishes.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Iterator, Optional

from tactical_hub.hub.rbac import filter_snapshot, normalize_modules
from tactical_hub.models.snapshot import Snapshot

logger = logging.getLogger(__name__)


class SnapshotSubscription:
    """One subscriber's view of the snapshot stream.

    Iterating yields filtered snapshots until the subscription (or the hub)
    is closed.

    Attributes:
        caller_modules: RBAC modules applied on every read.
        cursor: Cycle number of the last snapshot delivered.
        dropped: Snapshots replaced before this subscriber read them.
    """

    def __init__(self, broadcaster: "SnapshotBroadcaster", caller_modules: Iterable[str]) -> None:
        self._broadcaster = broadcaster
        self.caller_modules = normalize_modules(caller_modules)
        self._cond = threading.Condition()
        self._slot: Optional[Snapshot] = None
        self._closed = False
        self.cursor = -1
        self.dropped = 0

    def _offer(self, snapshot: Snapshot) -> None:
        with self._cond:
            if self._closed:
                return
            if self._slot is not None:
                self.dropped += 1
            self._slot = snapshot
            self._cond.notify_all()

    def get(self, timeout: Optional[float] = None) -> Optional[Snapshot]:
        """Next snapshot, or ``None`` on timeout or once closed and empty."""
        with self._cond:
            if self._slot is None and not self._closed:
                self._cond.wait(timeout)
            snapshot, self._slot = self._slot, None
        if snapshot is None:
            return None
        self.cursor = snapshot.cycle
        return filter_snapshot(snapshot, self.caller_modules)

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        self._broadcaster._remove(self)

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[Snapshot]:
        while True:
            snapshot = self.get()
            if snapshot is None:
                if self._closed:
                    return
                continue
            yield snapshot

    def __enter__(self) -> "SnapshotSubscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class SnapshotBroadcaster:
    """Holds subscriptions and delivers published snapshots to each."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[SnapshotSubscription] = []

    def subscribe(
        self,
        caller_modules: Iterable[str],
        initial: Optional[Snapshot] = None,
    ) -> SnapshotSubscription:
        subscription = SnapshotSubscription(self, caller_modules)
        if initial is not None:
            subscription._offer(initial)
        with self._lock:
            self._subscriptions.append(subscription)
        logger.debug("Subscriber added (modules=%s)", sorted(subscription.caller_modules))
        return subscription

    def publish(self, snapshot: Snapshot) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription._offer(snapshot)

    def close_all(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.close()

    def _remove(self, subscription: SnapshotSubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)
