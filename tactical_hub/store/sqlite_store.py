"""
SQLite-backed ``Store``.

Each call opens a short-lived connection through ``get_connection()`` so
the aggregation thread and CLI readers never share a connection object.
Snapshot history is pruned to ``StoreConfig.memory_capacity`` rows on
every write, matching the in-memory store.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from tactical_hub.config import StoreConfig
from tactical_hub.models.alert import Alert
from tactical_hub.models.insight import Insight
from tactical_hub.models.snapshot import Snapshot
from tactical_hub.store.base import Store
from tactical_hub.store.connection import get_connection
from tactical_hub.store.repositories.snapshot_repo import (
    AlertRepository,
    InsightRepository,
    SnapshotRepository,
)
from tactical_hub.store.schema import apply_schema

logger = logging.getLogger(__name__)


class SqliteStore(Store):
    """Persists snapshots, insights and alerts to a SQLite file.

    Args:
        config: Connection settings (``wal_mode``, ``busy_timeout_ms``).
            ``memory_capacity`` doubles as the snapshot rows retained.
        db_path: Overrides ``config.db_path``.
    """

    def __init__(self, config: StoreConfig, db_path: Optional[str] = None) -> None:
        self.config = config
        self.db_path = db_path or config.db_path
        self.keep_snapshots = config.memory_capacity
        self.init_db()

    def _connect(self):
        return get_connection(self.config, self.db_path)

    def init_db(self) -> None:
        with self._connect() as conn:
            apply_schema(conn)

    def save_snapshot(self, snapshot: Snapshot) -> None:
        with self._connect() as conn:
            repo = SnapshotRepository(conn)
            repo.insert(snapshot)
            pruned = repo.prune(self.keep_snapshots)
        if pruned:
            logger.debug("Pruned %d old snapshots", pruned)

    def save_insights(self, insights: Iterable[Insight]) -> None:
        with self._connect() as conn:
            InsightRepository(conn).upsert_many(insights)

    def save_alert(self, alert: Alert) -> None:
        with self._connect() as conn:
            AlertRepository(conn).upsert(alert)

    def load_latest_snapshot(self) -> Optional[Snapshot]:
        with self._connect() as conn:
            return SnapshotRepository(conn).get_latest()

    def load_insights(self, surfaced_only: bool = False) -> list[Insight]:
        with self._connect() as conn:
            return InsightRepository(conn).get_all(surfaced_only)

    def load_open_alerts(self) -> list[Alert]:
        with self._connect() as conn:
            return AlertRepository(conn).get_open()
