"""
Repositories for snapshots, insights and alerts.

Each row stores the model's JSON dump in ``payload`` plus the columns the
CLI filters on; reads re-validate the payload into the Pydantic model.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from tactical_hub.models.alert import Alert
from tactical_hub.models.insight import Insight
from tactical_hub.models.snapshot import Snapshot
from tactical_hub.store.repositories.base import BaseRepository, dump_payload, iso
from tactical_hub.taxonomy.recommendation_taxonomy import AlertState

logger = logging.getLogger(__name__)


class SnapshotRepository(BaseRepository):
    """Append-only history of published snapshots."""

    def insert(self, snapshot: Snapshot) -> None:
        self.execute(
            """
            INSERT INTO snapshots (
                snapshot_id, cycle, generated_at, hub_state, overall_status, payload
            ) VALUES (?, ?, ?, ?, ?, ?);
            """,
            (
                snapshot.snapshot_id,
                snapshot.cycle,
                iso(snapshot.generated_at),
                snapshot.hub_state.value,
                snapshot.overall_status.value,
                dump_payload(snapshot),
            ),
        )

    def get_latest(self) -> Optional[Snapshot]:
        return self.fetch_model(
            Snapshot, "SELECT payload FROM snapshots ORDER BY snapshot_row DESC LIMIT 1;"
        )

    def count(self) -> int:
        row = self.fetchone("SELECT COUNT(*) AS n FROM snapshots;")
        return int(row["n"]) if row is not None else 0

    def prune(self, keep: int) -> int:
        """Delete all but the newest ``keep`` snapshots; returns rows deleted."""
        cursor = self.execute(
            """
            DELETE FROM snapshots WHERE snapshot_row NOT IN (
                SELECT snapshot_row FROM snapshots ORDER BY snapshot_row DESC LIMIT ?
            );
            """,
            (keep,),
        )
        return cursor.rowcount


class InsightRepository(BaseRepository):
    """Latest state of every derived insight, surfaced or not."""

    def upsert_many(self, insights: Iterable[Insight]) -> int:
        rows = [
            (
                i.insight_id,
                i.kind.value,
                i.category.value,
                i.confidence_score,
                i.impact_score,
                int(i.surfaced),
                iso(i.discovered_at),
                dump_payload(i),
            )
            for i in insights
        ]
        if not rows:
            return 0
        self.executemany(
            """
            INSERT INTO insights (
                insight_id, kind, category, confidence_score, impact_score,
                surfaced, discovered_at, payload
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(insight_id) DO UPDATE SET
                confidence_score = excluded.confidence_score,
                impact_score     = excluded.impact_score,
                surfaced         = excluded.surfaced,
                discovered_at    = excluded.discovered_at,
                payload          = excluded.payload;
            """,
            rows,
        )
        return len(rows)

    def get_all(self, surfaced_only: bool = False) -> list[Insight]:
        sql = "SELECT payload FROM insights"
        if surfaced_only:
            sql += " WHERE surfaced = 1"
        sql += " ORDER BY impact_score DESC, confidence_score DESC, insight_id;"
        return self.fetch_models(Insight, sql)


class AlertRepository(BaseRepository):
    """Latest state of every alert."""

    def upsert(self, alert: Alert) -> None:
        self.execute(
            """
            INSERT INTO alerts (
                alert_id, source, metric, level, state, raised_at, updated_at, payload
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(alert_id) DO UPDATE SET
                level      = excluded.level,
                state      = excluded.state,
                updated_at = excluded.updated_at,
                payload    = excluded.payload;
            """,
            (
                alert.alert_id,
                alert.source.value,
                alert.metric,
                alert.level.value,
                alert.state.value,
                iso(alert.raised_at),
                iso(alert.updated_at),
                dump_payload(alert),
            ),
        )

    def get(self, alert_id: str) -> Optional[Alert]:
        return self.fetch_model(Alert, "SELECT payload FROM alerts WHERE alert_id = ?;", (alert_id,))

    def get_open(self) -> list[Alert]:
        return self.fetch_models(
            Alert,
            "SELECT payload FROM alerts WHERE state != ? ORDER BY raised_at, alert_id;",
            (AlertState.RESOLVED.value,),
        )
