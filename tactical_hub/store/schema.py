"""
SQLite schema DDL for the persisted hub state.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is idempotent.

Tables:
  1. snapshots  (one row per published snapshot, JSON payload)
  2. insights   (latest state per insight id, JSON payload)
  3. alerts     (latest state per alert id, JSON payload)
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

_DDL_SNAPSHOTS = """
CREATE TABLE IF NOT EXISTS snapshots (
    snapshot_row    INTEGER PRIMARY KEY AUTOINCREMENT,
    snapshot_id     TEXT    NOT NULL,
    cycle           INTEGER NOT NULL,
    generated_at    TEXT    NOT NULL,
    hub_state       TEXT    NOT NULL,
    overall_status  TEXT    NOT NULL,
    payload         TEXT    NOT NULL,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_snapshots_generated ON snapshots(generated_at);
"""

_DDL_INSIGHTS = """
CREATE TABLE IF NOT EXISTS insights (
    insight_id        TEXT    PRIMARY KEY,
    kind              TEXT    NOT NULL,
    category          TEXT    NOT NULL,
    confidence_score  REAL    NOT NULL,
    impact_score      REAL    NOT NULL,
    surfaced          INTEGER NOT NULL,
    discovered_at     TEXT    NOT NULL,
    payload           TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_insights_discovered ON insights(discovered_at);
"""

_DDL_ALERTS = """
CREATE TABLE IF NOT EXISTS alerts (
    alert_id    TEXT    PRIMARY KEY,
    source      TEXT    NOT NULL,
    metric      TEXT    NOT NULL,
    level       TEXT    NOT NULL,
    state       TEXT    NOT NULL,
    raised_at   TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL,
    payload     TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_alerts_state ON alerts(state);
"""

_ALL_DDL = [_DDL_SNAPSHOTS, _DDL_INSIGHTS, _DDL_ALERTS]

ALL_TABLE_NAMES = ["snapshots", "insights", "alerts"]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``. Idempotent."""
    logger.debug("Applying schema to database...")
    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)
    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return table names present in the database, sorted."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
