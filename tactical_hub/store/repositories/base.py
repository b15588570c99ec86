"""
Base repository for the store tables.

Every table keeps the full Pydantic dump in a ``payload`` JSON column next
to a few plain columns used for filtering and ordering. ``dump_payload``
and ``load_payload`` are the only places that cross that boundary.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Any, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
Params = Sequence[Any] | dict[str, Any]

PAYLOAD_COLUMN = "payload"


def dump_payload(model: BaseModel) -> str:
    """JSON text for the ``payload`` column."""
    return model.model_dump_json()


def load_payload(model_cls: Type[M], row: sqlite3.Row, column: str = PAYLOAD_COLUMN) -> M:
    """Re-validate a ``payload`` column into ``model_cls``."""
    return model_cls.model_validate_json(row[column])


def iso(value: datetime) -> str:
    """Timestamp column text; ISO-8601 sorts chronologically for UTC values."""
    return value.isoformat()


class BaseRepository:
    """SQL helpers shared by the snapshot, insight and alert repositories."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        logger.debug("SQL: %s | params: %d", " ".join(sql.split()), len(params))
        return self.conn.execute(sql, params)

    def executemany(self, sql: str, rows: list[Params]) -> sqlite3.Cursor:
        logger.debug("SQL (many): %s | rows: %d", " ".join(sql.split()), len(rows))
        return self.conn.executemany(sql, rows)

    def fetchone(self, sql: str, params: Params = ()) -> Optional[sqlite3.Row]:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()

    def fetch_model(self, model_cls: Type[M], sql: str, params: Params = ()) -> Optional[M]:
        """First row's payload as ``model_cls``, or ``None``."""
        row = self.fetchone(sql, params)
        return load_payload(model_cls, row) if row is not None else None

    def fetch_models(self, model_cls: Type[M], sql: str, params: Params = ()) -> list[M]:
        return [load_payload(model_cls, row) for row in self.fetchall(sql, params)]
