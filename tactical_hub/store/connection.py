"""
SQLite connections for the snapshot / insight / alert store.

``get_connection()`` reads its settings from ``StoreConfig``:
  - ``wal_mode`` switches the journal to WAL so CLI readers do not block
    the aggregation thread's writes.
  - ``busy_timeout_ms`` bounds how long a writer waits on a locked file.
  - ``db_path`` may be overridden per call (``init-db --db-path``).

Rows come back as ``sqlite3.Row``. The transaction commits on clean exit
and rolls back on exception.

Usage::

    from tactical_hub.store.connection import get_connection

    with get_connection(config.store) as conn:
        conn.execute("SELECT payload FROM snapshots ...")
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from tactical_hub.config import StoreConfig

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"


@contextmanager
def get_connection(
    config: StoreConfig,
    db_path: Optional[str] = None,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager yielding a store connection configured from ``config``.

    Args:
        config: Store settings; ``wal_mode`` and ``busy_timeout_ms`` apply
            to every connection.
        db_path: Overrides ``config.db_path``. Parent directories of a
            file path are created.

    Raises:
        sqlite3.OperationalError: If the file cannot be opened, or stays
            locked past ``busy_timeout_ms``.
    """
    path = db_path or config.db_path
    if path != IN_MEMORY:
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path, timeout=config.busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row

    try:
        conn.execute(f"PRAGMA busy_timeout = {int(config.busy_timeout_ms)};")
        if config.wal_mode and path != IN_MEMORY:
            mode = conn.execute("PRAGMA journal_mode = WAL;").fetchone()[0]
            if mode != "wal":
                logger.warning("WAL requested for %s but journal_mode is %s", path, mode)

        yield conn
        conn.commit()

    except Exception:
        conn.rollback()
        raise

    finally:
        conn.close()
