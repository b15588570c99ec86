"""Persistence collaborators: in-memory and SQLite stores."""

from __future__ import annotations

from tactical_hub.config import StoreConfig
from tactical_hub.store.base import MemoryStore, Store
from tactical_hub.store.sqlite_store import SqliteStore


def build_store(config: StoreConfig) -> Store:
    """Construct the store selected by ``config.backend``."""
    if config.backend == "sqlite":
        return SqliteStore(config)
    return MemoryStore(config.memory_capacity)


__all__ = ["MemoryStore", "SqliteStore", "Store", "build_store"]
