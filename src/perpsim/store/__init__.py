"""Durable store layer: the contract the ledger writes through, plus
in-memory and SQLite implementations."""

from perpsim.config import StoreSettings
from perpsim.store.base import DurableStore
from perpsim.store.memory import InMemoryStore
from perpsim.store.sqlite import SqliteStore


def create_store(settings: StoreSettings) -> DurableStore:
    """Build the store selected by ``settings.backend``."""
    if settings.backend == "sqlite":
        return SqliteStore(settings.db_path)
    return InMemoryStore()


__all__ = ["DurableStore", "InMemoryStore", "SqliteStore", "create_store"]
