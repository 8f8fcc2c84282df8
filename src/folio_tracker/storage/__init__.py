"""Holdings persistence."""

from folio_tracker.storage.store import HoldingStore, SqliteHoldingStore, create_store

__all__ = ["HoldingStore", "SqliteHoldingStore", "create_store"]
