"""Store implementations."""

from .base import Store
from .sqlite_store import DEFAULT_BATCH_SIZE, SQLiteStore

__all__ = ["DEFAULT_BATCH_SIZE", "Store", "SQLiteStore"]
