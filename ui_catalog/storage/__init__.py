"""Storage layer: PostgreSQL connection pool."""

from ui_catalog.storage.database import Database

__all__ = ["Database"]
