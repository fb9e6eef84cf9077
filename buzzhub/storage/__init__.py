"""Storage layer - SQLAlchemy and in-memory implementations."""

from buzzhub.storage.base import StorageBackend
from buzzhub.storage.memory import InMemoryStorage
from buzzhub.storage.sql import SQLStorage

__all__ = ["StorageBackend", "InMemoryStorage", "SQLStorage"]
