"""Storage backend implementations.

This module provides the storage protocol and one implementation per
supported medium. Redis and Memcached backends are imported lazily by the
factory so that their client packages stay optional at runtime.

Exports:
    CacheStorage: Protocol defining the storage interface.
    BaseStorage: Abstract base class with the derived read operations.
    MemoryStorage: Thread-safe in-memory storage.
    FilesStorage: One file per entry with advisory write locks.
    SqlStorage: SQL table reached through a SQLAlchemy engine.
    SqliteStorage: SQLite table on its own sqlite3 connection.
    storage_name: Key to file-name policy.
"""

from storable_cache.backends.base import BaseStorage, CacheStorage, storage_name
from storable_cache.backends.files import FilesStorage
from storable_cache.backends.memory import MemoryStorage
from storable_cache.backends.sql import SqlStorage
from storable_cache.backends.sqlite import SqliteStorage

__all__ = [
    "BaseStorage",
    "CacheStorage",
    "FilesStorage",
    "MemoryStorage",
    "SqlStorage",
    "SqliteStorage",
    "storage_name",
]
