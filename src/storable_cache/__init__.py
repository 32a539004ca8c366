"""storable-cache: key/value caching with expired-but-present entries.

This library provides:
- A uniform cache interface over memory, files, SQL, SQLite, Redis and
  Memcached storage
- Two time horizons per entry: lifetime (expired, still readable) and
  savetime (eligible for deletion)
- Fail-safe reads: corrupt or missing entries look like ordinary misses
"""

from storable_cache.backends.base import BaseStorage, CacheStorage, storage_name
from storable_cache.backends.files import FilesStorage
from storable_cache.backends.memory import MemoryStorage
from storable_cache.backends.sql import SqlStorage
from storable_cache.backends.sqlite import SqliteStorage
from storable_cache.cache import StorableCache, create_storage
from storable_cache.config import (
    DEFAULT_LIFETIME,
    DEFAULT_SAVETIME,
    CacheConfig,
    SqliteSettings,
    SqlSettings,
    StorageType,
)
from storable_cache.exceptions import (
    BadPacketError,
    InvalidKeyError,
    StorableCacheError,
    StorageConnectError,
    StorageNotSupportedError,
)
from storable_cache.packet import Packet

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_LIFETIME",
    "DEFAULT_SAVETIME",
    "BadPacketError",
    "BaseStorage",
    "CacheConfig",
    "CacheStorage",
    "FilesStorage",
    "InvalidKeyError",
    "MemoryStorage",
    "Packet",
    "SqlSettings",
    "SqlStorage",
    "SqliteSettings",
    "SqliteStorage",
    "StorableCache",
    "StorableCacheError",
    "StorageConnectError",
    "StorageNotSupportedError",
    "StorageType",
    "__version__",
    "create_storage",
    "storage_name",
]
