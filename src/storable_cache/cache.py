"""StorableCache: the public facade over one storage backend.

The facade applies default lifetime/savetime values and converts every
per-operation failure into a safe result, so that a corrupt or missing
entry looks like an ordinary cache miss.
"""

import logging
from types import TracebackType
from typing import Any

from storable_cache.backends.base import CacheStorage
from storable_cache.backends.files import FilesStorage
from storable_cache.backends.memory import MemoryStorage
from storable_cache.backends.sql import SqlStorage
from storable_cache.backends.sqlite import SqliteStorage
from storable_cache.config import CacheConfig, StorageType
from storable_cache.exceptions import (
    BadPacketError,
    InvalidKeyError,
    StorageNotSupportedError,
)
from storable_cache.packet import Packet

logger = logging.getLogger(__name__)


def create_storage(config: CacheConfig, engine: Any | None = None) -> CacheStorage:
    """Instantiate the backend selected by ``config.cache_type``.

    Args:
        config: Cache configuration.
        engine: SQLAlchemy engine or connection, required by the SQL storage.

    Raises:
        StorageNotSupportedError: Unknown storage type or missing driver.
        StorageConnectError: The backend cannot be reached or initialized.
    """
    try:
        storage_type = StorageType(config.cache_type)
    except ValueError:
        raise StorageNotSupportedError(
            f"Storage type {config.cache_type!r} is not supported"
        ) from None

    logger.debug(f"Creating {storage_type.value} storage")

    if storage_type in (StorageType.ARRAY, StorageType.MEMORY):
        return MemoryStorage()

    if storage_type is StorageType.FILES:
        return FilesStorage(config.cache_dir)

    if storage_type in (StorageType.SQL, StorageType.MYSQL):
        return SqlStorage(engine, config.sql)

    if storage_type is StorageType.SQLITE:
        return SqliteStorage(config.sqlite)

    if storage_type is StorageType.REDIS:
        from storable_cache.backends.redis import RedisStorage

        return RedisStorage(
            host=config.redis_host,
            port=config.redis_port,
            db=config.redis_db,
            password=config.redis_password,
            prefix=config.redis_prefix,
        )

    if storage_type is StorageType.MEMCACHED:
        from storable_cache.backends.memcached import MemcachedStorage

        return MemcachedStorage(
            host=config.memcached_host,
            port=config.memcached_port,
            prefix=config.memcached_prefix,
        )

    raise StorageNotSupportedError(f"Storage type {storage_type.value!r} is not supported")


class StorableCache:
    """Key/value cache with expired-but-present semantics.

    Every entry has a ``lifetime`` (after which ``expired`` reports True but
    the value is still returned) and a ``savetime`` (after which the entry
    may be removed by ``delete_outdated``).

    Example:
        ```python
        cache = StorableCache(CacheConfig(cache_type="sqlite"))
        cache.set("rates", payload, lifetime=60, savetime=86400)

        if cache.expired("rates"):
            try:
                payload = fetch_rates()
                cache.set("rates", payload, lifetime=60, savetime=86400)
            except UpstreamError:
                payload = cache.get("rates")  # stale but usable
        ```

    Args:
        config: Selects and configures the backend. Defaults to memory.
        engine: SQLAlchemy engine for the SQL storage type.

    Raises:
        StorageNotSupportedError: Unknown storage type or missing driver.
        StorageConnectError: The backend cannot be reached or initialized.
    """

    def __init__(self, config: CacheConfig | None = None, engine: Any | None = None):
        self.config = config or CacheConfig()
        self._storage = create_storage(self.config, engine)
        logger.debug(
            f"Initialized storable cache (storage={type(self._storage).__name__}, "
            f"lifetime={self.default_lifetime}s, savetime={self.default_savetime}s)"
        )

    @classmethod
    def from_storage(
        cls, storage: CacheStorage, config: CacheConfig | None = None
    ) -> "StorableCache":
        """Wrap an already constructed storage."""
        cache = cls.__new__(cls)
        cache.config = config or CacheConfig()
        cache._storage = storage
        return cache

    @property
    def storage(self) -> CacheStorage:
        """The backend this cache dispatches to."""
        return self._storage

    @property
    def default_lifetime(self) -> int:
        return self.config.default_lifetime

    @property
    def default_savetime(self) -> int:
        return self.config.default_savetime

    def has(self, key: str) -> bool:
        """Check if a readable entry exists for key."""
        return self._storage.has(key)

    def get(self, key: str, default: str = "") -> str:
        """Return the cached value, or ``default`` on a miss or corrupt entry.

        Expired values are still returned; check ``expired`` to tell them
        apart from fresh ones.
        """
        try:
            return self._storage.get(key)
        except BadPacketError as e:
            logger.debug(f"Cache miss for {key!r}: {e}")
            return default

    def get_packet(self, key: str) -> Packet | None:
        """Return the stored packet, or None on a miss or corrupt entry."""
        try:
            return self._storage.get_packet(key)
        except BadPacketError:
            return None

    def set(
        self,
        key: str,
        value: str,
        lifetime: int | None = None,
        savetime: int | None = None,
    ) -> bool:
        """Store value under key.

        ``None`` or negative ``lifetime``/``savetime`` fall back to the
        configured defaults (3 s and 3600 s unless overridden).

        Raises:
            InvalidKeyError: If key is empty.
        """
        if not key:
            raise InvalidKeyError("Cache key must not be empty")
        if lifetime is None or lifetime < 0:
            lifetime = self.default_lifetime
        if savetime is None or savetime < 0:
            savetime = self.default_savetime

        return self._storage.set(key, value, lifetime, savetime)

    def expired(self, key: str) -> bool:
        """Check whether the entry's lifetime elapsed.

        Missing or unreadable entries count as expired.
        """
        try:
            return self._storage.expired(key)
        except BadPacketError:
            return True

    def delete(self, key: str) -> bool:
        """Remove key. Missing keys are not an error."""
        return self._storage.delete(key)

    def delete_outdated(self) -> bool:
        """Remove entries whose savetime elapsed, and unreadable ones."""
        return self._storage.delete_outdated()

    def clear(self) -> bool:
        """Remove every entry."""
        return self._storage.clear()

    def close(self) -> None:
        """Close the backend."""
        self._storage.close()

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __enter__(self) -> "StorableCache":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

