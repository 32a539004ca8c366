"""Redis backend.

Entries are serialized packets stored under a key prefix. ``savetime`` is
passed to Redis as the key's TTL, so Redis itself drops outdated entries;
``delete_outdated`` only has to sweep what native expiry left behind.
"""

import logging
from typing import Any

from storable_cache.backends.base import BaseStorage
from storable_cache.exceptions import (
    BadPacketError,
    StorageConnectError,
    StorageNotSupportedError,
)
from storable_cache.packet import Packet

logger = logging.getLogger(__name__)

try:
    import redis
except ImportError:  # pragma: no cover - depends on installed extras
    redis = None  # type: ignore[assignment]

SCAN_BATCH_SIZE = 500


class RedisStorage(BaseStorage):
    """Storage in a Redis keyspace.

    Args:
        host: Redis host.
        port: Redis port.
        db: Database number.
        password: Optional password.
        prefix: Prepended to every cache key.
        client: Existing ``redis.Redis`` client to use instead of connecting.
        socket_timeout: Timeout in seconds for connect and commands.

    Raises:
        StorageNotSupportedError: If the redis package is not installed.
        StorageConnectError: If the server does not answer PING.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: str | None = None,
        prefix: str = "storable-cache:",
        client: Any | None = None,
        socket_timeout: float = 5.0,
    ) -> None:
        if redis is None:
            raise StorageNotSupportedError(
                "Redis storage requires the 'redis' package. Install with: pip install redis"
            )

        self._prefix = prefix
        self._owns_client = client is None
        self._client = client or redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            decode_responses=False,
        )

        try:
            self._client.ping()
        except redis.RedisError as e:
            raise StorageConnectError(f"Cannot connect to Redis at {host}:{port}: {e}") from e

        logger.debug(f"Connected to Redis at {host}:{port}/{db}")

    @property
    def prefix(self) -> str:
        return self._prefix

    def _make_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _scan_keys(self) -> list[bytes]:
        return list(
            self._client.scan_iter(match=f"{self._prefix}*", count=SCAN_BATCH_SIZE)
        )

    def has(self, key: str) -> bool:
        try:
            self.get_packet(key)
        except BadPacketError:
            return False
        return True

    def get_packet(self, key: str) -> Packet:
        return self._get_raw(self._make_key(key))

    def _get_raw(self, redis_key: str | bytes) -> Packet:
        try:
            data = self._client.get(redis_key)
        except redis.RedisError as e:
            raise BadPacketError(f"Redis read failed: {e}") from e
        return Packet.loads(data)

    def set(self, key: str, value: str, lifetime: int, savetime: int) -> bool:
        data = Packet(value=value, lifetime=lifetime, savetime=savetime).dumps()
        try:
            # Redis rejects a zero TTL; such entries rely on delete_outdated
            result = self._client.set(
                self._make_key(key), data, ex=savetime if savetime > 0 else None
            )
        except redis.RedisError as e:
            logger.warning(f"Redis set() failed for {key!r}: {e}")
            return False
        return bool(result)

    def delete(self, key: str) -> bool:
        try:
            return self._client.delete(self._make_key(key)) > 0
        except redis.RedisError as e:
            logger.warning(f"Redis delete() failed for {key!r}: {e}")
            return False

    def delete_outdated(self) -> bool:
        try:
            redis_keys = self._scan_keys()
        except redis.RedisError as e:
            logger.error(f"Redis scan failed: {e}")
            return False

        removed = 0
        for redis_key in redis_keys:
            try:
                if not self._get_raw(redis_key).outdated():
                    continue
            except BadPacketError:
                logger.debug(f"Removing unreadable Redis entry {redis_key!r}")
            try:
                removed += self._client.delete(redis_key)
            except redis.RedisError as e:
                logger.warning(f"Redis delete failed for {redis_key!r}: {e}")

        if removed:
            logger.debug(f"Removed {removed} outdated entries from Redis")
        return True

    def clear(self) -> bool:
        try:
            redis_keys = self._scan_keys()
            if redis_keys:
                self._client.delete(*redis_keys)
        except redis.RedisError as e:
            logger.warning(f"Redis clear() failed: {e}")
            return False
        return True

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
