"""Memcached backend.

Entries are serialized packets stored with ``savetime`` as the native
expiration, so Memcached drops outdated entries on its own and
``delete_outdated`` has nothing to do.
"""

import hashlib
import logging
import re
import time
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
    from pymemcache.client.base import Client
    from pymemcache.exceptions import MemcacheError
except ImportError:  # pragma: no cover - depends on installed extras
    Client = None  # type: ignore[assignment,misc]
    MemcacheError = None  # type: ignore[assignment,misc]

MAX_KEY_LENGTH = 250
# Memcached reads larger expirations as absolute unix timestamps
MAX_RELATIVE_EXPIRE = 30 * 24 * 3600
_ILLEGAL_KEY_CHARS = re.compile(r"[\x00-\x20\x7f]")


def _expire(savetime: int) -> int:
    if savetime > MAX_RELATIVE_EXPIRE:
        return int(time.time()) + savetime
    return savetime


class MemcachedStorage(BaseStorage):
    """Storage on a Memcached server.

    Args:
        host: Memcached host.
        port: Memcached port.
        prefix: Prepended to every cache key.
        client: Existing pymemcache client to use instead of connecting.
        timeout: Connect and command timeout in seconds.

    Raises:
        StorageNotSupportedError: If pymemcache is not installed.
        StorageConnectError: If the server does not answer.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 11211,
        prefix: str = "storable-cache:",
        client: Any | None = None,
        timeout: float = 5.0,
    ) -> None:
        if Client is None:
            raise StorageNotSupportedError(
                "Memcached storage requires 'pymemcache'. Install with: pip install pymemcache"
            )

        self._prefix = prefix
        self._owns_client = client is None
        self._client = client or Client(
            (host, port), connect_timeout=timeout, timeout=timeout
        )
        self._errors = (MemcacheError, OSError)

        try:
            self._client.version()
        except self._errors as e:
            raise StorageConnectError(
                f"Cannot connect to Memcached at {host}:{port}: {e}"
            ) from e

        logger.debug(f"Connected to Memcached at {host}:{port}")

    def _make_key(self, key: str) -> str:
        full_key = f"{self._prefix}{key}"
        if (
            len(full_key.encode("utf-8")) > MAX_KEY_LENGTH
            or _ILLEGAL_KEY_CHARS.search(full_key)
            or not full_key.isascii()
        ):
            return hashlib.md5(full_key.encode("utf-8")).hexdigest()
        return full_key

    def has(self, key: str) -> bool:
        try:
            self.get_packet(key)
        except BadPacketError:
            return False
        return True

    def get_packet(self, key: str) -> Packet:
        try:
            data = self._client.get(self._make_key(key))
        except self._errors as e:
            raise BadPacketError(f"Memcached read failed: {e}") from e
        return Packet.loads(data)

    def set(self, key: str, value: str, lifetime: int, savetime: int) -> bool:
        data = Packet(value=value, lifetime=lifetime, savetime=savetime).dumps()
        try:
            result = self._client.set(
                self._make_key(key), data, expire=_expire(savetime), noreply=False
            )
            return bool(result)
        except self._errors as e:
            logger.warning(f"Memcached set() failed for {key!r}: {e}")
            return False

    def delete(self, key: str) -> bool:
        try:
            return bool(self._client.delete(self._make_key(key), noreply=False))
        except self._errors as e:
            logger.warning(f"Memcached delete() failed for {key!r}: {e}")
            return False

    def delete_outdated(self) -> bool:
        # Native expiration removes entries once savetime elapses
        return True

    def clear(self) -> bool:
        try:
            return bool(self._client.flush_all(noreply=False))
        except self._errors as e:
            logger.warning(f"Memcached clear() failed: {e}")
            return False

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
