"""Storage contract shared by every backend.

Defines the CacheStorage protocol, the BaseStorage abstract class with the
convenience operations derived from ``get_packet``, and the key-to-name
policy used where a key becomes a file name.
"""

import hashlib
import logging
import re
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Protocol, runtime_checkable

from storable_cache.exceptions import InvalidKeyError
from storable_cache.packet import Packet

logger = logging.getLogger(__name__)

# Anything outside this set, a ".." sequence, or a leading dot forces hashing.
# "," is excluded since it is what "/" is rewritten to.
_UNSAFE_KEY = re.compile(r"[^A-Za-z0-9~_./-]|\.{2}|^\.")

# NAME_MAX of common filesystems, in bytes
MAX_NAME_LENGTH = 255


def storage_name(key: str) -> str:
    """Map a cache key to a name that is safe to use as a file name.

    Simple keys stay readable (``"users/42"`` becomes ``"users,42"``). Keys
    with unsafe characters (including ``","``), traversal sequences, or more
    than MAX_NAME_LENGTH bytes become their MD5 digest.

    Raises:
        InvalidKeyError: If the key is empty.
    """
    if not key:
        raise InvalidKeyError("Cache key must not be empty")
    if _UNSAFE_KEY.search(key) or len(key.encode("utf-8")) > MAX_NAME_LENGTH:
        return hashlib.md5(key.encode("utf-8")).hexdigest()
    return key.replace("/", ",")


@runtime_checkable
class CacheStorage(Protocol):
    """Protocol for storable-cache backends.

    Read operations raise BadPacketError for absent or corrupt entries.
    Write operations report failures through their boolean result.
    """

    def has(self, key: str) -> bool:
        """Check if a readable, well-formed entry exists for key."""
        ...

    def get_packet(self, key: str) -> Packet:
        """Return the stored packet or raise BadPacketError."""
        ...

    def get_value(self, key: str) -> str:
        """Return the stored value or raise BadPacketError."""
        ...

    def get(self, key: str) -> str:
        """Synonym for get_value."""
        ...

    def expired(self, key: str) -> bool:
        """Check if the stored packet's lifetime elapsed."""
        ...

    def set(self, key: str, value: str, lifetime: int, savetime: int) -> bool:
        """Store a fresh packet for key."""
        ...

    def delete(self, key: str) -> bool:
        """Remove key; absent keys are not an error."""
        ...

    def delete_outdated(self) -> bool:
        """Remove outdated and undecodable entries."""
        ...

    def clear(self) -> bool:
        """Remove every entry."""
        ...

    def close(self) -> None:
        """Release the underlying client or connection."""
        ...


class BaseStorage(ABC):
    """Abstract base class for backends.

    Subclasses implement the primitive operations; ``get_value``, ``get``
    and ``expired`` are derived from ``get_packet``.
    """

    @abstractmethod
    def has(self, key: str) -> bool: ...

    @abstractmethod
    def get_packet(self, key: str) -> Packet: ...

    @abstractmethod
    def set(self, key: str, value: str, lifetime: int, savetime: int) -> bool: ...

    @abstractmethod
    def delete(self, key: str) -> bool: ...

    @abstractmethod
    def delete_outdated(self) -> bool: ...

    @abstractmethod
    def clear(self) -> bool: ...

    def get_value(self, key: str) -> str:
        """Fetch the value of an entry.

        Raises:
            BadPacketError: If the entry is absent or corrupt.
        """
        return self.get_packet(key).value

    def get(self, key: str) -> str:
        """Fetch the value of an entry. Synonym for get_value."""
        return self.get_value(key)

    def expired(self, key: str) -> bool:
        """Check whether the entry's lifetime elapsed.

        Raises:
            BadPacketError: If the entry is absent or corrupt.
        """
        return self.get_packet(key).expired()

    def close(self) -> None:
        """Release resources. No-op by default."""

    def __enter__(self) -> "BaseStorage":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()
