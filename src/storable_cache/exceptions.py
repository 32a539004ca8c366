"""Exceptions raised by storable-cache.

Construction-time failures (``StorageNotSupportedError``,
``StorageConnectError``) are fatal and propagate to the caller.
``BadPacketError`` is recoverable: the facade turns it into a default value.
"""


class StorableCacheError(Exception):
    """Base class for all storable-cache errors."""


class StorageNotSupportedError(StorableCacheError):
    """Unknown storage type, or the driver for it is not installed."""


class StorageConnectError(StorableCacheError):
    """Storage is unreachable or misconfigured."""


class BadPacketError(StorableCacheError):
    """Stored entry is missing, unreadable or does not decode to a Packet."""


class InvalidKeyError(StorableCacheError, ValueError):
    """Cache key cannot be stored (e.g. empty)."""
