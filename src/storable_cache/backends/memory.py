"""In-memory backend.

A thread-safe dict of key to Packet. Nothing is persisted; the data lives
as long as the storage instance.
"""

import logging
import threading

from storable_cache.backends.base import BaseStorage
from storable_cache.exceptions import BadPacketError
from storable_cache.packet import Packet

logger = logging.getLogger(__name__)


class MemoryStorage(BaseStorage):
    """Dict-backed storage guarded by a re-entrant lock."""

    def __init__(self) -> None:
        self._packets: dict[str, Packet] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._packets)

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._packets

    def get_packet(self, key: str) -> Packet:
        with self._lock:
            try:
                return self._packets[key]
            except KeyError:
                raise BadPacketError(f"Key {key!r} not found") from None

    def set(self, key: str, value: str, lifetime: int, savetime: int) -> bool:
        packet = Packet(value=value, lifetime=lifetime, savetime=savetime)
        with self._lock:
            self._packets[key] = packet
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._packets.pop(key, None) is not None

    def delete_outdated(self) -> bool:
        with self._lock:
            outdated_keys = [
                key for key, packet in self._packets.items() if packet.outdated()
            ]
            for key in outdated_keys:
                del self._packets[key]

        if outdated_keys:
            logger.debug(f"Removed {len(outdated_keys)} outdated entries from memory")
        return True

    def clear(self) -> bool:
        with self._lock:
            self._packets.clear()
        return True
