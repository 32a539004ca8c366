"""Filesystem backend.

Each entry is a file in the cache directory, named by ``storage_name(key)``
and holding the serialized packet. Writers take a non-blocking exclusive
``flock``; a writer that cannot get the lock drops its write. Readers do not
lock, so a half-written file reads as a corrupt packet.
"""

import errno
import fcntl
import logging
import os
from pathlib import Path

from storable_cache.backends.base import BaseStorage, storage_name
from storable_cache.exceptions import BadPacketError, InvalidKeyError, StorageConnectError
from storable_cache.packet import Packet

logger = logging.getLogger(__name__)


class FilesStorage(BaseStorage):
    """Storage keeping one file per entry in a directory.

    Args:
        cache_dir: Existing, writable directory.

    Raises:
        StorageConnectError: If the directory is missing or not writable.
    """

    def __init__(self, cache_dir: str | Path) -> None:
        if not cache_dir:
            raise StorageConnectError("Cache directory not configured")

        self._cache_dir = Path(cache_dir)
        if not self._cache_dir.is_dir() or not os.access(self._cache_dir, os.W_OK):
            raise StorageConnectError(
                f"Cache directory {self._cache_dir} does not exist or is not writable"
            )

    @property
    def cache_dir(self) -> Path:
        """Directory holding the cache files."""
        return self._cache_dir

    def path_for(self, key: str) -> Path:
        """Return the file path an entry for key is stored at."""
        return self._cache_dir / storage_name(key)

    def has(self, key: str) -> bool:
        try:
            self.get_packet(key)
        except BadPacketError:
            return False
        return True

    def get_packet(self, key: str) -> Packet:
        try:
            path = self.path_for(key)
        except InvalidKeyError as e:
            raise BadPacketError(str(e)) from e
        return self._read_packet(path)

    def set(self, key: str, value: str, lifetime: int, savetime: int) -> bool:
        path = self.path_for(key)
        data = Packet(value=value, lifetime=lifetime, savetime=savetime).dumps()

        try:
            # "a" so that a writer losing the lock race does not truncate
            with open(path, "ab") as handle:
                try:
                    fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
                except BlockingIOError:
                    logger.warning(f"Cache file {path.name} is locked, write dropped")
                    return False
                try:
                    handle.truncate(0)
                    handle.write(data)
                    handle.flush()
                finally:
                    fcntl.flock(handle, fcntl.LOCK_UN)
        except OSError as e:
            logger.warning(f"Failed to write cache file {path.name}: {e}")
            return False
        return True

    def delete(self, key: str) -> bool:
        try:
            self.path_for(key).unlink()
        except InvalidKeyError:
            return False
        except OSError as e:
            if e.errno != errno.ENOENT:
                logger.warning(f"Failed to delete cache entry {key!r}: {e}")
            return False
        return True

    def delete_outdated(self) -> bool:
        entries = self._list_entries()
        if entries is None:
            return False

        removed = 0
        for path in entries:
            try:
                if not self._read_packet(path).outdated():
                    continue
            except BadPacketError:
                logger.debug(f"Removing unreadable cache file {path.name}")
            if self._unlink(path):
                removed += 1

        if removed:
            logger.debug(f"Removed {removed} outdated entries from {self._cache_dir}")
        return True

    def clear(self) -> bool:
        entries = self._list_entries()
        if entries is None:
            return False

        for path in entries:
            self._unlink(path)
        return True

    def _read_packet(self, path: Path) -> Packet:
        try:
            data = path.read_bytes()
        except OSError as e:
            raise BadPacketError(f"Cache file {path.name} not readable") from e
        return Packet.loads(data)

    def _list_entries(self) -> list[Path] | None:
        """List cache files, skipping subdirectories and dotfiles."""
        try:
            names = os.listdir(self._cache_dir)
        except OSError as e:
            logger.error(f"Cannot read cache directory {self._cache_dir}: {e}")
            return None

        entries = []
        for name in names:
            path = self._cache_dir / name
            # exclude .htaccess and friends
            if name.startswith(".") or not path.is_file():
                continue
            entries.append(path)
        return entries

    def _unlink(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Failed to remove cache file {path.name}: {e}")
            return False
        return True
