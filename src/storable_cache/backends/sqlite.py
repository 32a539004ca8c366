"""SQLite backend.

Opens its own ``sqlite3`` connection to a database file (or ``:memory:``)
and stores entries in a table laid out by ``SqliteSettings``. The
connection is shared between threads and serialized with a lock.
"""

import logging
import sqlite3
import threading
import time
from pathlib import Path

from storable_cache.backends.base import BaseStorage
from storable_cache.backends.sql import packet_from_row
from storable_cache.config import SqliteSettings
from storable_cache.exceptions import BadPacketError, StorageConnectError
from storable_cache.packet import Packet

logger = logging.getLogger(__name__)


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


class SqliteStorage(BaseStorage):
    """Storage in an SQLite table.

    Args:
        settings: Database path, table and column names.

    Raises:
        StorageConnectError: If the database cannot be opened or the table
            cannot be created.
    """

    def __init__(self, settings: SqliteSettings | None = None) -> None:
        self._settings = settings or SqliteSettings()
        self._lock = threading.RLock()

        database = self._settings.database
        if database != ":memory:":
            try:
                Path(database).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageConnectError(f"Cannot create {database}: {e}") from e

        try:
            self._conn: sqlite3.Connection | None = sqlite3.connect(
                database, check_same_thread=False, isolation_level=None
            )
        except sqlite3.Error as e:
            raise StorageConnectError(f"Cannot open SQLite database {database}: {e}") from e

        s = self._settings
        self._table = _quote(s.table)
        self._key = _quote(s.key_field)
        self._value = _quote(s.value_field)
        self._timestamp = _quote(s.timestamp_field)
        self._lifetime = _quote(s.lifetime_field)
        self._savetime = _quote(s.savetime_field)

        if s.create_table:
            self._create_table()

        logger.debug(f"Opened SQLite cache {database} (table {s.table})")

    @property
    def database_path(self) -> str:
        """Path of the database file, or ':memory:'."""
        return self._settings.database

    def _create_table(self) -> None:
        sql = (
            f"CREATE TABLE IF NOT EXISTS {self._table} ("
            f"{self._key} TEXT PRIMARY KEY, "
            f"{self._value} TEXT NOT NULL, "
            f"{self._timestamp} INTEGER NOT NULL, "
            f"{self._lifetime} INTEGER NOT NULL, "
            f"{self._savetime} INTEGER NOT NULL)"
        )
        try:
            self._run(sql)
        except sqlite3.Error as e:
            self.close()
            raise StorageConnectError(f"Cannot create cache table: {e}") from e

    def _run(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            if self._conn is None:
                raise sqlite3.ProgrammingError("Cannot operate on a closed database.")
            return self._conn.execute(sql, params)

    def has(self, key: str) -> bool:
        sql = f"SELECT COUNT(*) FROM {self._table} WHERE {self._key} = ?"
        try:
            with self._lock:
                row = self._run(sql, (key,)).fetchone()
        except sqlite3.Error as e:
            logger.warning(f"SQLite has() failed for {key!r}: {e}")
            return False
        return row is not None and int(row[0]) > 0

    def get_packet(self, key: str) -> Packet:
        sql = (
            f"SELECT {self._value}, {self._timestamp}, {self._lifetime}, {self._savetime}"
            f" FROM {self._table} WHERE {self._key} = ?"
        )
        try:
            with self._lock:
                row = self._run(sql, (key,)).fetchone()
        except sqlite3.Error as e:
            raise BadPacketError(f"Query failed: {e}") from e

        if row is None:
            raise BadPacketError(f"Key {key!r} not found")
        return packet_from_row(row)

    def set(self, key: str, value: str, lifetime: int, savetime: int) -> bool:
        update_sql = (
            f"UPDATE {self._table} SET {self._value} = ?, {self._timestamp} = ?,"
            f" {self._lifetime} = ?, {self._savetime} = ? WHERE {self._key} = ?"
        )
        insert_sql = (
            f"INSERT INTO {self._table}"
            f" ({self._key}, {self._value}, {self._timestamp}, {self._lifetime}, {self._savetime})"
            f" VALUES (?, ?, ?, ?, ?)"
        )
        now = int(time.time())
        try:
            with self._lock:
                cursor = self._run(update_sql, (value, now, lifetime, savetime, key))
                if cursor.rowcount == 0:
                    self._run(insert_sql, (key, value, now, lifetime, savetime))
        except sqlite3.Error as e:
            logger.warning(f"SQLite set() failed for {key!r}: {e}")
            return False
        return True

    def delete(self, key: str) -> bool:
        sql = f"DELETE FROM {self._table} WHERE {self._key} = ?"
        try:
            self._run(sql, (key,))
        except sqlite3.Error as e:
            logger.warning(f"SQLite delete() failed for {key!r}: {e}")
            return False
        return True

    def delete_outdated(self) -> bool:
        sql = f"DELETE FROM {self._table} WHERE {self._savetime} < (? - {self._timestamp})"
        try:
            cursor = self._run(sql, (int(time.time()),))
        except sqlite3.Error as e:
            logger.warning(f"SQLite delete_outdated() failed: {e}")
            return False

        if cursor.rowcount > 0:
            logger.debug(f"Removed {cursor.rowcount} outdated rows from {self._settings.table}")
        return True

    def clear(self) -> bool:
        try:
            self._run(f"DELETE FROM {self._table}")
        except sqlite3.Error as e:
            logger.warning(f"SQLite clear() failed: {e}")
            return False
        return True

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
