"""SQL database backend built on SQLAlchemy Core.

The caller owns the engine; this backend only issues statements against a
table whose name and column names come from ``SqlSettings``. All values are
bound parameters.
"""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from storable_cache.backends.base import BaseStorage
from storable_cache.config import SqlSettings
from storable_cache.exceptions import BadPacketError, StorageConnectError
from storable_cache.packet import Packet

logger = logging.getLogger(__name__)


def build_cache_table(settings: SqlSettings, metadata: MetaData | None = None) -> Table:
    """Describe the cache table using the configured column names."""
    return Table(
        settings.table,
        metadata if metadata is not None else MetaData(),
        Column(settings.key_field, String(255), primary_key=True),
        Column(settings.value_field, Text, nullable=False),
        Column(settings.timestamp_field, BigInteger, nullable=False),
        Column(settings.lifetime_field, Integer, nullable=False),
        Column(settings.savetime_field, Integer, nullable=False),
    )


class SqlStorage(BaseStorage):
    """Storage on an SQL table reached through a SQLAlchemy engine.

    Args:
        engine: Engine (or open Connection) supplied by the caller. On a
            Connection each operation runs in its own transaction, or in a
            SAVEPOINT when the caller already has one open.
        settings: Table and column names. Defaults to ``SqlSettings()``.

    Raises:
        StorageConnectError: If no engine is given, or the table cannot be
            created when ``settings.create_table`` is set.
    """

    def __init__(
        self, engine: Engine | Connection | None, settings: SqlSettings | None = None
    ) -> None:
        if engine is None:
            raise StorageConnectError("SQL storage requires a database engine")

        self._engine = engine
        self._settings = settings or SqlSettings()
        self._table = build_cache_table(self._settings)

        if self._settings.create_table:
            try:
                self._table.metadata.create_all(engine, checkfirst=True)
            except SQLAlchemyError as e:
                raise StorageConnectError(f"Cannot create cache table: {e}") from e

    @property
    def table(self) -> Table:
        """The SQLAlchemy table the entries live in."""
        return self._table

    def _columns(self) -> tuple[Any, Any, Any, Any, Any]:
        c = self._table.c
        s = self._settings
        return (
            c[s.key_field],
            c[s.value_field],
            c[s.timestamp_field],
            c[s.lifetime_field],
            c[s.savetime_field],
        )

    @contextmanager
    def _transaction(self) -> Iterator[Connection]:
        """Yield a connection inside a transaction that rolls back on error."""
        if isinstance(self._engine, Connection):
            connection = self._engine
            if connection.in_transaction():
                transaction = connection.begin_nested()
            else:
                transaction = connection.begin()
            with transaction:
                yield connection
        else:
            with self._engine.begin() as connection:
                yield connection

    def _execute(self, statement: Any) -> int:
        """Run a write statement, returning the rowcount."""
        with self._transaction() as connection:
            return connection.execute(statement).rowcount

    def _fetch(self, statement: Any) -> Any:
        with self._transaction() as connection:
            return connection.execute(statement).first()

    def has(self, key: str) -> bool:
        key_col = self._columns()[0]
        statement = select(func.count()).select_from(self._table).where(key_col == key)
        try:
            row = self._fetch(statement)
        except SQLAlchemyError as e:
            logger.warning(f"SQL has() failed for {key!r}: {e}")
            return False
        return row is not None and int(row[0]) > 0

    def get_packet(self, key: str) -> Packet:
        key_col, value_col, timestamp_col, lifetime_col, savetime_col = self._columns()
        statement = select(value_col, timestamp_col, lifetime_col, savetime_col).where(
            key_col == key
        )
        try:
            row = self._fetch(statement)
        except SQLAlchemyError as e:
            raise BadPacketError(f"Query failed: {e}") from e

        if row is None:
            raise BadPacketError(f"Key {key!r} not found")
        return packet_from_row(row)

    def set(self, key: str, value: str, lifetime: int, savetime: int) -> bool:
        key_col, value_col, timestamp_col, lifetime_col, savetime_col = self._columns()
        values = {
            value_col.name: value,
            timestamp_col.name: int(time.time()),
            lifetime_col.name: lifetime,
            savetime_col.name: savetime,
        }
        try:
            with self._transaction() as connection:
                updated = connection.execute(
                    update(self._table).where(key_col == key).values(**values)
                ).rowcount
                if updated == 0:
                    connection.execute(insert(self._table).values({key_col.name: key, **values}))
        except SQLAlchemyError as e:
            logger.warning(f"SQL set() failed for {key!r}: {e}")
            return False
        return True

    def delete(self, key: str) -> bool:
        key_col = self._columns()[0]
        try:
            self._execute(delete(self._table).where(key_col == key))
        except SQLAlchemyError as e:
            logger.warning(f"SQL delete() failed for {key!r}: {e}")
            return False
        return True

    def delete_outdated(self) -> bool:
        _, _, timestamp_col, _, savetime_col = self._columns()
        now = int(time.time())
        try:
            removed = self._execute(
                delete(self._table).where(savetime_col < now - timestamp_col)
            )
        except SQLAlchemyError as e:
            logger.warning(f"SQL delete_outdated() failed: {e}")
            return False

        if removed > 0:
            logger.debug(f"Removed {removed} outdated rows from {self._table.name}")
        return True

    def clear(self) -> bool:
        try:
            self._execute(delete(self._table))
        except SQLAlchemyError as e:
            logger.warning(f"SQL clear() failed: {e}")
            return False
        return True


def packet_from_row(row: Any) -> Packet:
    """Build a packet from a (value, timestamp, lifetime, savetime) row."""
    value, timestamp, lifetime, savetime = row
    try:
        timestamp = int(timestamp)
        if timestamp < 0:
            raise ValueError(f"negative timestamp {timestamp}")
        return Packet(
            value=value,
            timestamp=timestamp,
            lifetime=int(lifetime),
            savetime=int(savetime),
        )
    except (TypeError, ValueError) as e:
        raise BadPacketError(f"Malformed cache row: {e}") from e
