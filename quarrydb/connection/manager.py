"""Named connection manager."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from quarrydb.config import DatabaseConfig
from quarrydb.connection.base import Connection
from quarrydb.connection.registry import ConnectionFactory
from quarrydb.query.builder import QueryBuilder
from quarrydb.query.expression import Expression

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Resolves connection names to lazily opened, cached connections.

    One :class:`Connection` is cached per name until :meth:`disconnect`.
    The manager does no locking; share it across threads only under
    external synchronisation.

    Args:
        config: All configured connections and the default name.
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self.config = config
        self._default = config.default
        self._connections: dict[str, Connection] = {}

    def connection(self, name: str | None = None) -> Connection:
        """Return the connection called ``name`` (the default when ``None``).

        Raises:
            ConnectionNotConfiguredError: If ``name`` is not configured.
            UnsupportedDriverError: If its driver has no connection class.
        """
        name = name or self._default
        if name not in self._connections:
            connection_config = self.config.get(name)
            logger.info("Creating database connection [%s]", name)
            self._connections[name] = ConnectionFactory.create(name, connection_config)
        return self._connections[name]

    def get_default_connection(self) -> str:
        return self._default

    def set_default_connection(self, name: str) -> None:
        """Make ``name`` the connection used when none is given."""
        self._default = name

    def disconnect(self, name: str | None = None) -> None:
        """Close and forget one connection, or all of them when ``name`` is ``None``."""
        names = [name] if name is not None else list(self._connections)
        for key in names:
            connection = self._connections.pop(key, None)
            if connection is not None:
                connection.disconnect()
                logger.info("Disconnected database connection [%s]", key)

    def get_connections(self) -> list[str]:
        """Names of the currently open connections."""
        return list(self._connections)

    # Shortcuts onto the default connection.

    def table(self, table: str | Expression, alias: str | None = None) -> QueryBuilder:
        return self.connection().table(table, alias)

    def query(self) -> QueryBuilder:
        return self.connection().query()

    def raw(self, value: str) -> Expression:
        return Expression(value)

    def select(self, query: str, bindings: Sequence[Any] = ()) -> list[dict[str, Any]]:
        return self.connection().select(query, bindings)

    def insert(self, query: str, bindings: Sequence[Any] = ()) -> bool:
        return self.connection().insert(query, bindings)

    def update(self, query: str, bindings: Sequence[Any] = ()) -> int:
        return self.connection().update(query, bindings)

    def delete(self, query: str, bindings: Sequence[Any] = ()) -> int:
        return self.connection().delete(query, bindings)

    def statement(self, query: str, bindings: Sequence[Any] = ()) -> bool:
        return self.connection().statement(query, bindings)
