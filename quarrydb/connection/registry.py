"""Driver name → connection class lookup.

:class:`~quarrydb.connection.manager.ConnectionManager` only knows connection *names*
and their :class:`~quarrydb.config.ConnectionConfig`.  When a name is first
used it hands the config here, and the ``driver`` field picks the
:class:`~quarrydb.connection.base.Connection` subclass that opens the socket
or file and runs the session setup.  An unknown driver fails at that point
with :class:`~quarrydb.errors.UnsupportedDriverError`, listing what is
registered.

Tests and extensions plug in their own drivers::

    ConnectionFactory.register_class("stub", StubConnection)

    @ConnectionFactory.register("postgres")
    class PostgresConnection(Connection):
        dialect = "postgres"
"""
from __future__ import annotations

from collections.abc import Callable
from typing import ClassVar

from quarrydb.config import ConnectionConfig
from quarrydb.connection.base import Connection
from quarrydb.connection.mysql import MySqlConnection
from quarrydb.connection.sqlite import SQLiteConnection
from quarrydb.errors import UnsupportedDriverError


class ConnectionFactory:
    """Connection classes keyed by the configured ``driver``."""

    _connections: ClassVar[dict[str, type[Connection]]] = {}

    @classmethod
    def register(cls, driver: str) -> Callable[[type[Connection]], type[Connection]]:
        """Class decorator form of :meth:`register_class`."""

        def decorator(connection_cls: type[Connection]) -> type[Connection]:
            cls.register_class(driver, connection_cls)
            return connection_cls

        return decorator

    @classmethod
    def register_class(cls, driver: str, connection_cls: type[Connection]) -> None:
        cls._connections[driver] = connection_cls

    @classmethod
    def create(cls, name: str, config: ConnectionConfig) -> Connection:
        """Open the connection the manager registered as ``name``.

        Raises:
            UnsupportedDriverError: If ``config.driver`` has no connection class.
        """
        connection_cls = cls._connections.get(config.driver)
        if connection_cls is None:
            raise UnsupportedDriverError(config.driver, cls.registered_drivers())
        return connection_cls(config, name=name)

    @classmethod
    def registered_drivers(cls) -> list[str]:
        return sorted(cls._connections)


ConnectionFactory.register_class("mysql", MySqlConnection)
ConnectionFactory.register_class("sqlite", SQLiteConnection)
