"""SQLite connection over the standard library ``sqlite3`` module."""
from __future__ import annotations

import sqlite3

from quarrydb.config import ConnectionConfig
from quarrydb.connection.base import Connection
from quarrydb.connection.driver import DBAPIDriver, DriverAdapter


class SQLiteConnection(Connection):
    """Connection to an SQLite file, or ``":memory:"``.

    The handle runs in autocommit mode, matching the MySQL connection.
    """

    dialect = "sqlite"

    def open_driver(self, config: ConnectionConfig) -> DriverAdapter:
        handle = sqlite3.connect(
            config.database or ":memory:",
            isolation_level=None,
            **config.options,
        )
        return DBAPIDriver(
            handle,
            paramstyle=sqlite3.paramstyle,
            version_query="SELECT sqlite_version()",
        )

    def configure(self, config: ConnectionConfig) -> None:
        if config.foreign_keys:
            self._run("PRAGMA foreign_keys = ON", (), lambda statement: None)
