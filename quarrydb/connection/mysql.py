"""MySQL connection over ``mysql.connector``."""
from __future__ import annotations

import logging
import re

from quarrydb.config import ConnectionConfig
from quarrydb.connection.base import Connection
from quarrydb.connection.driver import DBAPIDriver, DriverAdapter

logger = logging.getLogger(__name__)

_STRICT_MODES = (
    "ONLY_FULL_GROUP_BY",
    "STRICT_TRANS_TABLES",
    "NO_ZERO_IN_DATE",
    "NO_ZERO_DATE",
    "ERROR_FOR_DIVISION_BY_ZERO",
    "NO_ENGINE_SUBSTITUTION",
)

# NO_AUTO_CREATE_USER was removed in MySQL 8.0.11.
_NO_AUTO_CREATE_USER_REMOVED_IN = (8, 0, 11)


def _version_tuple(version: str) -> tuple[int, ...]:
    return tuple(int(part) for part in re.findall(r"\d+", version)[:3])


class MySqlConnection(Connection):
    """Connection to a MySQL server.

    After the driver is open the session is configured in this order:
    character set (and collation), time zone, SQL mode.
    """

    dialect = "mysql"

    def open_driver(self, config: ConnectionConfig) -> DriverAdapter:
        import mysql.connector

        handle = mysql.connector.connect(
            host=config.host,
            port=config.port,
            database=config.database,
            user=config.username,
            password=config.password,
            autocommit=True,
            **config.options,
        )
        return DBAPIDriver(
            handle,
            paramstyle=mysql.connector.paramstyle,
            escape_percent=False,
            version_query="SELECT VERSION()",
        )

    def configure(self, config: ConnectionConfig) -> None:
        self.configure_encoding(config)
        self.configure_timezone(config)
        self.set_modes(config)

    def configure_encoding(self, config: ConnectionConfig) -> None:
        if not config.charset:
            return
        collation = f" COLLATE '{config.collation}'" if config.collation else ""
        self._session(f"SET NAMES '{config.charset}'{collation}")

    def configure_timezone(self, config: ConnectionConfig) -> None:
        if config.timezone:
            self._session(f'SET time_zone="{config.timezone}"')

    def set_modes(self, config: ConnectionConfig) -> None:
        if config.modes is not None:
            modes = ",".join(config.modes)
        elif config.strict:
            modes = self.strict_mode(config)
        else:
            modes = "NO_ENGINE_SUBSTITUTION"
        self._session(f"SET SESSION sql_mode='{modes}'")

    def _session(self, sql: str) -> None:
        self._run(sql, (), lambda statement: None)

    def strict_mode(self, config: ConnectionConfig) -> str:
        """The strict SQL mode list for the server version."""
        version = config.version or self.get_driver().server_version() or ""
        modes = list(_STRICT_MODES)
        if _version_tuple(version) < _NO_AUTO_CREATE_USER_REMOVED_IN:
            modes.insert(-1, "NO_AUTO_CREATE_USER")
        logger.debug("Using strict sql_mode for MySQL server version %s", version or "unknown")
        return ",".join(modes)
