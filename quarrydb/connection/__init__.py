"""quarrydb connection layer: drivers, connections and the connection manager."""
from quarrydb.connection.base import Connection
from quarrydb.connection.driver import DBAPIDriver, DriverAdapter, ParamType, Statement
from quarrydb.connection.manager import ConnectionManager
from quarrydb.connection.mysql import MySqlConnection
from quarrydb.connection.registry import ConnectionFactory
from quarrydb.connection.sqlite import SQLiteConnection

__all__ = [
    "Connection",
    "ConnectionFactory",
    "ConnectionManager",
    "DBAPIDriver",
    "DriverAdapter",
    "MySqlConnection",
    "ParamType",
    "SQLiteConnection",
    "Statement",
]
