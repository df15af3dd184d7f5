"""quarrydb – fluent SQL query builder, dialect grammars and Active Record ORM.

Public API
----------
``connect``
    Validate a configuration mapping and return a ``ConnectionManager``.

``ConnectionManager``
    Named, lazily opened connections; ``db.table("users")`` starts a query.

``Model``
    Active Record base class; ``User.query(db).where(...).get()``.

Re-exported types
-----------------
``QueryBuilder``, ``Grammar``, ``MySqlGrammar``, ``SQLiteGrammar``,
``Connection``, ``Collection``, the configuration models and all error
classes.

Extensibility
-------------
New database drivers can be registered via::

    from quarrydb.connection.registry import ConnectionFactory

    @ConnectionFactory.register("postgres")
    class PostgresConnection(Connection):
        dialect = "postgres"
        ...

After registration, any connection configured with ``driver="postgres"`` is
opened with that class.  Its grammar is looked up in ``GrammarFactory`` by the
class's ``dialect`` name, so a new dialect registers a grammar the same way::

    from quarrydb.grammar.registry import GrammarFactory

    @GrammarFactory.register("postgres")
    class PostgresGrammar(Grammar):
        ...
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from quarrydb.collection import Collection
from quarrydb.config import ConnectionConfig, DatabaseConfig, DatabaseSettings
from quarrydb.connection.base import Connection
from quarrydb.connection.driver import DBAPIDriver, DriverAdapter, ParamType
from quarrydb.connection.manager import ConnectionManager
from quarrydb.connection.mysql import MySqlConnection
from quarrydb.connection.registry import ConnectionFactory
from quarrydb.connection.sqlite import SQLiteConnection
from quarrydb.errors import (
    CompilationError,
    ConfigurationError,
    ConnectionClosedError,
    ConnectionNotConfiguredError,
    InvalidBindingTypeError,
    InvalidOperatorError,
    InvalidOrderDirectionError,
    MissingPrimaryKeyError,
    ModelError,
    ModelNotFoundError,
    QuarryError,
    QueryBuildError,
    QueryExecutionError,
    UnsupportedDriverError,
)
from quarrydb.grammar import Grammar, GrammarFactory, MySqlGrammar, SQLiteGrammar
from quarrydb.orm import Model, ModelBuilder
from quarrydb.query import Expression, QueryBuilder

__all__ = [
    # Entry point
    "connect",
    # Configuration
    "ConnectionConfig",
    "DatabaseConfig",
    "DatabaseSettings",
    # Connections
    "Connection",
    "ConnectionFactory",
    "ConnectionManager",
    "DBAPIDriver",
    "DriverAdapter",
    "MySqlConnection",
    "ParamType",
    "SQLiteConnection",
    # Query building
    "Expression",
    "Grammar",
    "GrammarFactory",
    "MySqlGrammar",
    "QueryBuilder",
    "SQLiteGrammar",
    # ORM
    "Collection",
    "Model",
    "ModelBuilder",
    # Errors
    "QuarryError",
    "QueryBuildError",
    "InvalidOperatorError",
    "InvalidOrderDirectionError",
    "InvalidBindingTypeError",
    "CompilationError",
    "QueryExecutionError",
    "ConnectionClosedError",
    "ConfigurationError",
    "ConnectionNotConfiguredError",
    "UnsupportedDriverError",
    "ModelError",
    "MissingPrimaryKeyError",
    "ModelNotFoundError",
]


def connect(config: DatabaseConfig | Mapping[str, Any]) -> ConnectionManager:
    """Build a :class:`ConnectionManager` from a configuration.

    Connections are opened lazily, on first use::

        db = quarrydb.connect({
            "default": "sqlite",
            "connections": {"sqlite": {"driver": "sqlite", "database": ":memory:"}},
        })
        db.table("users").where("active", True).get()

    Args:
        config: A :class:`DatabaseConfig` or a mapping with the same shape.

    Raises:
        ConfigurationError: If ``config`` is not a valid configuration.
    """
    if isinstance(config, DatabaseConfig):
        return ConnectionManager(config)
    try:
        database_config = DatabaseConfig.model_validate(config)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid database configuration: {exc}") from exc
    return ConnectionManager(database_config)
