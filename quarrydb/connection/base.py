"""Connection base class: statement execution over a driver adapter.

A :class:`Connection` owns one :class:`~quarrydb.connection.driver.DriverAdapter`
and one grammar.  Every statement goes through :meth:`Connection._run`, which
normalises the bindings, binds them positionally with a
:class:`~quarrydb.connection.driver.ParamType` tag, logs the statement, and
turns any driver failure into :class:`~quarrydb.errors.QueryExecutionError`.

Dialect subclasses open the driver (:meth:`Connection.open_driver`) and run
their session setup (:meth:`Connection.configure`).
"""
from __future__ import annotations

import datetime
import logging
from collections.abc import Callable, Sequence
from typing import Any, ClassVar, TypeVar

from quarrydb.config import ConnectionConfig
from quarrydb.connection.driver import DriverAdapter, ParamType, Statement
from quarrydb.errors import ConnectionClosedError, QuarryError, QueryExecutionError
from quarrydb.grammar.base import Grammar
from quarrydb.grammar.registry import GrammarFactory
from quarrydb.query.builder import QueryBuilder
from quarrydb.query.expression import Expression

logger = logging.getLogger(__name__)

R = TypeVar("R")


class Connection:
    """A live database connection.

    Args:
        config: Settings for this connection.
        name: Name the connection is registered under; defaults to the driver.
        driver: An already open driver adapter.  When omitted,
            :meth:`open_driver` opens one from ``config``.
    """

    dialect: ClassVar[str] = "generic"

    def __init__(
        self,
        config: ConnectionConfig,
        name: str | None = None,
        driver: DriverAdapter | None = None,
    ) -> None:
        self.config = config
        self.name = name or config.driver
        self.grammar: Grammar = GrammarFactory.create(self.dialect, config.prefix)
        self._last_insert_id: Any = None
        self._records_modified = False
        if driver is None:
            driver = self.open_driver(config)
        self._driver: DriverAdapter | None = driver
        logger.info("Opened database connection [%s] (%s)", self.name, config.driver)
        try:
            self.configure(config)
        except BaseException:
            driver.close()
            self._driver = None
            raise

    def open_driver(self, config: ConnectionConfig) -> DriverAdapter:
        """Open the underlying driver; dialect subclasses implement this."""
        raise NotImplementedError(f"{type(self).__name__} cannot open a driver on its own.")

    def configure(self, config: ConnectionConfig) -> None:
        """Run per-session setup statements after the driver is open."""

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def query(self) -> QueryBuilder:
        return QueryBuilder(self.grammar, self)

    def table(self, table: str | Expression, alias: str | None = None) -> QueryBuilder:
        """Start a query against ``table``."""
        return self.query().from_(table, alias)

    def raw(self, value: str) -> Expression:
        return Expression(value)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def select(self, query: str, bindings: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a SELECT and return its rows as dicts."""
        return self._run(query, bindings, lambda statement: statement.fetch_all())

    def select_one(self, query: str, bindings: Sequence[Any] = ()) -> dict[str, Any] | None:
        rows = self.select(query, bindings)
        return rows[0] if rows else None

    def insert(self, query: str, bindings: Sequence[Any] = ()) -> bool:
        """Run an INSERT and remember the generated id."""
        self._run(query, bindings, lambda statement: None)
        self.records_have_been_modified()
        self._last_insert_id = self.get_driver().last_insert_id()
        return True

    def update(self, query: str, bindings: Sequence[Any] = ()) -> int:
        return self.affecting_statement(query, bindings)

    def delete(self, query: str, bindings: Sequence[Any] = ()) -> int:
        return self.affecting_statement(query, bindings)

    def statement(self, query: str, bindings: Sequence[Any] = ()) -> bool:
        """Run a statement whose result is not needed."""
        self._run(query, bindings, lambda statement: None)
        self.records_have_been_modified()
        return True

    def affecting_statement(self, query: str, bindings: Sequence[Any] = ()) -> int:
        """Run a statement and return the number of affected rows."""
        count = self._run(query, bindings, lambda statement: statement.row_count())
        self.records_have_been_modified(count > 0)
        return count

    def _run(
        self,
        query: str,
        bindings: Sequence[Any],
        callback: Callable[[Statement], R],
    ) -> R:
        driver = self.get_driver()
        values = self.prepare_bindings(bindings)
        logger.debug("[%s] %s %s", self.name, query, values)
        try:
            statement = driver.prepare(query)
            self.bind_values(statement, values)
            statement.execute()
            return callback(statement)
        except QuarryError:
            raise
        except Exception as exc:
            logger.error("[%s] query failed: %s | %s %s", self.name, exc, query, values)
            raise QueryExecutionError(str(exc), query, values) from exc

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    @staticmethod
    def bind_values(statement: Statement, bindings: Sequence[Any]) -> None:
        """Bind values to 1-based positions with a type tag for each."""
        for position, value in enumerate(bindings, start=1):
            statement.bind(position, value, ParamType.for_value(value))

    def prepare_bindings(self, bindings: Sequence[Any]) -> list[Any]:
        """Turn booleans into ints and dates into the grammar's date format."""
        prepared: list[Any] = []
        for value in bindings:
            if isinstance(value, bool):
                value = int(value)
            elif isinstance(value, (datetime.datetime, datetime.date)):
                value = value.strftime(self.grammar.date_format)
            prepared.append(value)
        return prepared

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def records_have_been_modified(self, value: bool = True) -> None:
        if not self._records_modified:
            self._records_modified = value

    def has_modified_records(self) -> bool:
        return self._records_modified

    def forget_records_modification(self) -> None:
        self._records_modified = False

    def get_last_insert_id(self) -> Any:
        return self._last_insert_id or None

    def get_name(self) -> str:
        return self.name

    def get_database_name(self) -> str:
        return self.config.database

    def get_table_prefix(self) -> str:
        return self.config.prefix

    def get_query_grammar(self) -> Grammar:
        return self.grammar

    def get_driver(self) -> DriverAdapter:
        if self._driver is None:
            raise ConnectionClosedError(self.name)
        return self._driver

    def is_connected(self) -> bool:
        return self._driver is not None

    def disconnect(self) -> None:
        """Close the driver handle; later statements raise ConnectionClosedError."""
        if self._driver is None:
            return
        self._driver.close()
        self._driver = None
        logger.info("Closed database connection [%s]", self.name)
