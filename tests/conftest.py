"""Shared pytest fixtures for quarrydb unit and integration tests."""
from __future__ import annotations

import pytest

from quarrydb.config import ConnectionConfig, DatabaseConfig
from quarrydb.connection.manager import ConnectionManager
from quarrydb.grammar import Grammar, MySqlGrammar, SQLiteGrammar
from quarrydb.query.builder import QueryBuilder
from tests.fixtures import StubConnection, StubDriver


@pytest.fixture()
def grammar() -> Grammar:
    return Grammar()


@pytest.fixture()
def mysql_grammar() -> MySqlGrammar:
    return MySqlGrammar()


@pytest.fixture()
def sqlite_grammar() -> SQLiteGrammar:
    return SQLiteGrammar()


@pytest.fixture()
def connection() -> StubConnection:
    """A connection on a stub driver using the base grammar."""
    return StubConnection(ConnectionConfig(driver="stub"), name="stub")


@pytest.fixture()
def driver(connection: StubConnection) -> StubDriver:
    return connection.get_driver()  # type: ignore[return-value]


@pytest.fixture()
def query(connection: StubConnection) -> QueryBuilder:
    return connection.query()


@pytest.fixture()
def db() -> ConnectionManager:
    """Manager whose default connection is a stub connection."""
    return ConnectionManager(
        DatabaseConfig(default="stub", connections={"stub": ConnectionConfig(driver="stub")})
    )


@pytest.fixture()
def stub(db: ConnectionManager) -> StubDriver:
    """The stub driver behind ``db``'s default connection."""
    return db.connection().get_driver()  # type: ignore[return-value]
