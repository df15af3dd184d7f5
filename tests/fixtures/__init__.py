"""Test fixtures: sample DDL and a scriptable stub driver."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from quarrydb.config import ConnectionConfig
from quarrydb.connection.base import Connection
from quarrydb.connection.driver import ParamType
from quarrydb.connection.registry import ConnectionFactory

_FIXTURES_DIR = Path(__file__).parent


def load_ddl(target: Literal["sqlite", "mysql"] = "sqlite") -> str:
    """Return the sample DDL SQL string for the given backend."""
    return (_FIXTURES_DIR / f"ddl_{target}.sql").read_text()


def ddl_statements(target: Literal["sqlite", "mysql"] = "sqlite") -> list[str]:
    """The sample DDL split into single statements."""
    return [statement.strip() for statement in load_ddl(target).split(";") if statement.strip()]


# ---------------------------------------------------------------------------
# Stub driver
# ---------------------------------------------------------------------------


@dataclass
class ExecutedStatement:
    sql: str
    bindings: list[Any]
    types: list[ParamType]


class StubStatement:
    def __init__(self, driver: StubDriver, sql: str) -> None:
        self.driver = driver
        self.sql = sql
        self.bound: dict[int, tuple[Any, ParamType]] = {}

    def bind(self, position: int, value: Any, param_type: ParamType) -> None:
        self.bound[position] = (value, param_type)

    def execute(self) -> None:
        positions = sorted(self.bound)
        self.driver.executed.append(
            ExecutedStatement(
                self.sql,
                [self.bound[p][0] for p in positions],
                [self.bound[p][1] for p in positions],
            )
        )
        if self.driver.error is not None:
            raise self.driver.error

    def fetch_all(self) -> list[dict[str, Any]]:
        if self.driver.echo:
            return [{"position": p, "value": self.bound[p][0]} for p in sorted(self.bound)]
        if self.driver.results:
            return self.driver.results.pop(0)
        return []

    def row_count(self) -> int:
        return self.driver.affected_rows


@dataclass
class StubDriver:
    """Records every statement; SELECTs return queued result sets.

    With ``echo=True`` a SELECT instead returns one row per bound value,
    ``{"position": n, "value": v}``, in placeholder order.
    """

    echo: bool = False
    affected_rows: int = 1
    insert_id: Any = None
    version: str | None = None
    error: Exception | None = None
    results: list[list[dict[str, Any]]] = field(default_factory=list)
    executed: list[ExecutedStatement] = field(default_factory=list)
    closed: bool = False

    def queue(self, *results: list[dict[str, Any]]) -> None:
        self.results.extend(results)

    def prepare(self, sql: str) -> StubStatement:
        return StubStatement(self, sql)

    def last_insert_id(self) -> Any:
        return self.insert_id

    def server_version(self) -> str | None:
        return self.version

    def close(self) -> None:
        self.closed = True

    @property
    def statements(self) -> list[str]:
        return [executed.sql for executed in self.executed]

    @property
    def last(self) -> ExecutedStatement:
        return self.executed[-1]


class StubConnection(Connection):
    """Connection on a fresh :class:`StubDriver`, compiled with the base grammar."""

    def open_driver(self, config: ConnectionConfig) -> StubDriver:
        return StubDriver()


ConnectionFactory.register_class("stub", StubConnection)
