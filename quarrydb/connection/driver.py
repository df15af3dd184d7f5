"""Driver adapter contract and its DB-API 2.0 implementation.

A :class:`~quarrydb.connection.base.Connection` never talks to a database
module directly.  It goes through a :class:`DriverAdapter`:

    statement = driver.prepare("SELECT * FROM users WHERE id = ?")
    statement.bind(1, 42, ParamType.INT)
    statement.execute()
    rows = statement.fetch_all()

:class:`DBAPIDriver` adapts any PEP 249 connection (``sqlite3``,
``mysql.connector``, ...).  SQL always arrives with ``?`` placeholders and is
translated to the module's ``paramstyle`` here.
"""
from __future__ import annotations

import enum
import re
from typing import Any, Protocol

# A quoted string literal, or a bare ``?`` / ``%`` outside of one.
_TOKEN = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|`[^`]*`|\?|%")


class ParamType(enum.Enum):
    """Type tag passed with every bound value."""

    NULL = "null"
    INT = "int"
    STR = "str"
    LOB = "lob"

    @classmethod
    def for_value(cls, value: Any) -> ParamType:
        if value is None:
            return cls.NULL
        if isinstance(value, int) and not isinstance(value, bool):
            return cls.INT
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls.LOB
        return cls.STR


class Statement(Protocol):
    def bind(self, position: int, value: Any, param_type: ParamType) -> None: ...

    def execute(self) -> None: ...

    def fetch_all(self) -> list[dict[str, Any]]: ...

    def row_count(self) -> int: ...


class DriverAdapter(Protocol):
    def prepare(self, sql: str) -> Statement: ...

    def last_insert_id(self) -> Any: ...

    def server_version(self) -> str | None: ...

    def close(self) -> None: ...


def translate_placeholders(sql: str, paramstyle: str, escape_percent: bool = True) -> str:
    """Rewrite ``?`` placeholders for ``paramstyle``.

    Placeholders and ``%`` signs inside quoted literals or identifiers are
    left alone.  For ``format`` / ``pyformat`` a bare ``%`` is doubled unless
    ``escape_percent`` is false.
    """
    if paramstyle == "qmark":
        return sql
    if paramstyle not in ("format", "pyformat"):
        raise ValueError(f"Unsupported DB-API paramstyle: {paramstyle!r}")

    def replace(match: re.Match[str]) -> str:
        token = match.group(0)
        if token == "?":
            return "%s"
        if token == "%":
            return "%%" if escape_percent else "%"
        return token

    return _TOKEN.sub(replace, sql)


class DBAPIStatement:
    """One prepared statement on a DB-API cursor."""

    def __init__(self, driver: DBAPIDriver, sql: str) -> None:
        self._driver = driver
        self.sql = sql
        self._params: dict[int, Any] = {}
        self._rows: list[dict[str, Any]] = []
        self._row_count = 0

    def bind(self, position: int, value: Any, param_type: ParamType) -> None:
        """Bind ``value`` at 1-based ``position``."""
        if param_type is ParamType.NULL:
            value = None
        elif param_type is ParamType.LOB:
            value = bytes(value)
        self._params[position] = value

    def execute(self) -> None:
        params = tuple(self._params[position] for position in sorted(self._params))
        cursor = self._driver.handle.cursor()
        try:
            cursor.execute(self._driver.translate(self.sql), params)
            if cursor.description:
                names = [column[0] for column in cursor.description]
                self._rows = [dict(zip(names, row)) for row in cursor.fetchall()]
            else:
                self._rows = []
            self._row_count = cursor.rowcount
            self._driver.last_row_id = cursor.lastrowid
        finally:
            cursor.close()

    def fetch_all(self) -> list[dict[str, Any]]:
        return self._rows

    def row_count(self) -> int:
        return max(self._row_count, 0)


class DBAPIDriver:
    """:class:`DriverAdapter` over a PEP 249 connection object.

    Args:
        handle: An open DB-API connection.
        paramstyle: The owning module's ``paramstyle`` (``qmark``, ``format``
            or ``pyformat``).
        escape_percent: Double bare ``%`` signs for ``format`` styles.  Drivers
            that substitute ``%s`` without ``%`` formatting (``mysql.connector``)
            pass ``False``.
        version_query: SQL returning the server version as its first column.
    """

    def __init__(
        self,
        handle: Any,
        paramstyle: str = "qmark",
        escape_percent: bool = True,
        version_query: str | None = None,
    ) -> None:
        self.handle = handle
        self.paramstyle = paramstyle
        self.escape_percent = escape_percent
        self.version_query = version_query
        self.last_row_id: Any = None

    def translate(self, sql: str) -> str:
        return translate_placeholders(sql, self.paramstyle, self.escape_percent)

    def prepare(self, sql: str) -> DBAPIStatement:
        return DBAPIStatement(self, sql)

    def last_insert_id(self) -> Any:
        return self.last_row_id

    def server_version(self) -> str | None:
        if self.version_query is None:
            return None
        statement = self.prepare(self.version_query)
        statement.execute()
        rows = statement.fetch_all()
        if not rows:
            return None
        return str(next(iter(rows[0].values())))

    def close(self) -> None:
        self.handle.close()
