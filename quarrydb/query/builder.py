"""Fluent query builder.

``QueryBuilder`` accumulates a :class:`~quarrydb.query.clauses.QueryState`
and its per-group bindings.  Mutators return ``self`` so calls chain::

    users = (
        connection.table("users")
        .where("active", True)
        .where_in("role", ["admin", "editor"])
        .order_by("created_at", "desc")
        .limit(10)
        .get()
    )

Terminal operations compile the state through the injected
:class:`~quarrydb.grammar.base.Grammar` and run it on the bound
:class:`~quarrydb.connection.base.Connection`.  Apart from :meth:`aggregate`
and the explicit ``id`` argument of :meth:`delete`, terminal operations leave
the state untouched, so a builder can be compiled or executed repeatedly.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from quarrydb.collection import Collection
from quarrydb.errors import (
    InvalidBindingTypeError,
    InvalidOperatorError,
    InvalidOrderDirectionError,
    QueryBuildError,
)
from quarrydb.query.clauses import (
    BINDING_GROUPS,
    AggregateClause,
    BasicPredicate,
    Column,
    ColumnPredicate,
    FullTextPredicate,
    IndexHint,
    InPredicate,
    JoinClause,
    NullPredicate,
    OrderClause,
    QueryState,
    RawOrderClause,
    RawPredicate,
    UnionClause,
    normalize_boolean,
)
from quarrydb.query.expression import Expression

if TYPE_CHECKING:
    from quarrydb.connection.base import Connection
    from quarrydb.grammar.base import Grammar

# Distinguishes ``where("a", 1)`` from ``where("a", "=", None)``.
_MISSING: Any = object()


class QueryBuilder:
    """Builds and runs one SQL statement.

    Args:
        grammar: Dialect grammar used to compile the state.
        connection: Connection used by terminal operations.  A builder without
            a connection can still be compiled with :meth:`to_sql`.
    """

    def __init__(self, grammar: Grammar, connection: Connection | None = None) -> None:
        self.grammar = grammar
        self.connection = connection
        self.state = QueryState()

    # ------------------------------------------------------------------
    # SELECT list / FROM
    # ------------------------------------------------------------------

    def select(self, *columns: Column | Sequence[Column]) -> QueryBuilder:
        """Replace the selected columns (defaults to ``*``)."""
        self.state.columns = []
        self.state.bindings["select"] = []
        return self.add_select(*(columns or ("*",)))

    def add_select(self, *columns: Column | Sequence[Column]) -> QueryBuilder:
        if self.state.columns is None:
            self.state.columns = []
        self.state.columns.extend(_flatten_columns(columns))
        return self

    def select_raw(self, expression: str, bindings: Sequence[Any] | None = None) -> QueryBuilder:
        self.add_select(Expression(expression))
        if bindings:
            self.add_binding(list(bindings), "select")
        return self

    def distinct(self, *columns: Column) -> QueryBuilder:
        """Mark the query DISTINCT, optionally for explicit aggregate columns."""
        self.state.distinct = list(columns) if columns else True
        return self

    def from_(self, table: Column, alias: str | None = None) -> QueryBuilder:
        self.state.from_ = f"{table} as {alias}" if alias else table
        return self

    def from_raw(self, expression: str, bindings: Sequence[Any] | None = None) -> QueryBuilder:
        self.state.from_ = Expression(expression)
        if bindings:
            self.add_binding(list(bindings), "from")
        return self

    def use_index(self, index: str) -> QueryBuilder:
        self.state.index_hint = IndexHint("use", index)
        return self

    def force_index(self, index: str) -> QueryBuilder:
        self.state.index_hint = IndexHint("force", index)
        return self

    def ignore_index(self, index: str) -> QueryBuilder:
        self.state.index_hint = IndexHint("ignore", index)
        return self

    # ------------------------------------------------------------------
    # JOIN
    # ------------------------------------------------------------------

    def join(
        self,
        table: Column,
        first: Column,
        operator: Any = None,
        second: Any = _MISSING,
        type: str = "INNER",
        where: bool = False,
    ) -> QueryBuilder:
        """Add a join.  ``join(t, a, b)`` is shorthand for ``join(t, a, "=", b)``.

        With ``where=True`` the right-hand side is a value bound into the
        ``join`` group rather than a column.
        """
        if second is _MISSING:
            operator, second = "=", operator
        self.state.joins.append(
            JoinClause(table, first, operator, second, type.upper(), where)
        )
        if where:
            self.add_binding(second, "join")
        return self

    def join_where(
        self, table: Column, first: Column, operator: str, value: Any, type: str = "INNER"
    ) -> QueryBuilder:
        return self.join(table, first, operator, value, type, where=True)

    def left_join(
        self, table: Column, first: Column, operator: Any = None, second: Any = _MISSING
    ) -> QueryBuilder:
        return self.join(table, first, operator, second, "LEFT")

    def right_join(
        self, table: Column, first: Column, operator: Any = None, second: Any = _MISSING
    ) -> QueryBuilder:
        return self.join(table, first, operator, second, "RIGHT")

    # ------------------------------------------------------------------
    # WHERE
    # ------------------------------------------------------------------

    def where(
        self,
        column: Column,
        operator: Any = None,
        value: Any = _MISSING,
        boolean: str = "AND",
    ) -> QueryBuilder:
        """Add a basic ``column operator value`` predicate.

        ``where("age", 30)`` means ``age = 30``.  An unrecognised operator is
        taken to be the value (``where("name", "Ann", None)`` style shortcuts),
        and a ``None`` value becomes ``IS NULL`` / ``IS NOT NULL``.

        Raises:
            InvalidOperatorError: For ``None`` combined with an ordering operator.
        """
        value, operator = self.grammar.prepare_value_and_operator(
            value, operator, value is _MISSING
        )

        if self.grammar.invalid_operator(operator):
            value, operator = operator, "="

        if value is None:
            return self.where_null(column, boolean, negate=operator != "=")

        self.state.wheres.append(
            BasicPredicate(column, operator, value, normalize_boolean(boolean))
        )
        self.add_binding(self.grammar.flatten_value(value), "where")
        return self

    def or_where(self, column: Column, operator: Any = None, value: Any = _MISSING) -> QueryBuilder:
        return self.where(column, operator, value, "OR")

    def where_not(
        self, column: Column, operator: Any = None, value: Any = _MISSING, boolean: str = "AND"
    ) -> QueryBuilder:
        return self.where(column, operator, value, f"{boolean} NOT")

    def or_where_not(
        self, column: Column, operator: Any = None, value: Any = _MISSING
    ) -> QueryBuilder:
        return self.where_not(column, operator, value, "OR")

    def where_column(
        self, first: Column, operator: Any = None, second: Any = _MISSING, boolean: str = "AND"
    ) -> QueryBuilder:
        """Compare two columns: ``where_column("updated_at", ">", "created_at")``."""
        if second is _MISSING:
            operator, second = "=", operator
        elif self.grammar.invalid_operator(operator):
            raise InvalidOperatorError(operator, second)
        self.state.wheres.append(
            ColumnPredicate(first, operator, second, normalize_boolean(boolean))
        )
        return self

    def or_where_column(
        self, first: Column, operator: Any = None, second: Any = _MISSING
    ) -> QueryBuilder:
        return self.where_column(first, operator, second, "OR")

    def where_in(
        self,
        column: Column,
        values: Iterable[Any],
        boolean: str = "AND",
        negate: bool = False,
    ) -> QueryBuilder:
        values = tuple(values)
        self.state.wheres.append(
            InPredicate(column, values, negate, normalize_boolean(boolean))
        )
        self.add_binding(list(values), "where")
        return self

    def or_where_in(self, column: Column, values: Iterable[Any]) -> QueryBuilder:
        return self.where_in(column, values, "OR")

    def where_not_in(
        self, column: Column, values: Iterable[Any], boolean: str = "AND"
    ) -> QueryBuilder:
        return self.where_in(column, values, boolean, negate=True)

    def or_where_not_in(self, column: Column, values: Iterable[Any]) -> QueryBuilder:
        return self.where_not_in(column, values, "OR")

    def where_null(
        self,
        columns: Column | Sequence[Column],
        boolean: str = "AND",
        negate: bool = False,
    ) -> QueryBuilder:
        for column in _wrap_list(columns):
            self.state.wheres.append(
                NullPredicate(column, negate, normalize_boolean(boolean))
            )
        return self

    def or_where_null(self, column: Column) -> QueryBuilder:
        return self.where_null(column, "OR")

    def where_not_null(
        self, columns: Column | Sequence[Column], boolean: str = "AND"
    ) -> QueryBuilder:
        return self.where_null(columns, boolean, negate=True)

    def or_where_not_null(self, column: Column) -> QueryBuilder:
        return self.where_not_null(column, "OR")

    def where_raw(
        self, sql: str, bindings: Sequence[Any] | Any = (), boolean: str = "AND"
    ) -> QueryBuilder:
        self.state.wheres.append(RawPredicate(sql, normalize_boolean(boolean)))
        self.add_binding(list(_wrap_list(bindings)), "where")
        return self

    def or_where_raw(self, sql: str, bindings: Sequence[Any] | Any = ()) -> QueryBuilder:
        return self.where_raw(sql, bindings, "OR")

    def where_full_text(
        self,
        columns: Column | Sequence[Column],
        value: str,
        mode: str = "natural",
        expanded: bool = False,
        boolean: str = "AND",
    ) -> QueryBuilder:
        """Add a full-text match (MySQL grammar only)."""
        self.state.wheres.append(
            FullTextPredicate(
                tuple(_wrap_list(columns)), value, mode, expanded, normalize_boolean(boolean)
            )
        )
        self.add_binding(value, "where")
        return self

    def or_where_full_text(
        self, columns: Column | Sequence[Column], value: str, mode: str = "natural"
    ) -> QueryBuilder:
        return self.where_full_text(columns, value, mode, boolean="OR")

    # ------------------------------------------------------------------
    # GROUP BY / HAVING
    # ------------------------------------------------------------------

    def group_by(self, *groups: Column | Sequence[Column]) -> QueryBuilder:
        self.state.groups.extend(_flatten_columns(groups))
        return self

    def group_by_raw(self, sql: str, bindings: Sequence[Any] = ()) -> QueryBuilder:
        self.state.groups.append(Expression(sql))
        self.add_binding(list(bindings), "groupBy")
        return self

    def having(
        self,
        column: Column,
        operator: Any = None,
        value: Any = _MISSING,
        boolean: str = "AND",
    ) -> QueryBuilder:
        """Add a HAVING predicate with the same operator rules as :meth:`where`."""
        value, operator = self.grammar.prepare_value_and_operator(
            value, operator, value is _MISSING
        )

        if self.grammar.invalid_operator(operator):
            value, operator = operator, "="

        if value is None:
            return self.having_null(column, boolean, negate=operator != "=")

        self.state.havings.append(
            BasicPredicate(column, operator, value, normalize_boolean(boolean))
        )
        self.add_binding(self.grammar.flatten_value(value), "having")
        return self

    def or_having(self, column: Column, operator: Any = None, value: Any = _MISSING) -> QueryBuilder:
        return self.having(column, operator, value, "OR")

    def having_null(
        self,
        columns: Column | Sequence[Column],
        boolean: str = "AND",
        negate: bool = False,
    ) -> QueryBuilder:
        for column in _wrap_list(columns):
            self.state.havings.append(
                NullPredicate(column, negate, normalize_boolean(boolean))
            )
        return self

    def having_not_null(
        self, columns: Column | Sequence[Column], boolean: str = "AND"
    ) -> QueryBuilder:
        return self.having_null(columns, boolean, negate=True)

    def or_having_null(self, column: Column) -> QueryBuilder:
        return self.having_null(column, "OR")

    def or_having_not_null(self, column: Column) -> QueryBuilder:
        return self.having_not_null(column, "OR")

    def having_raw(
        self, sql: str, bindings: Sequence[Any] = (), boolean: str = "AND"
    ) -> QueryBuilder:
        self.state.havings.append(RawPredicate(sql, normalize_boolean(boolean)))
        self.add_binding(list(bindings), "having")
        return self

    def or_having_raw(self, sql: str, bindings: Sequence[Any] = ()) -> QueryBuilder:
        return self.having_raw(sql, bindings, "OR")

    # ------------------------------------------------------------------
    # ORDER BY / LIMIT / OFFSET / LOCK
    # ------------------------------------------------------------------

    def order_by(self, column: Column, direction: str = "ASC") -> QueryBuilder:
        """Order by ``column``.  After a union, orders the combined result.

        Raises:
            InvalidOrderDirectionError: If ``direction`` is not ASC / DESC.
        """
        if not isinstance(direction, str) or direction.lower() not in ("asc", "desc"):
            raise InvalidOrderDirectionError(direction)
        target = self.state.union_orders if self.state.unions else self.state.orders
        target.append(OrderClause(column, direction.upper()))
        return self

    def order_by_desc(self, column: Column) -> QueryBuilder:
        return self.order_by(column, "DESC")

    def latest(self, column: Column = "created_at") -> QueryBuilder:
        return self.order_by(column, "DESC")

    def oldest(self, column: Column = "created_at") -> QueryBuilder:
        return self.order_by(column, "ASC")

    def in_random_order(self, seed: str | int = "") -> QueryBuilder:
        return self.order_by_raw(self.grammar.compile_random(seed))

    def order_by_raw(self, sql: str, bindings: Sequence[Any] = ()) -> QueryBuilder:
        if self.state.unions:
            self.state.union_orders.append(RawOrderClause(sql))
            self.add_binding(list(bindings), "unionOrder")
        else:
            self.state.orders.append(RawOrderClause(sql))
            self.add_binding(list(bindings), "order")
        return self

    def limit(self, value: int | None) -> QueryBuilder:
        """Set the row limit; negative values are ignored and ``None`` clears it."""
        field = "union_limit" if self.state.unions else "limit"
        if value is None:
            setattr(self.state, field, None)
        elif value >= 0:
            setattr(self.state, field, int(value))
        return self

    def take(self, value: int | None) -> QueryBuilder:
        return self.limit(value)

    def offset(self, value: int) -> QueryBuilder:
        """Set the row offset, clamped to zero."""
        field = "union_offset" if self.state.unions else "offset"
        setattr(self.state, field, max(0, int(value)))
        return self

    def skip(self, value: int) -> QueryBuilder:
        return self.offset(value)

    def for_page(self, page: int, per_page: int = 15) -> QueryBuilder:
        return self.offset((page - 1) * per_page).limit(per_page)

    def lock(self, value: bool | str = True) -> QueryBuilder:
        self.state.lock = value
        return self

    def lock_for_update(self) -> QueryBuilder:
        return self.lock(True)

    def shared_lock(self) -> QueryBuilder:
        return self.lock(False)

    # ------------------------------------------------------------------
    # UNION
    # ------------------------------------------------------------------

    def union(self, query: QueryBuilder, all: bool = False) -> QueryBuilder:
        """Append ``query`` as a UNION member; its bindings follow in attach order."""
        self.state.unions.append(UnionClause(query, all))
        self.add_binding(query.get_bindings(), "union")
        return self

    def union_all(self, query: QueryBuilder) -> QueryBuilder:
        return self.union(query, all=True)

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    def add_binding(self, value: Any, group: str = "where") -> QueryBuilder:
        """Append ``value`` (or each item of a list) to a binding group.

        Raw :class:`Expression` values are skipped; they never produce a
        placeholder.

        Raises:
            InvalidBindingTypeError: If ``group`` is not a known binding group.
        """
        if group not in self.state.bindings:
            raise InvalidBindingTypeError(group, list(BINDING_GROUPS))
        if isinstance(value, list):
            self.state.bindings[group].extend(self.clean_bindings(value))
        elif not isinstance(value, Expression):
            self.state.bindings[group].append(value)
        return self

    def get_bindings(self) -> list[Any]:
        """Return every binding, flattened in clause-group order."""
        return self.state.flat_bindings()

    def get_raw_bindings(self) -> dict[str, list[Any]]:
        return {group: list(values) for group, values in self.state.bindings.items()}

    @staticmethod
    def clean_bindings(bindings: Iterable[Any]) -> list[Any]:
        return [value for value in bindings if not isinstance(value, Expression)]

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def to_sql(self) -> str:
        return self.grammar.compile_select(self.state)

    def to_raw_sql(self) -> str:
        """Return the SQL with bindings interpolated, for debugging only."""
        head, *rest = self.to_sql().split("?")
        bindings = self.get_bindings()
        parts = [head]
        for position, tail in enumerate(rest):
            parts.append(_render_literal(bindings[position]) if position < len(bindings) else "?")
            parts.append(tail)
        return "".join(parts)

    def clone(self) -> QueryBuilder:
        cloned = QueryBuilder(self.grammar, self.connection)
        cloned.state = self.state.copy()
        return cloned

    def raw(self, value: str) -> Expression:
        return Expression(value)

    def get_connection(self) -> Connection:
        if self.connection is None:
            raise QueryBuildError("The query builder has no connection to run on.")
        return self.connection

    # ------------------------------------------------------------------
    # Terminal: reads
    # ------------------------------------------------------------------

    def get(self, columns: Sequence[Column] | None = None) -> Collection[dict[str, Any]]:
        """Run the SELECT; ``columns`` apply only when nothing was selected."""
        state = self.state
        if columns is not None and state.columns is None:
            state = replace(state, columns=list(columns))
        rows = self.get_connection().select(
            self.grammar.compile_select(state), state.flat_bindings()
        )
        return Collection(rows)

    def first(self, columns: Sequence[Column] | None = None) -> dict[str, Any] | None:
        return self.clone().limit(1).get(columns).first()

    def find(self, id: Any, columns: Sequence[Column] | None = None, key: str = "id") -> dict[str, Any] | None:
        return self.clone().where(key, "=", id).first(columns)

    def value(self, column: Column) -> Any:
        """Return a single column of the first row."""
        row = self.first([column])
        return next(iter(row.values())) if row else None

    def pluck(self, column: Column) -> list[Any]:
        return self.get([column]).pluck(_result_key(column)).all()

    def exists(self) -> bool:
        rows = self.get_connection().select(
            self.grammar.compile_exists(self.state), self.get_bindings()
        )
        if rows:
            return bool(rows[0]["exists"])
        return False

    def doesnt_exist(self) -> bool:
        return not self.exists()

    # ------------------------------------------------------------------
    # Terminal: aggregates
    # ------------------------------------------------------------------

    def count(self, columns: Column | Sequence[Column] = "*") -> int:
        return int(self.clone().aggregate("COUNT", _wrap_list(columns)) or 0)

    def min(self, column: Column) -> Any:
        return self.clone().aggregate("MIN", [column])

    def max(self, column: Column) -> Any:
        return self.clone().aggregate("MAX", [column])

    def sum(self, column: Column) -> Any:
        return self.clone().aggregate("SUM", [column]) or 0

    def avg(self, column: Column) -> Any:
        return self.clone().aggregate("AVG", [column])

    def aggregate(self, function: str, columns: Sequence[Column] = ("*",)) -> Any:
        """Run ``function(columns)`` on this builder and return the scalar.

        This mutates the builder: the aggregate stays set and, without a
        GROUP BY, any ordering is dropped.
        """
        results = self.set_aggregate(function, columns).get(list(columns))
        if not results.is_empty():
            row = {str(key).lower(): value for key, value in results[0].items()}
            return row["aggregate"]
        return None

    def set_aggregate(self, function: str, columns: Sequence[Column]) -> QueryBuilder:
        self.state.aggregate = AggregateClause(function.upper(), tuple(columns))
        if not (self.state.unions or self.state.havings):
            # Only the union/having form keeps the selected columns as a subquery.
            self.state.columns = None
            self.state.bindings["select"] = []
        if not self.state.groups:
            self.state.orders = []
            self.state.bindings["order"] = []
        return self

    # ------------------------------------------------------------------
    # Terminal: writes
    # ------------------------------------------------------------------

    def insert(self, values: Mapping[str, Any] | Sequence[Mapping[str, Any]]) -> bool:
        """Insert one row or a batch of rows.

        Column order is normalised by sorting each row's keys, so every row of a
        batch lines up with the column list taken from the first.
        """
        if not values:
            return True
        rows = [values] if isinstance(values, Mapping) else list(values)
        rows = [dict(sorted(row.items())) for row in rows]

        sql = self.grammar.compile_insert(self.state, rows)
        bindings = self.clean_bindings(value for row in rows for value in row.values())
        return self.get_connection().insert(sql, bindings)

    def insert_get_id(self, values: Mapping[str, Any]) -> Any:
        """Insert one row and return the id the database generated for it.

        An empty row still runs an INSERT so that defaults are applied.
        """
        if values:
            self.insert(values)
        else:
            self.get_connection().insert(self.grammar.compile_insert(self.state, []), [])
        return self.get_connection().get_last_insert_id()

    def update(self, values: Mapping[str, Any]) -> int:
        """Update matching rows and return the affected row count."""
        sql = self.grammar.compile_update(self.state, values)
        bindings = self.clean_bindings(
            self.grammar.prepare_bindings_for_update(self.state, values)
        )
        return self.get_connection().update(sql, bindings)

    def delete(self, id: Any = None) -> int:
        """Delete matching rows (or the row with ``id``) and return the count."""
        if id is not None:
            self.where("id", "=", id)
        sql = self.grammar.compile_delete(self.state)
        bindings = self.clean_bindings(
            self.grammar.prepare_bindings_for_delete(self.state)
        )
        return self.get_connection().delete(sql, bindings)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _wrap_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _flatten_columns(columns: Iterable[Any]) -> list[Column]:
    flat: list[Column] = []
    for column in columns:
        flat.extend(_wrap_list(column))
    return flat


def _result_key(column: Column) -> str:
    """The key a selected column appears under in a result row."""
    name = str(column)
    parts = name.lower().split(" as ")
    if len(parts) > 1:
        return name[len(name) - len(parts[-1]):].strip()
    return name.split(".")[-1]


def _render_literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    return "'" + str(value).replace("'", "''") + "'"
