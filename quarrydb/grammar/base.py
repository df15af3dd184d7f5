"""Base SQL grammar: clause model → SQL text with ``?`` placeholders.

The Template Method pattern is used:

- ``Grammar`` defines the algorithm skeleton for compiling every statement
  kind (select / exists / insert / update / delete) clause by clause.
- ``MySqlGrammar`` and ``SQLiteGrammar`` override dialect-specific steps
  (identifier quoting, random ordering, locking, index hints, union wrapping
  and trailing ``ORDER BY`` / ``LIMIT`` on writes).

A grammar never mutates the :class:`~quarrydb.query.clauses.QueryState` it is
given.  Every component method emits placeholders in the same order as
:data:`~quarrydb.query.clauses.BINDING_GROUPS`, which is what lets the builder
flatten its binding groups and hand them straight to the driver.
"""
from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from typing import Any, ClassVar

from quarrydb.errors import CompilationError, InvalidOperatorError
from quarrydb.query.clauses import (
    AggregateClause,
    BasicPredicate,
    Column,
    ColumnPredicate,
    FullTextPredicate,
    IndexHint,
    InPredicate,
    JoinClause,
    NullPredicate,
    Order,
    OrderClause,
    Predicate,
    QueryState,
    RawOrderClause,
    RawPredicate,
    UnionClause,
)
from quarrydb.query.expression import Expression

_ALIAS_RE = re.compile(r"\s+as\s+", re.IGNORECASE)
_LEADING_BOOLEAN_RE = re.compile(r"^(and|or) ", re.IGNORECASE)


class Grammar:
    """Dialect-neutral SQL compiler.

    Args:
        table_prefix: Prefix prepended to every table name.
    """

    #: Operators accepted by ``where`` / ``having`` in every dialect.
    operators: ClassVar[tuple[str, ...]] = (
        "=", "<", ">", "<=", ">=", "<>", "!=", "<=>",
        "like", "like binary", "not like", "ilike", "in", "not in",
        "all", "and", "any", "between", "exists", "not", "or", "some",
        "&", "|", "^", "<<", ">>", "&~", "is", "is not",
        "rlike", "not rlike", "regexp", "not regexp",
        "~", "~*", "!~", "!~*", "similar to",
        "not similar to", "not ilike", "~~*", "!~~*",
    )

    #: Additional operators accepted by a specific dialect.
    extra_operators: ClassVar[tuple[str, ...]] = ()

    #: LIMIT emitted in front of an OFFSET that has no limit of its own.
    unbounded_limit: ClassVar[int] = -1

    #: Components of a SELECT, compiled in this order.
    select_components: ClassVar[tuple[str, ...]] = (
        "aggregate",
        "columns",
        "from_",
        "index_hint",
        "joins",
        "wheres",
        "groups",
        "havings",
        "orders",
        "limit",
        "offset",
        "lock",
    )

    #: Identifier quote character.
    quote_char: ClassVar[str] = '"'

    #: strftime format used when binding date / datetime values.
    date_format: ClassVar[str] = "%Y-%m-%d %H:%M:%S"

    def __init__(self, table_prefix: str = "") -> None:
        self.table_prefix = table_prefix

    @property
    def dialect_name(self) -> str:
        return "generic"

    # ------------------------------------------------------------------
    # Operator handling (used by the builder at build time)
    # ------------------------------------------------------------------

    def get_operators(self) -> tuple[str, ...]:
        return self.operators + self.extra_operators

    def invalid_operator(self, operator: Any) -> bool:
        """Return ``True`` if ``operator`` is not a recognised comparison."""
        return not isinstance(operator, str) or operator.lower() not in self.get_operators()

    def invalid_operator_and_value(self, operator: Any, value: Any) -> bool:
        """A ``None`` value may only be compared with ``=``, ``<>`` or ``!=``."""
        return (
            value is None
            and isinstance(operator, str)
            and operator.lower() in self.get_operators()
            and operator not in ("=", "<>", "!=")
        )

    def prepare_value_and_operator(
        self, value: Any, operator: Any, use_default: bool = False
    ) -> tuple[Any, Any]:
        """Resolve the ``(value, operator)`` pair of a two- or three-argument call.

        Args:
            value: The third argument (meaningless when ``use_default``).
            operator: The second argument.
            use_default: ``True`` when the caller passed only column and value.

        Raises:
            InvalidOperatorError: For a ``None`` value with an ordering operator.
        """
        if use_default:
            return operator, "="
        if self.invalid_operator_and_value(operator, value):
            raise InvalidOperatorError(operator, value)
        return value, operator

    @staticmethod
    def flatten_value(value: Any) -> Any:
        """Reduce a (possibly nested) list to the first scalar it contains."""
        while isinstance(value, (list, tuple)):
            if not value:
                return None
            value = value[0]
        return value

    # ------------------------------------------------------------------
    # Quoting helpers
    # ------------------------------------------------------------------

    def wrap(self, value: Column, prefix_alias: bool = False) -> str:
        """Quote a column reference (``table.column``, ``col as alias``, ``*``)."""
        if isinstance(value, Expression):
            return value.value
        if _ALIAS_RE.search(value):
            return self._wrap_aliased_value(value, prefix_alias)
        return self._wrap_segments(value.split("."))

    def wrap_table(self, table: Column) -> str:
        """Quote a table reference and apply the connection's table prefix."""
        if isinstance(table, Expression):
            return table.value
        return self.wrap(self.table_prefix + table, prefix_alias=True)

    def wrap_value(self, value: str) -> str:
        if value == "*":
            return value
        q = self.quote_char
        return f"{q}{value.replace(q, q + q)}{q}"

    def _wrap_aliased_value(self, value: str, prefix_alias: bool = False) -> str:
        name, alias = _ALIAS_RE.split(value, maxsplit=1)
        if prefix_alias:
            alias = self.table_prefix + alias
        return f"{self.wrap(name)} AS {self.wrap_value(alias)}"

    def _wrap_segments(self, segments: list[str]) -> str:
        wrapped = [
            self.wrap_table(segment) if i == 0 and len(segments) > 1 else self.wrap_value(segment)
            for i, segment in enumerate(segments)
        ]
        return ".".join(wrapped)

    def columnize(self, columns: Iterable[Column]) -> str:
        return ", ".join(self.wrap(column) for column in columns)

    @staticmethod
    def parameter(value: Any) -> str:
        """Return the placeholder for ``value`` (raw SQL for an Expression)."""
        return value.value if isinstance(value, Expression) else "?"

    def parameterize(self, values: Iterable[Any]) -> str:
        return ", ".join(self.parameter(value) for value in values)

    # ------------------------------------------------------------------
    # SELECT
    # ------------------------------------------------------------------

    def compile_select(self, query: QueryState) -> str:
        """Compile a SELECT statement.

        Args:
            query: The clause model; it is never modified.

        Returns:
            SQL text whose placeholders follow the flattened binding order.
        """
        if (query.unions or query.havings) and query.aggregate is not None:
            return self._compile_union_aggregate(query)

        if query.columns is None:
            query = replace(query, columns=["*"])
        if query.offset is not None and query.limit is None:
            query = replace(query, limit=self.unbounded_limit)

        sql = self._concatenate(self._compile_components(query))

        if query.unions:
            sql = f"{self.wrap_union(sql)} {self._compile_unions(query)}"

        return sql

    def _compile_components(self, query: QueryState) -> list[str]:
        segments: list[str] = []
        for component in self.select_components:
            value = getattr(query, component)
            if value is None or value == []:
                continue
            compiler = getattr(self, f"compile_{component.rstrip('_')}")
            segments.append(compiler(query, value))
        return segments

    def compile_aggregate(self, query: QueryState, aggregate: AggregateClause) -> str:
        column = self.columnize(aggregate.columns)

        # DISTINCT applies to the aggregated column, not to the single result row.
        if isinstance(query.distinct, list):
            column = f"DISTINCT {self.columnize(query.distinct)}"
        elif query.distinct and column != "*":
            column = f"DISTINCT {column}"

        return f"SELECT {aggregate.function.upper()}({column}) AS aggregate"

    def compile_columns(self, query: QueryState, columns: Sequence[Column]) -> str:
        # The aggregate component already produced the SELECT list.
        if query.aggregate is not None:
            return ""
        select = "SELECT DISTINCT " if query.distinct else "SELECT "
        return select + self.columnize(columns)

    def compile_from(self, query: QueryState, table: Column) -> str:
        return f"FROM {self.wrap_table(table)}"

    def compile_index_hint(self, query: QueryState, hint: IndexHint) -> str:
        raise CompilationError(
            f"Index hints are not supported by the {self.dialect_name} grammar.",
            clause="index_hint",
        )

    def compile_joins(self, query: QueryState, joins: Sequence[JoinClause]) -> str:
        return " ".join(self._compile_join(join) for join in joins)

    def _compile_join(self, join: JoinClause) -> str:
        second = self.parameter(join.second) if join.where else self.wrap(join.second)
        return (
            f"{join.type} JOIN {self.wrap_table(join.table)} "
            f"ON {self.wrap(join.first)} {join.operator} {second}"
        )

    def compile_wheres(self, query: QueryState, wheres: Sequence[Predicate] | None = None) -> str:
        """Compile the WHERE clause, or ``""`` when there are no predicates."""
        wheres = query.wheres if wheres is None else wheres
        if not wheres:
            return ""
        return f"WHERE {self._compile_predicates(wheres)}"

    def compile_groups(self, query: QueryState, groups: Sequence[Column]) -> str:
        return f"GROUP BY {self.columnize(groups)}"

    def compile_havings(self, query: QueryState, havings: Sequence[Predicate]) -> str:
        return f"HAVING {self._compile_predicates(havings)}"

    def compile_orders(self, query: QueryState, orders: Sequence[Order]) -> str:
        if not orders:
            return ""
        return "ORDER BY " + ", ".join(self._compile_order(order) for order in orders)

    def _compile_order(self, order: Order) -> str:
        if isinstance(order, RawOrderClause):
            return order.sql
        if isinstance(order, OrderClause):
            return f"{self.wrap(order.column)} {order.direction}"
        raise CompilationError(f"Unknown order type: {type(order).__name__}", clause="orders")

    def compile_random(self, seed: str | int = "") -> str:
        return "RANDOM()"

    def compile_limit(self, query: QueryState, limit: int) -> str:
        return f"LIMIT {int(limit)}"

    def compile_offset(self, query: QueryState, offset: int) -> str:
        return f"OFFSET {int(offset)}"

    def compile_lock(self, query: QueryState, value: bool | str) -> str:
        return value if isinstance(value, str) else ""

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def _compile_predicates(self, predicates: Sequence[Predicate]) -> str:
        sql = " ".join(
            f"{predicate.boolean} {self.compile_predicate(predicate)}" for predicate in predicates
        )
        return self._remove_leading_boolean(sql)

    def compile_predicate(self, predicate: Predicate) -> str:
        """Compile one predicate node (without its connector)."""
        if isinstance(predicate, BasicPredicate):
            return self.where_basic(predicate)
        if isinstance(predicate, ColumnPredicate):
            return self.where_column(predicate)
        if isinstance(predicate, InPredicate):
            return self.where_in(predicate)
        if isinstance(predicate, NullPredicate):
            return self.where_null(predicate)
        if isinstance(predicate, RawPredicate):
            return predicate.sql
        if isinstance(predicate, FullTextPredicate):
            return self.where_full_text(predicate)
        raise CompilationError(
            f"Unknown predicate type: {type(predicate).__name__}", clause="where"
        )

    def where_basic(self, predicate: BasicPredicate) -> str:
        return f"{self.wrap(predicate.column)} {predicate.operator} {self.parameter(predicate.value)}"

    def where_column(self, predicate: ColumnPredicate) -> str:
        return f"{self.wrap(predicate.first)} {predicate.operator} {self.wrap(predicate.second)}"

    def where_in(self, predicate: InPredicate) -> str:
        if not predicate.values:
            # An empty list can never match (IN) or always matches (NOT IN).
            return "1 = 1" if predicate.negated else "0 = 1"
        keyword = "NOT IN" if predicate.negated else "IN"
        return f"{self.wrap(predicate.column)} {keyword} ({self.parameterize(predicate.values)})"

    def where_null(self, predicate: NullPredicate) -> str:
        suffix = "IS NOT NULL" if predicate.negated else "IS NULL"
        return f"{self.wrap(predicate.column)} {suffix}"

    def where_full_text(self, predicate: FullTextPredicate) -> str:
        raise CompilationError(
            f"Full-text predicates are not supported by the {self.dialect_name} grammar.",
            clause="where",
        )

    # ------------------------------------------------------------------
    # UNION
    # ------------------------------------------------------------------

    def _compile_unions(self, query: QueryState) -> str:
        sql = "".join(self._compile_union(union) for union in query.unions)

        if query.union_orders:
            sql += " " + self.compile_orders(query, query.union_orders)
        union_limit = query.union_limit
        if union_limit is None and query.union_offset is not None:
            union_limit = self.unbounded_limit
        if union_limit is not None:
            sql += " " + self.compile_limit(query, union_limit)
        if query.union_offset is not None:
            sql += " " + self.compile_offset(query, query.union_offset)

        return sql.lstrip()

    def _compile_union(self, union: UnionClause) -> str:
        conjunction = " UNION ALL " if union.all else " UNION "
        return conjunction + self.wrap_union(union.query.to_sql())

    def wrap_union(self, sql: str) -> str:
        return f"({sql})"

    def _compile_union_aggregate(self, query: QueryState) -> str:
        aggregate: AggregateClause = query.aggregate  # type: ignore[assignment]
        sql = self.compile_aggregate(query, aggregate)
        inner = self.compile_select(replace(query, aggregate=None))
        return f"{sql} FROM ({inner}) AS {self.wrap_table('temp_table')}"

    # ------------------------------------------------------------------
    # EXISTS
    # ------------------------------------------------------------------

    def compile_exists(self, query: QueryState) -> str:
        return f"SELECT EXISTS({self.compile_select(query)}) AS {self.wrap('exists')}"

    # ------------------------------------------------------------------
    # INSERT
    # ------------------------------------------------------------------

    def compile_insert(self, query: QueryState, values: Sequence[Mapping[str, Any]]) -> str:
        """Compile a (batch) INSERT.

        Every row must carry the same columns as the first one.

        Raises:
            CompilationError: If rows disagree on their column set.
        """
        table = self.wrap_table(self._require_table(query))

        if not values:
            return f"INSERT INTO {table} DEFAULT VALUES"

        columns = list(values[0].keys())
        for record in values[1:]:
            if set(record.keys()) != set(columns):
                raise CompilationError(
                    "Every row of a batch insert must have the same columns.", clause="insert"
                )

        parameters = ", ".join(
            f"({self.parameterize(record[column] for column in columns)})" for record in values
        )
        if not columns:
            return f"INSERT INTO {table} () VALUES {parameters}"
        return f"INSERT INTO {table} ({self.columnize(columns)}) VALUES {parameters}"

    # ------------------------------------------------------------------
    # UPDATE
    # ------------------------------------------------------------------

    def compile_update(self, query: QueryState, values: Mapping[str, Any]) -> str:
        table = self.wrap_table(self._require_table(query))
        columns = self._compile_update_columns(values)
        where = self.compile_wheres(query)

        if query.joins:
            sql = self._compile_update_with_joins(query, table, columns, where)
        else:
            sql = self._compile_update_without_joins(query, table, columns, where)
        return sql.strip()

    def _compile_update_columns(self, values: Mapping[str, Any]) -> str:
        return ", ".join(f"{self.wrap(key)} = {self.parameter(value)}" for key, value in values.items())

    def _compile_update_without_joins(
        self, query: QueryState, table: str, columns: str, where: str
    ) -> str:
        return f"UPDATE {table} SET {columns} {where}"

    def _compile_update_with_joins(
        self, query: QueryState, table: str, columns: str, where: str
    ) -> str:
        joins = self.compile_joins(query, query.joins)
        return f"UPDATE {table} {joins} SET {columns} {where}"

    def prepare_bindings_for_update(self, query: QueryState, values: Mapping[str, Any]) -> list[Any]:
        """Order bindings for an UPDATE: join, SET values, then where.

        Only the groups the statement compiles are returned; ordering, grouping
        and union bindings on the builder are ignored.
        """
        return [*query.bindings["join"], *values.values(), *query.bindings["where"]]

    # ------------------------------------------------------------------
    # DELETE
    # ------------------------------------------------------------------

    def compile_delete(self, query: QueryState) -> str:
        table = self.wrap_table(self._require_table(query))
        where = self.compile_wheres(query)

        if query.joins:
            sql = self._compile_delete_with_joins(query, table, where)
        else:
            sql = self._compile_delete_without_joins(query, table, where)
        return sql.strip()

    def _compile_delete_without_joins(self, query: QueryState, table: str, where: str) -> str:
        return f"DELETE FROM {table} {where}"

    def _compile_delete_with_joins(self, query: QueryState, table: str, where: str) -> str:
        alias = table.split(" AS ")[-1]
        joins = self.compile_joins(query, query.joins)
        return f"DELETE {alias} FROM {table} {joins} {where}"

    def prepare_bindings_for_delete(self, query: QueryState) -> list[Any]:
        return [*query.bindings["join"], *query.bindings["where"]]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _concatenate(segments: Iterable[str]) -> str:
        return " ".join(segment for segment in segments if segment != "").strip()

    @staticmethod
    def _remove_leading_boolean(value: str) -> str:
        return _LEADING_BOOLEAN_RE.sub("", value, count=1)

    @staticmethod
    def _require_table(query: QueryState) -> Column:
        if query.from_ is None:
            raise CompilationError("No table has been set on the query.", clause="from")
        return query.from_
