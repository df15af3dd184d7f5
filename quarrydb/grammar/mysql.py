"""MySQL dialect grammar."""
from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, ClassVar

from quarrydb.grammar.base import Grammar
from quarrydb.query.clauses import FullTextPredicate, IndexHint, QueryState


class MySqlGrammar(Grammar):
    """Compiles the clause model to MySQL-flavoured SQL.

    Differences from the base grammar:

    * identifiers are quoted with backticks (`` ` ``);
    * ``RAND(seed)`` instead of ``RANDOM()``;
    * ``UPDATE`` and ``DELETE`` without joins accept trailing ``ORDER BY`` and
      ``LIMIT``;
    * list / dict values bound into an ``UPDATE`` are JSON-encoded;
    * an empty insert is ``INSERT INTO t () VALUES ()``;
    * full-text predicates, index hints and row locks are supported.
    """

    extra_operators: ClassVar[tuple[str, ...]] = ("sounds like",)

    quote_char: ClassVar[str] = "`"

    unbounded_limit: ClassVar[int] = 18446744073709551615

    @property
    def dialect_name(self) -> str:
        return "mysql"

    def compile_random(self, seed: str | int = "") -> str:
        return f"RAND({seed})"

    def compile_index_hint(self, query: QueryState, hint: IndexHint) -> str:
        return f"{hint.type.upper()} INDEX ({hint.index})"

    def compile_lock(self, query: QueryState, value: bool | str) -> str:
        if isinstance(value, str):
            return value
        return "FOR UPDATE" if value else "LOCK IN SHARE MODE"

    def where_full_text(self, predicate: FullTextPredicate) -> str:
        columns = self.columnize(predicate.columns)
        value = self.parameter(predicate.value)
        if predicate.mode == "boolean":
            mode = " IN BOOLEAN MODE"
        else:
            mode = " IN NATURAL LANGUAGE MODE"
        expanded = " WITH QUERY EXPANSION" if predicate.expanded and predicate.mode != "boolean" else ""
        return f"MATCH ({columns}) AGAINST ({value}{mode}{expanded})"

    def compile_insert(self, query: QueryState, values: Any) -> str:
        if not values:
            values = [{}]
        return super().compile_insert(query, values)

    def _compile_update_without_joins(
        self, query: QueryState, table: str, columns: str, where: str
    ) -> str:
        sql = super()._compile_update_without_joins(query, table, columns, where).rstrip()
        return self._append_order_and_limit(query, sql)

    def prepare_bindings_for_update(self, query: QueryState, values: Mapping[str, Any]) -> list[Any]:
        encoded = {
            key: json.dumps(value) if isinstance(value, (list, dict)) else value
            for key, value in values.items()
        }
        return [*super().prepare_bindings_for_update(query, encoded), *self._order_bindings(query)]

    def _compile_delete_without_joins(self, query: QueryState, table: str, where: str) -> str:
        sql = super()._compile_delete_without_joins(query, table, where).rstrip()
        return self._append_order_and_limit(query, sql)

    def prepare_bindings_for_delete(self, query: QueryState) -> list[Any]:
        return [*super().prepare_bindings_for_delete(query), *self._order_bindings(query)]

    def _order_bindings(self, query: QueryState) -> list[Any]:
        # ORDER BY is only appended to single-table writes.
        if query.joins or not query.orders:
            return []
        return list(query.bindings["order"])

    def _append_order_and_limit(self, query: QueryState, sql: str) -> str:
        if query.orders:
            sql += " " + self.compile_orders(query, query.orders)
        if query.limit is not None:
            sql += " " + self.compile_limit(query, query.limit)
        return sql
