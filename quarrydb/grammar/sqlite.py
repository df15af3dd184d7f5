"""SQLite dialect grammar."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from quarrydb.grammar.base import Grammar
from quarrydb.query.clauses import BINDING_GROUPS, IndexHint, QueryState
from quarrydb.query.expression import Expression


class SQLiteGrammar(Grammar):
    """Compiles the clause model to SQLite-flavoured SQL.

    SQLite rejects parenthesised compound-select members, so each side of a
    UNION is wrapped as ``SELECT * FROM (...)``.  It has no row locks, only
    supports ``INDEXED BY`` for forced indexes, and cannot join inside
    ``UPDATE`` / ``DELETE``; those are rewritten as ``rowid IN (subquery)``.
    """

    @property
    def dialect_name(self) -> str:
        return "sqlite"

    def wrap_union(self, sql: str) -> str:
        return f"SELECT * FROM ({sql})"

    def compile_lock(self, query: QueryState, value: bool | str) -> str:
        return ""

    def compile_index_hint(self, query: QueryState, hint: IndexHint) -> str:
        if hint.type.lower() == "force":
            return f"INDEXED BY {hint.index}"
        return ""

    def _rowid_subquery(self, query: QueryState, table: str) -> str:
        alias = table.split(" AS ")[-1]
        select = replace(query, columns=[Expression(f"{alias}.rowid")], aggregate=None)
        return f"{self.wrap('rowid')} IN ({self.compile_select(select)})"

    def _compile_update_with_joins(
        self, query: QueryState, table: str, columns: str, where: str
    ) -> str:
        return f"UPDATE {table} SET {columns} WHERE {self._rowid_subquery(query, table)}"

    def prepare_bindings_for_update(self, query: QueryState, values: Mapping[str, Any]) -> list[Any]:
        if not query.joins:
            return super().prepare_bindings_for_update(query, values)
        # SET values precede the rowid subquery that carries the join bindings.
        return [*values.values(), *self._subquery_bindings(query)]

    def _compile_delete_with_joins(self, query: QueryState, table: str, where: str) -> str:
        return f"DELETE FROM {table} WHERE {self._rowid_subquery(query, table)}"

    def prepare_bindings_for_delete(self, query: QueryState) -> list[Any]:
        if not query.joins:
            return super().prepare_bindings_for_delete(query)
        return self._subquery_bindings(query)

    @staticmethod
    def _subquery_bindings(query: QueryState) -> list[Any]:
        # The rowid subquery compiles every clause except the column list.
        return [
            value for group in BINDING_GROUPS if group != "select" for value in query.bindings[group]
        ]
