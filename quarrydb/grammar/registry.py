"""Dialect name → grammar lookup.

Every :class:`~quarrydb.connection.base.Connection` subclass declares a
``dialect`` and asks this registry for its grammar, so the connection layer
never imports a concrete grammar class.  The same lookup lets SQL be compiled
with no database at all, which is how ``to_sql()`` is used in tests and
tooling::

    from quarrydb.grammar.registry import GrammarFactory
    from quarrydb.query.builder import QueryBuilder

    sql = QueryBuilder(GrammarFactory.create("mysql")).from_("users").to_sql()

``"generic"`` is the dialect-neutral base grammar with ANSI double quotes.
A third-party dialect registers its grammar and pairs it with a connection
class whose ``dialect`` names it::

    @GrammarFactory.register("postgres")
    class PostgresGrammar(Grammar):
        ...
"""
from __future__ import annotations

from collections.abc import Callable
from typing import ClassVar

from quarrydb.errors import CompilationError
from quarrydb.grammar.base import Grammar
from quarrydb.grammar.mysql import MySqlGrammar
from quarrydb.grammar.sqlite import SQLiteGrammar


class GrammarFactory:
    """Grammar classes keyed by dialect; instances are built per table prefix."""

    _grammars: ClassVar[dict[str, type[Grammar]]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[type[Grammar]], type[Grammar]]:
        """Class decorator form of :meth:`register_class`."""

        def decorator(grammar_cls: type[Grammar]) -> type[Grammar]:
            cls.register_class(name, grammar_cls)
            return grammar_cls

        return decorator

    @classmethod
    def register_class(cls, name: str, grammar_cls: type[Grammar]) -> None:
        cls._grammars[name] = grammar_cls

    @classmethod
    def create(cls, name: str, table_prefix: str = "") -> Grammar:
        """Build the grammar for dialect ``name``.

        Args:
            name: A registered dialect, usually a connection's ``dialect``.
            table_prefix: Prepended to every table the grammar wraps.

        Raises:
            CompilationError: If ``name`` was never registered.
        """
        grammar_cls = cls._grammars.get(name)
        if grammar_cls is None:
            raise CompilationError(
                f"Unsupported dialect: '{name}'. Registered dialects: {cls.registered_dialects()}."
            )
        return grammar_cls(table_prefix)

    @classmethod
    def registered_dialects(cls) -> list[str]:
        return sorted(cls._grammars)


GrammarFactory.register_class("generic", Grammar)
GrammarFactory.register_class("mysql", MySqlGrammar)
GrammarFactory.register_class("sqlite", SQLiteGrammar)
