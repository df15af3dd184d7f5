"""quarrydb grammar layer: clause model → dialect-specific SQL."""
from quarrydb.grammar.base import Grammar
from quarrydb.grammar.mysql import MySqlGrammar
from quarrydb.grammar.registry import GrammarFactory
from quarrydb.grammar.sqlite import SQLiteGrammar

__all__ = [
    "Grammar",
    "GrammarFactory",
    "MySqlGrammar",
    "SQLiteGrammar",
]
