"""quarrydb query layer: clause model and fluent builder."""
from quarrydb.query.builder import QueryBuilder
from quarrydb.query.clauses import (
    BINDING_GROUPS,
    BasicPredicate,
    ColumnPredicate,
    FullTextPredicate,
    InPredicate,
    NullPredicate,
    QueryState,
    RawPredicate,
)
from quarrydb.query.expression import Expression

__all__ = [
    "BINDING_GROUPS",
    "BasicPredicate",
    "ColumnPredicate",
    "Expression",
    "FullTextPredicate",
    "InPredicate",
    "NullPredicate",
    "QueryBuilder",
    "QueryState",
    "RawPredicate",
]
