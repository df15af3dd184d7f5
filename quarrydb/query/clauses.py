"""In-memory clause model for one SQL statement under construction.

A :class:`QueryState` is owned by exactly one
:class:`~quarrydb.query.builder.QueryBuilder`; the builder mutates it and the
grammar reads it.  Predicate nodes are a closed set of frozen dataclasses:

    BasicPredicate     ``col <op> ?``
    ColumnPredicate    ``col <op> col``
    InPredicate        ``col [NOT] IN (?, ...)``
    NullPredicate      ``col IS [NOT] NULL``
    RawPredicate       literal SQL
    FullTextPredicate  ``MATCH (...) AGAINST (...)`` (MySQL)

Bindings are kept per clause group.  The grammar emits placeholders in the
same order as :data:`BINDING_GROUPS`, so flattening the groups in that order
lines every value up with its ``?``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from quarrydb.query.expression import Expression

if TYPE_CHECKING:
    from quarrydb.query.builder import QueryBuilder

#: A column reference: a plain name (``"users.id"``, ``"name as n"``) or raw SQL.
Column = Union[str, Expression]

#: Binding groups, in the order their placeholders appear in compiled SQL.
BINDING_GROUPS: tuple[str, ...] = (
    "select",
    "from",
    "join",
    "where",
    "groupBy",
    "having",
    "order",
    "union",
    "unionOrder",
)

#: Connectors allowed between two predicates.
BOOLEANS: tuple[str, ...] = ("AND", "OR", "AND NOT", "OR NOT")


def normalize_boolean(boolean: str) -> str:
    """Upper-case a connector, falling back to ``AND`` for unknown input."""
    candidate = " ".join(str(boolean).split()).upper()
    return candidate if candidate in BOOLEANS else "AND"


# ---------------------------------------------------------------------------
# Predicate variants (WHERE / HAVING)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BasicPredicate:
    column: Column
    operator: str
    value: Any
    boolean: str = "AND"


@dataclass(frozen=True)
class ColumnPredicate:
    first: Column
    operator: str
    second: Column
    boolean: str = "AND"


@dataclass(frozen=True)
class InPredicate:
    column: Column
    values: tuple[Any, ...]
    negated: bool = False
    boolean: str = "AND"


@dataclass(frozen=True)
class NullPredicate:
    column: Column
    negated: bool = False
    boolean: str = "AND"


@dataclass(frozen=True)
class RawPredicate:
    sql: str
    boolean: str = "AND"


@dataclass(frozen=True)
class FullTextPredicate:
    """Full-text match.

    Attributes:
        columns: Indexed columns to match against.
        value: The search phrase (bound).
        mode: ``"natural"`` or ``"boolean"``.
        expanded: Request ``WITH QUERY EXPANSION`` (natural mode only).
    """

    columns: tuple[Column, ...]
    value: Any
    mode: str = "natural"
    expanded: bool = False
    boolean: str = "AND"


Predicate = Union[
    BasicPredicate,
    ColumnPredicate,
    InPredicate,
    NullPredicate,
    RawPredicate,
    FullTextPredicate,
]


# ---------------------------------------------------------------------------
# Other clause nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JoinClause:
    """A single ``<type> JOIN table ON first <op> second`` entry.

    Attributes:
        table: Joined table (``"roles"`` or ``"roles as r"``).
        first: Left-hand column.
        operator: Comparison operator.
        second: Right-hand column, or the bound value when ``where`` is set.
        type: ``INNER``, ``LEFT`` or ``RIGHT``.
        where: When ``True`` the right-hand side is a value bound into the
            ``join`` group instead of a column.
    """

    table: Column
    first: Column
    operator: str
    second: Any
    type: str = "INNER"
    where: bool = False


@dataclass(frozen=True)
class OrderClause:
    column: Column
    direction: str = "ASC"


@dataclass(frozen=True)
class RawOrderClause:
    sql: str


Order = Union[OrderClause, RawOrderClause]


@dataclass(frozen=True)
class AggregateClause:
    function: str
    columns: tuple[Column, ...] = ("*",)


@dataclass(frozen=True)
class IndexHint:
    """MySQL ``USE / FORCE / IGNORE INDEX`` hint."""

    type: str
    index: str


@dataclass(frozen=True)
class UnionClause:
    query: QueryBuilder
    all: bool = False


# ---------------------------------------------------------------------------
# Clause model
# ---------------------------------------------------------------------------


def _empty_bindings() -> dict[str, list[Any]]:
    return {group: [] for group in BINDING_GROUPS}


@dataclass
class QueryState:
    """Mutable description of one statement.

    ``columns`` is ``None`` until something is selected; the grammar then
    compiles ``*``.  ``distinct`` is either a flag or an explicit column list
    (used by ``COUNT(DISTINCT ...)``).  The ``union_*`` slots hold ordering and
    paging that apply to the combined result of the unions.
    """

    from_: Column | None = None
    columns: list[Column] | None = None
    distinct: bool | list[Column] = False
    index_hint: IndexHint | None = None
    joins: list[JoinClause] = field(default_factory=list)
    wheres: list[Predicate] = field(default_factory=list)
    groups: list[Column] = field(default_factory=list)
    havings: list[Predicate] = field(default_factory=list)
    orders: list[Order] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    unions: list[UnionClause] = field(default_factory=list)
    union_orders: list[Order] = field(default_factory=list)
    union_limit: int | None = None
    union_offset: int | None = None
    aggregate: AggregateClause | None = None
    lock: bool | str | None = None
    bindings: dict[str, list[Any]] = field(default_factory=_empty_bindings)

    def copy(self) -> QueryState:
        """Return an independent copy; clause nodes are immutable and shared."""
        return QueryState(
            from_=self.from_,
            columns=list(self.columns) if self.columns is not None else None,
            distinct=list(self.distinct) if isinstance(self.distinct, list) else self.distinct,
            index_hint=self.index_hint,
            joins=list(self.joins),
            wheres=list(self.wheres),
            groups=list(self.groups),
            havings=list(self.havings),
            orders=list(self.orders),
            limit=self.limit,
            offset=self.offset,
            unions=list(self.unions),
            union_orders=list(self.union_orders),
            union_limit=self.union_limit,
            union_offset=self.union_offset,
            aggregate=self.aggregate,
            lock=self.lock,
            bindings={group: list(values) for group, values in self.bindings.items()},
        )

    def flat_bindings(self, exclude: tuple[str, ...] = ()) -> list[Any]:
        """Flatten the binding groups in declared order, skipping ``exclude``."""
        flat: list[Any] = []
        for group in BINDING_GROUPS:
            if group not in exclude:
                flat.extend(self.bindings[group])
        return flat
