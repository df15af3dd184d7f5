"""Unit tests for QueryBuilder: clause accumulation, bindings and terminal operations."""

from __future__ import annotations

import random
import re
from collections.abc import Callable

import pytest

from quarrydb.collection import Collection
from quarrydb.config import ConnectionConfig
from quarrydb.errors import (
    InvalidBindingTypeError,
    InvalidOperatorError,
    InvalidOrderDirectionError,
    QueryBuildError,
)
from quarrydb.grammar import Grammar, MySqlGrammar, SQLiteGrammar
from quarrydb.query.builder import QueryBuilder
from quarrydb.query.clauses import BasicPredicate, NullPredicate
from tests.fixtures import StubConnection, StubDriver


def _q() -> QueryBuilder:
    return QueryBuilder(Grammar()).from_("users")


# ---------------------------------------------------------------------------
# where() argument handling
# ---------------------------------------------------------------------------


def test_two_argument_where_means_equals():
    q = _q().where("age", 30)
    assert q.state.wheres == [BasicPredicate("age", "=", 30, "AND")]
    assert q.get_bindings() == [30]


def test_where_none_becomes_is_null():
    q = _q().where("deleted_at", None)
    assert q.state.wheres == [NullPredicate("deleted_at", False, "AND")]
    assert q.to_sql() == 'SELECT * FROM "users" WHERE "deleted_at" IS NULL'
    assert q.get_bindings() == []


def test_where_not_equal_none_becomes_is_not_null():
    q = _q().where("deleted_at", "!=", None)
    assert q.to_sql() == 'SELECT * FROM "users" WHERE "deleted_at" IS NOT NULL'


def test_where_none_with_ordering_operator_is_rejected():
    with pytest.raises(InvalidOperatorError):
        _q().where("age", ">", None)


def test_unknown_operator_is_treated_as_value():
    q = _q().where("name", "Ann", "ignored")
    assert q.to_sql() == 'SELECT * FROM "users" WHERE "name" = ?'
    assert q.get_bindings() == ["Ann"]


def test_list_value_binds_first_scalar():
    q = _q().where("id", "=", [[5, 6], 7])
    assert q.get_bindings() == [5]


def test_where_column_rejects_unknown_operator():
    with pytest.raises(InvalidOperatorError):
        _q().where_column("a", "nope", "b")


def test_invalid_order_direction():
    with pytest.raises(InvalidOrderDirectionError):
        _q().order_by("name", "sideways")


def test_order_direction_is_normalised():
    assert _q().order_by("name", "desc").to_sql() == 'SELECT * FROM "users" ORDER BY "name" DESC'
    assert _q().latest().to_sql() == 'SELECT * FROM "users" ORDER BY "created_at" DESC'


def test_unknown_binding_group_is_rejected():
    with pytest.raises(InvalidBindingTypeError) as exc:
        _q().add_binding(1, "limit")
    assert exc.value.to_error_response()["error"] == "INVALID_BINDING_TYPE"


def test_limit_and_offset_rules():
    q = _q().limit(10).limit(-1)
    assert q.state.limit == 10
    q.limit(None)
    assert q.state.limit is None
    assert _q().offset(-5).state.offset == 0


def test_for_page():
    q = _q().for_page(3, 20)
    assert (q.state.offset, q.state.limit) == (40, 20)


def test_select_replaces_and_add_select_appends():
    q = _q().select("id").add_select("name", ["email", "role"])
    assert q.state.columns == ["id", "name", "email", "role"]
    q.select("votes")
    assert q.state.columns == ["votes"]


def test_having_values_bind_to_having_group():
    q = _q().group_by("role").having("total", ">", 3).order_by_raw("FIELD(role, ?)", ["a"])
    assert q.get_raw_bindings()["having"] == [3]
    assert q.get_bindings() == [3, "a"]


def test_union_bindings_follow_attachment_order():
    a = _q().where("a", 1)
    b = _q().where("b", 2)
    c = _q().where("c", 3)
    q = _q().where("main", 0).union(b).union_all(c)
    q.order_by_raw("x = ?", ["after"])
    assert q.get_bindings() == [0, 2, 3, "after"]
    assert a.get_bindings() == [1]


def test_clone_is_independent():
    q = _q().where("a", 1)
    copy = q.clone().where("b", 2)
    assert q.get_bindings() == [1]
    assert copy.get_bindings() == [1, 2]


def test_to_raw_sql_interpolates_literals():
    q = _q().where("name", "O'Brien").where("votes", ">", 3).where("active", True)
    assert q.to_raw_sql() == (
        'SELECT * FROM "users" WHERE "name" = \'O\'\'Brien\' AND "votes" > 3 AND "active" = 1'
    )


def test_builder_without_connection_cannot_execute():
    with pytest.raises(QueryBuildError):
        _q().get()


# ---------------------------------------------------------------------------
# Binding-order correspondence
# ---------------------------------------------------------------------------

_MARKER = re.compile(r"m_[a-z]\d+")


def _clause_factories(rng: random.Random) -> list[Callable[[QueryBuilder], object]]:
    """Random clause calls whose left-hand side names the value they bind."""
    calls: list[Callable[[QueryBuilder], object]] = []

    def add(kind: str, count: int, make: Callable[[QueryBuilder, str, int], object]) -> None:
        for i in range(count):
            marker = f"m_{kind}{i}"
            calls.append(lambda b, m=marker, n=i: make(b, m, n))

    add("s", rng.randint(0, 2), lambda b, m, n: b.select_raw(f"{m} = ? AS s{n}", [m]))
    add("j", rng.randint(0, 2), lambda b, m, n: b.join_where(f"t{n}", m, "=", m))
    add("w", rng.randint(0, 3), lambda b, m, n: b.where(m, "=", m))
    add("o", rng.randint(0, 2), lambda b, m, n: b.or_where(m, "<>", m))
    add("i", rng.randint(0, 2), lambda b, m, n: b.where_in(m, [m] * (n + 1)))
    add("r", rng.randint(0, 2), lambda b, m, n: b.where_raw(f"{m} LIKE ?", [m]))
    add("g", rng.randint(0, 2), lambda b, m, n: b.group_by_raw(f"{m} + ?", [m]))
    add("h", rng.randint(0, 2), lambda b, m, n: b.having(m, ">=", m))
    add("k", rng.randint(0, 2), lambda b, m, n: b.having_raw(f"{m} < ?", [m]))
    add("b", rng.randint(0, 2), lambda b, m, n: b.order_by_raw(f"{m} = ?", [m]))
    rng.shuffle(calls)
    return calls


def _expected_values(sql: str) -> list[str]:
    """For each ``?``, the marker that precedes it."""
    expected = []
    for position, char in enumerate(sql):
        if char == "?":
            markers = _MARKER.findall(sql[:position])
            expected.append(markers[-1])
    return expected


@pytest.mark.parametrize("seed", range(30))
def test_placeholders_line_up_with_bound_values(seed):
    driver = StubDriver(echo=True)
    connection = StubConnection(ConnectionConfig(driver="stub"), name="echo", driver=driver)

    builder = connection.table("users")
    for call in _clause_factories(random.Random(seed)):
        call(builder)

    rows = builder.get()
    sql = driver.last.sql
    echoed = [row["value"] for row in rows]

    assert sql.count("?") == len(echoed)
    assert echoed == _expected_values(sql)
    assert echoed == builder.get_bindings()


_TERMINALS: dict[str, Callable[[QueryBuilder], object]] = {
    "count": lambda b: b.count(),
    "max": lambda b: b.max("votes"),
    "sum": lambda b: b.sum("votes"),
    "update": lambda b: b.update({"m_u0": "m_u0", "m_u1": "m_u1"}),
    "delete": lambda b: b.delete(),
}


@pytest.mark.parametrize("terminal", sorted(_TERMINALS))
@pytest.mark.parametrize(
    "grammar", [Grammar(), MySqlGrammar(), SQLiteGrammar()], ids=lambda g: g.dialect_name
)
@pytest.mark.parametrize("seed", range(12))
def test_aggregates_and_writes_send_one_value_per_placeholder(seed, grammar, terminal):
    driver = StubDriver()
    connection = StubConnection(ConnectionConfig(driver="stub"), driver=driver)

    builder = QueryBuilder(grammar, connection).from_("users")
    for call in _clause_factories(random.Random(seed)):
        call(builder)

    _TERMINALS[terminal](builder)
    sent = driver.last

    assert sent.sql.count("?") == len(sent.bindings)
    assert sent.bindings == _expected_values(sent.sql)


def test_compilation_is_idempotent():
    q = _q().where("a", 1).where_in("b", [1, 2]).group_by("c").having("d", ">", 1).order_by("e")
    assert q.to_sql() == q.to_sql()
    assert q.get_bindings() == q.get_bindings()


# ---------------------------------------------------------------------------
# Terminal operations (stub connection)
# ---------------------------------------------------------------------------


def test_get_returns_collection(query: QueryBuilder, driver: StubDriver):
    driver.queue([{"id": 1}, {"id": 2}])
    result = query.from_("users").where("active", 1).get()
    assert isinstance(result, Collection)
    assert result.pluck("id").all() == [1, 2]
    assert driver.last.sql == 'SELECT * FROM "users" WHERE "active" = ?'
    assert driver.last.bindings == [1]


def test_get_columns_apply_only_without_select(query: QueryBuilder, driver: StubDriver):
    query.from_("users").get(["id"])
    assert driver.last.sql == 'SELECT "id" FROM "users"'
    query.select("name").get(["id"])
    assert driver.last.sql == 'SELECT "name" FROM "users"'


def test_first_adds_limit_on_a_copy(query: QueryBuilder, driver: StubDriver):
    driver.queue([{"id": 9}])
    q = query.from_("users")
    assert q.first() == {"id": 9}
    assert driver.last.sql == 'SELECT * FROM "users" LIMIT 1'
    assert q.state.limit is None


def test_first_returns_none_without_rows(query: QueryBuilder):
    assert query.from_("users").first() is None


def test_find_uses_key(query: QueryBuilder, driver: StubDriver):
    query.from_("users").find(5)
    assert driver.last.sql == 'SELECT * FROM "users" WHERE "id" = ? LIMIT 1'
    assert driver.last.bindings == [5]


def test_value_and_pluck(query: QueryBuilder, driver: StubDriver):
    driver.queue([{"name": "Ann"}], [{"name": "Ann"}, {"name": "Bob"}])
    q = query.from_("users")
    assert q.value("name") == "Ann"
    assert q.pluck("users.name") == ["Ann", "Bob"]


def test_count_does_not_mutate(query: QueryBuilder, driver: StubDriver):
    driver.queue([{"aggregate": 4}])
    q = query.from_("users").order_by("name")
    assert q.count() == 4
    assert driver.last.sql == 'SELECT COUNT(*) AS aggregate FROM "users"'
    assert q.state.aggregate is None
    assert q.state.orders


def test_aggregate_mutates_and_clears_orders(query: QueryBuilder, driver: StubDriver):
    driver.queue([{"AGGREGATE": 10}])
    q = query.from_("users").order_by_raw("FIELD(id, ?)", [3])
    assert q.aggregate("MAX", ["votes"]) == 10
    assert q.state.aggregate is not None
    assert q.state.orders == []
    assert q.get_raw_bindings()["order"] == []
    assert driver.last.sql == 'SELECT MAX("votes") AS aggregate FROM "users"'


def test_aggregate_keeps_orders_with_groups(query: QueryBuilder):
    q = query.from_("users").group_by("role").order_by("role")
    q.set_aggregate("COUNT", ["*"])
    assert q.state.orders


def test_sum_defaults_to_zero(query: QueryBuilder):
    assert query.from_("users").sum("votes") == 0


def test_exists(query: QueryBuilder, driver: StubDriver):
    driver.queue([{"exists": 1}], [{"exists": 0}])
    q = query.from_("users").where("id", 1)
    assert q.exists() is True
    assert q.doesnt_exist() is True
    assert driver.last.sql == 'SELECT EXISTS(SELECT * FROM "users" WHERE "id" = ?) AS "exists"'


def test_insert_sorts_columns(query: QueryBuilder, driver: StubDriver):
    assert query.from_("users").insert({"name": "Ann", "email": "a@x"}) is True
    assert driver.last.sql == 'INSERT INTO "users" ("email", "name") VALUES (?, ?)'
    assert driver.last.bindings == ["a@x", "Ann"]


def test_insert_nothing_is_a_no_op(query: QueryBuilder, driver: StubDriver):
    assert query.from_("users").insert([]) is True
    assert driver.executed == []


def test_insert_get_id(query: QueryBuilder, driver: StubDriver):
    driver.insert_id = 42
    assert query.from_("users").insert_get_id({"name": "Ann"}) == 42


def test_update_returns_affected_rows(query: QueryBuilder, driver: StubDriver):
    driver.affected_rows = 3
    count = query.from_("users").where("role", "guest").update({"active": False})
    assert count == 3
    assert driver.last.sql == 'UPDATE "users" SET "active" = ? WHERE "role" = ?'
    assert driver.last.bindings == [0, "guest"]


def test_delete_by_id(query: QueryBuilder, driver: StubDriver):
    query.from_("users").delete(7)
    assert driver.last.sql == 'DELETE FROM "users" WHERE "id" = ?'
    assert driver.last.bindings == [7]
