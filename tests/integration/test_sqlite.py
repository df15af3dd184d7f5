"""Integration tests: build, compile and execute against a real SQLite in-memory DB.

Everything goes through the public entry point (``quarrydb.connect``), so the
manager, the SQLite connection, its grammar, the DB-API driver adapter and the
ORM are exercised together.
"""
from __future__ import annotations

import datetime
import sqlite3
from collections.abc import Iterator

import pytest

import quarrydb
from quarrydb import ConnectionManager, Model, QueryExecutionError
from tests.fixtures import ddl_statements


class Role(Model):
    timestamps = False
    fillable = ["name"]


class User(Model):
    fillable = ["name", "email", "role_id", "votes"]
    hidden = ["password"]


class AuditEntry(Model):
    table = "audit_log"
    primary_key = None
    incrementing = False
    timestamps = False
    guarded = False


@pytest.fixture()
def db() -> Iterator[ConnectionManager]:
    manager = quarrydb.connect(
        {
            "default": "sqlite",
            "connections": {"sqlite": {"driver": "sqlite", "database": ":memory:"}},
        }
    )
    connection = manager.connection()
    for statement in ddl_statements("sqlite"):
        connection.statement(statement)

    manager.table("roles").insert([{"name": "admin"}, {"name": "member"}])
    manager.table("users").insert(
        [
            {"role_id": 1, "name": "Ann", "email": "ann@example.com", "votes": 10},
            {"role_id": 2, "name": "Bob", "email": "bob@example.com", "votes": 3},
            {"role_id": 2, "name": "Cid", "email": None, "votes": 7},
        ]
    )
    manager.table("posts").insert(
        [
            {"user_id": 1, "title": "Hello", "body": "first"},
            {"user_id": 1, "title": "Again", "body": "second"},
            {"user_id": 2, "title": "Bob's post", "body": None},
        ]
    )
    yield manager
    manager.disconnect()


# ---------------------------------------------------------------------------
# Query builder
# ---------------------------------------------------------------------------


def test_select_with_where_and_order(db: ConnectionManager):
    rows = db.table("users").select("name").where("votes", ">", 5).order_by("name", "desc").get()
    assert rows.pluck("name").all() == ["Cid", "Ann"]


def test_where_null_and_or_where(db: ConnectionManager):
    names = db.table("users").where_null("email").or_where("name", "Ann").order_by("id").pluck("name")
    assert names == ["Ann", "Cid"]


def test_where_in_and_empty_where_in(db: ConnectionManager):
    assert db.table("users").where_in("id", [1, 3]).count() == 2
    assert db.table("users").where_in("id", []).get().is_empty()
    assert db.table("users").where_not_in("id", []).count() == 3


def test_aggregates(db: ConnectionManager):
    users = db.table("users")
    assert users.count() == 3
    assert users.sum("votes") == 20
    assert users.max("votes") == 10
    assert users.min("votes") == 3
    assert users.avg("votes") == pytest.approx(20 / 3)


def test_count_ignores_selected_expression_bindings(db: ConnectionManager):
    assert db.table("users").select_raw("votes > ? AS big", [5]).count() == 3
    assert db.table("users").select_raw("votes > ? AS big", [5]).max("votes") == 10


def test_skip_without_limit(db: ConnectionManager):
    assert db.table("users").order_by("id").skip(1).pluck("name") == ["Bob", "Cid"]
    admins = db.table("users").select("name").where("role_id", 1)
    rows = (
        db.table("users").select("name").where("votes", "<", 5).union(admins).order_by("name").skip(1).get()
    )
    assert rows.pluck("name").all() == ["Bob"]


def test_exists(db: ConnectionManager):
    assert db.table("users").where("name", "Ann").exists() is True
    assert db.table("users").where("name", "Zed").doesnt_exist() is True


def test_join_and_group(db: ConnectionManager):
    rows = (
        db.table("users")
        .select("users.name", db.raw("COUNT(posts.id) AS posts"))
        .left_join("posts", "posts.user_id", "=", "users.id")
        .group_by("users.name")
        .having_raw("COUNT(posts.id) > ?", [0])
        .order_by("users.name")
        .get()
    )
    assert rows.all() == [{"name": "Ann", "posts": 2}, {"name": "Bob", "posts": 1}]


def test_union_with_order(db: ConnectionManager):
    admins = db.table("users").select("name").where("role_id", 1)
    rows = (
        db.table("users")
        .select("name")
        .where("votes", "<", 5)
        .union(admins)
        .order_by("name")
        .get()
    )
    assert rows.pluck("name").all() == ["Ann", "Bob"]


def test_like_with_percent_literal(db: ConnectionManager):
    assert db.table("posts").where("title", "like", "%post%").value("title") == "Bob's post"


def test_first_and_find(db: ConnectionManager):
    assert db.table("users").order_by("id", "desc").first()["name"] == "Cid"
    assert db.table("users").find(2)["email"] == "bob@example.com"
    assert db.table("users").find(99) is None


def test_update_and_delete(db: ConnectionManager):
    assert db.table("users").where("votes", "<", 8).update({"votes": 0}) == 2
    assert db.table("users").where("votes", 0).count() == 2
    assert db.table("users").delete(3) == 1
    assert db.table("users").count() == 2


def test_update_with_join_rewrites_to_rowid(db: ConnectionManager):
    affected = (
        db.table("users")
        .join("roles", "roles.id", "=", "users.role_id")
        .where("roles.name", "member")
        .update({"active": 0})
    )
    assert affected == 2
    assert db.table("users").where("active", 0).order_by("id").pluck("name") == ["Bob", "Cid"]


def test_delete_with_join_rewrites_to_rowid(db: ConnectionManager):
    deleted = (
        db.table("posts")
        .join("users", "users.id", "=", "posts.user_id")
        .where("users.name", "Ann")
        .delete()
    )
    assert deleted == 2
    assert db.table("posts").count() == 1


def test_writes_ignore_ordering_bindings(db: ConnectionManager):
    ann = db.table("users").where("name", "Ann").order_by_raw("votes = ?", [1])
    assert ann.update({"votes": 1}) == 1
    joined = (
        db.table("users")
        .join("roles", "roles.id", "=", "users.role_id")
        .where("roles.name", "member")
        .order_by_raw("users.votes = ?", [3])
    )
    assert joined.update({"active": 0}) == 2
    cid = db.table("users").where("name", "Cid").order_by_raw("votes = ?", [1])
    assert cid.delete() == 1
    assert db.table("users").count() == 2


def test_insert_get_id(db: ConnectionManager):
    assert db.table("roles").insert_get_id({"name": "guest"}) == 3
    assert db.table("audit_log").insert_get_id({"event": "boot"}) == 1


def test_datetime_bindings_are_stored_as_text(db: ConnectionManager):
    db.table("users").where("id", 1).update({"deleted_at": datetime.datetime(2024, 1, 2, 3, 4, 5)})
    assert db.table("users").where("id", 1).value("deleted_at") == "2024-01-02 03:04:05"


def test_bad_table_raises_execution_error(db: ConnectionManager):
    with pytest.raises(QueryExecutionError) as exc:
        db.table("nope").where("id", 1).get()
    assert isinstance(exc.value.__cause__, sqlite3.OperationalError)
    assert exc.value.statement == 'SELECT * FROM "nope" WHERE "id" = ?'
    assert exc.value.bindings == [1]


def test_records_modified_flag(db: ConnectionManager):
    connection = db.connection()
    connection.forget_records_modification()
    db.table("users").where("id", 99).update({"votes": 1})
    assert not connection.has_modified_records()
    db.table("users").where("id", 1).update({"votes": 1})
    assert connection.has_modified_records()


# ---------------------------------------------------------------------------
# ORM
# ---------------------------------------------------------------------------


def test_model_create_find_save_delete(db: ConnectionManager):
    user = User.create(db, {"name": "Dee", "email": "dee@example.com", "password": "pw"})
    assert user.get_key() == 4
    assert "password" not in user

    found = User.find(db, 4)
    assert found["name"] == "Dee"
    assert found["created_at"] is not None

    found["votes"] = 42
    assert found.save() is True
    assert db.table("users").where("id", 4).value("votes") == 42

    assert found.delete() is True
    assert User.find(db, 4) is None


def test_model_query_hydrates(db: ConnectionManager):
    members = User.query(db).where("role_id", 2).order_by("name").get()
    assert [user.exists for user in members] == [True, True]
    assert members.pluck("name").all() == ["Bob", "Cid"]
    assert members.first().to_dict()["email"] == "bob@example.com"
    assert "password" not in members.first().to_dict()


def test_model_find_or_fail_and_find_many(db: ConnectionManager):
    assert User.query(db).find_many([1, 2]).pluck("name").all() == ["Ann", "Bob"]
    with pytest.raises(quarrydb.ModelNotFoundError):
        User.query(db).find_or_fail(99)


def test_model_without_timestamps(db: ConnectionManager):
    role = Role.create(db, {"name": "guest"})
    assert Role.find(db, role.get_key())["name"] == "guest"


def test_keyless_model_insert(db: ConnectionManager):
    AuditEntry.create(db, {"event": "login", "payload": "{}"})
    assert db.table("audit_log").pluck("event") == ["login"]
