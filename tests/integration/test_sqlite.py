"""Integration tests: query builder → connection → a real SQLite database.

Each test gets a fresh database file under ``tmp_path`` so links opened by
separate connections see the same data.
"""
from __future__ import annotations

import pytest

import mortar
from mortar import CompilationError, Database, ExecutionError
from mortar.compile.bindings import BindType
from tests.fixtures import load_ddl


def _create_schema(db: Database) -> None:
    for statement in load_ddl("sqlite").split(";"):
        if statement.strip():
            db.execute(statement)


@pytest.fixture()
def db(tmp_path) -> Database:
    database = mortar.connect({"type": "sqlite", "database": str(tmp_path / "app.db")})
    _create_schema(database)
    yield database
    database.close()


@pytest.fixture()
def seeded(db: Database) -> Database:
    db.table("users").insert_all(
        [
            {"name": "ann", "age": 31, "vip": True},
            {"name": "bob", "age": 25, "vip": False},
            {"name": "cid", "age": 47, "vip": True},
        ]
    )
    db.table("orders").insert_all(
        [
            {"user_id": 1, "amount": 9.5, "note": "first"},
            {"user_id": 1, "amount": 20.0},
            {"user_id": 3, "amount": 4.25, "note": "o'clock"},
        ]
    )
    return db


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


def test_insert_returns_generated_ids(db: Database):
    assert db.table("users").data({"name": "ann", "age": 31}).insert() == 1
    assert db.table("users").data({"name": "bob", "age": 25}).insert() == 2
    assert db.get_last_ins_id() == 2


def test_insert_all_returns_rowcount(db: Database):
    rows = [{"name": "a", "age": 1}, {"name": "b", "age": 2}]
    assert db.table("users").insert_all(rows) == 2


def test_select_where_order(seeded: Database):
    rows = (
        seeded.table("users")
        .field("name,age")
        .where("age", ">", 30)
        .order("age", "desc")
        .select()
    )
    assert rows == [{"name": "cid", "age": 47}, {"name": "ann", "age": 31}]


def test_where_in_and_or(seeded: Database):
    rows = (
        seeded.table("users")
        .field("name")
        .where("id", "in", [1, 2])
        .where_or("name", "cid")
        .order("id")
        .select()
    )
    assert [row["name"] for row in rows] == ["ann", "bob", "cid"]


def test_nested_where(seeded: Database):
    rows = (
        seeded.table("users")
        .field("name")
        .where("vip", 1)
        .where(lambda q: q.where("age", "<", 40).where_or("name", "cid"))
        .order("id")
        .select()
    )
    assert [row["name"] for row in rows] == ["ann", "cid"]


def test_find(seeded: Database):
    assert seeded.table("users").where("name", "bob").find()["age"] == 25
    assert seeded.table("users").where("name", "nobody").find() is None


def test_page(seeded: Database):
    rows = seeded.table("users").field("id").order("id").page(2, 2).select()
    assert rows == [{"id": 3}]


def test_update(seeded: Database):
    assert seeded.table("users").where("id", 2).data("age", 26).update() == 1
    assert seeded.table("users").where("id", 2).find()["age"] == 26


def test_update_with_expression(seeded: Database):
    seeded.table("users").where("id", 1).exp("age", "age + 1").update()
    assert seeded.table("users").where("id", 1).find()["age"] == 32


def test_delete(seeded: Database):
    assert seeded.table("orders").where("user_id", 1).delete() == 2
    assert len(seeded.table("orders").select()) == 1


def test_delete_without_condition_is_refused(seeded: Database):
    with pytest.raises(CompilationError):
        seeded.table("orders").delete()
    assert len(seeded.table("orders").select()) == 3


def test_join(seeded: Database):
    rows = (
        seeded.table("orders o")
        .join("users u", "o.user_id = u.id")
        .field("u.name,o.amount")
        .where("o.amount", ">", 5)
        .order("o.id")
        .select()
    )
    assert rows == [{"name": "ann", "amount": 9.5}, {"name": "ann", "amount": 20.0}]


def test_group_having(seeded: Database):
    rows = (
        seeded.table("orders")
        .field("user_id")
        .field({"COUNT(*)": "n"})
        .group("user_id")
        .having("COUNT(*) > 1")
        .select()
    )
    assert rows == [{"user_id": 1, "n": 2}]


def test_quoted_string_round_trips(seeded: Database):
    assert seeded.table("orders").where("note", "o'clock").find()["amount"] == 4.25


def test_raw_query_with_positional_binds(seeded: Database):
    rows = seeded.query("SELECT name FROM users WHERE age > ? AND vip = ?", [30, 1])
    assert [row["name"] for row in rows] == ["ann", "cid"]
    assert seeded.get_last_sql() == "SELECT name FROM users WHERE age > 30 AND vip = 1"


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def test_nested_savepoint_rollback_keeps_outer_work(db: Database):
    db.start_trans()
    db.table("users").data({"name": "outer"}).insert()
    db.start_trans()
    db.table("users").data({"name": "inner"}).insert()
    db.rollback()
    db.commit()
    names = [row["name"] for row in db.table("users").select()]
    assert names == ["outer"]


def test_transaction_rolls_back_on_error(db: Database):
    def work(conn):
        conn.execute("INSERT INTO users (name) VALUES (:name)", {"name": "ghost"})
        raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        db.transaction(work)
    assert db.table("users").select() == []


def test_batch_query(db: Database):
    assert db.batch_query(
        [
            "INSERT INTO users (name, age) VALUES ('a', 1)",
            "UPDATE users SET age = 2 WHERE name = 'a'",
        ]
    )
    assert db.table("users").find()["age"] == 2


def test_autocommit_visible_to_second_connection(db: Database, tmp_path):
    db.table("users").data({"name": "ann"}).insert()
    with mortar.connect({"type": "sqlite", "database": str(tmp_path / "app.db")}) as other:
        assert other.table("users").find()["name"] == "ann"


# ---------------------------------------------------------------------------
# Metadata, errors and debugging
# ---------------------------------------------------------------------------


def test_table_info(db: Database):
    query = db.table("users")
    assert query.get_pk() == "id"
    assert query.table_info(fetch="fields") == ["id", "name", "age", "vip", "create_time", "update_time"]
    binds = query.get_fields_bind()
    assert binds["id"] is BindType.INT
    assert binds["name"] is BindType.STR
    assert binds["vip"] is BindType.BOOL


def test_fields_strict(tmp_path):
    config = {
        "type": "sqlite",
        "database": str(tmp_path / "strict.db"),
        "fields_strict": True,
        "auto_timestamp": True,
    }
    with mortar.connect(config) as db:
        _create_schema(db)
        db.table("users").data({"name": "ann", "age": "31"}).insert()
        row = db.table("users").find()
        assert row["age"] == 31
        assert row["create_time"] is not None
        with pytest.raises(CompilationError):
            db.table("users").data({"name": "bob", "nickname": "b"}).insert()


def test_missing_table_raises_execution_error(db: Database):
    with pytest.raises(ExecutionError) as exc_info:
        db.table("missing").where("id", 1).select()
    err = exc_info.value
    assert "no such table" in str(err)
    assert err.sql == "SELECT * FROM missing WHERE id = 1"
    assert err.data["Database Config"]["type"] == "sqlite"


def test_get_explain(seeded: Database):
    plan = seeded.get_explain("SELECT * FROM users WHERE id = :id", {"id": 1})
    assert plan
    assert any("users" in str(row) for row in plan)


def test_select_without_execute_returns_debug_sql(db: Database):
    sql = db.table("users").where("name", "ann").limit(5).select(execute=False)
    assert sql == "SELECT * FROM users WHERE name = 'ann' LIMIT 5"
