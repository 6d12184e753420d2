"""Unit tests for the fluent Query builder."""

from __future__ import annotations

import pytest

from mortar.compile.bindings import BindType
from mortar.connection import Connection
from mortar.errors import CompilationError
from mortar.query import Query
from mortar.schema.config import DatabaseConfig
from mortar.schema.options import QueryOptions
from tests.fixtures import FakeDriver, Result


def _query(driver: FakeDriver, **config) -> Query:
    cfg = DatabaseConfig(type="mysql", hostname="127.0.0.1", database="app", **config)
    return Query(Connection(cfg, driver=driver))


def _with_link(query: Query):
    """Open the link up front so scripted results can be attached to it."""
    query.connection.init_connect()
    return query.connection.driver.links[0]


# ---------------------------------------------------------------------------
# WHERE
# ---------------------------------------------------------------------------


def test_where_two_argument_form_means_equals(query: Query):
    assert query.table("users").where("id", 5).select(False) == "SELECT * FROM users WHERE id = 5"


def test_where_string_value_is_quoted(query: Query):
    sql = query.table("users").where("name", "o'neil").select(False)
    assert sql == "SELECT * FROM users WHERE name = 'o''neil'"


def test_where_or_chain(query: Query):
    sql = query.table("users").where("status", 1).where_or("vip", 1).select(False)
    assert sql == "SELECT * FROM users WHERE status = 1 OR vip = 1"


def test_where_or_first_has_no_leading_keyword(query: Query):
    sql = query.table("users").where_or("vip", 1).select(False)
    assert sql == "SELECT * FROM users WHERE vip = 1"


def test_where_callback_nests_group(query: Query):
    sql = (
        query.table("users")
        .where("a", 1)
        .where_or(lambda q: q.where("b", ">", 2).where("c", "<", 3))
        .select(False)
    )
    assert sql == "SELECT * FROM users WHERE a = 1 OR ( b > 2 AND c < 3 )"


def test_where_raw_sql(query: Query):
    assert query.table("users").where("age > 18").select(False) == "SELECT * FROM users WHERE age > 18"


def test_where_mapping(query: Query):
    sql = query.table("users").where({"a": 1, "b": "x"}).select(False)
    assert sql == "SELECT * FROM users WHERE a = 1 AND b = 'x'"


def test_where_operator_is_case_insensitive(query: Query):
    sql = query.table("users").where("id", "in", [1, 2]).where("name", "not like", "a%").select(False)
    assert sql == "SELECT * FROM users WHERE id IN (1,2) AND name NOT LIKE 'a%'"


def test_where_null_forms(query: Query):
    sql = query.table("users").where("deleted_at", "null").where("x", "=", None).where("y", "<>", None).select(False)
    assert sql == "SELECT * FROM users WHERE deleted_at IS NULL AND x IS NULL AND y IS NOT NULL"


def test_unknown_operator_raises_on_compile(query: Query):
    with pytest.raises(CompilationError):
        query.table("users").where("a", "===", 1).select(False)


def test_query_reusable_after_compile_error(query: Query):
    link = _with_link(query)
    with pytest.raises(CompilationError):
        query.table("users").where("a", 1).where("b", "~~", 2).select()
    query.table("users").where("a", 5).select()
    assert link.log[-1] == ("SELECT * FROM users WHERE a = :where_a", {"where_a": 5})


def test_query_reusable_after_empty_in_list(query: Query):
    with pytest.raises(CompilationError):
        query.table("users").where("a", 1).where("id", "in", []).select(False)
    assert query.table("users").where("a", 2).select(False) == "SELECT * FROM users WHERE a = 2"


def test_value_containing_placeholder_text_renders_once(query: Query):
    sql = query.table("t").where("a", "x :where_b").where("b", 2).select(False)
    assert sql == "SELECT * FROM t WHERE a = 'x :where_b' AND b = 2"


def test_remove_where_field(query: Query):
    query.table("users").where("a", 1).where_or("a", 2).where("b", 3).where("a > 0")
    query.remove_where_field("a")
    assert query.select(False) == "SELECT * FROM users WHERE a = 2 AND b = 3 AND a > 0"


def test_remove_where_field_by_logic(query: Query):
    query.table("users").where("a", 1).where_or("a", 2)
    query.remove_where_field("a", "or")
    assert query.select(False) == "SELECT * FROM users WHERE a = 1"


# ---------------------------------------------------------------------------
# Tables, fields, joins
# ---------------------------------------------------------------------------


def test_inline_table_alias(query: Query):
    sql = query.table("users u").field("u.id,u.name").select(False)
    assert sql == "SELECT u.id,u.name FROM users u"


def test_multiple_tables(query: Query):
    assert query.table("users u,orders o").select(False) == "SELECT * FROM users u,orders o"
    assert query.table({"users": "u"}).select(False) == "SELECT * FROM users u"


def test_subquery_table(query: Query):
    sub = Query(query.connection).table("users").where("vip", 1).build_sql()
    sql = query.table(f"{sub} t").select(False)
    assert sql == "SELECT * FROM ( SELECT * FROM users WHERE vip = 1 ) t"


def test_alias_for_current_table(query: Query):
    assert query.table("users").alias("u").select(False) == "SELECT * FROM users u"


def test_field_deduplicates_first_wins(query: Query):
    sql = query.table("users").field("id,name").field(["name", "age"]).select(False)
    assert sql == "SELECT id,name,age FROM users"


def test_field_alias_map(query: Query):
    sql = query.table("users").field({"id": "uid", "name": None}).select(False)
    assert sql == "SELECT id AS uid,name FROM users"


def test_field_table_name_and_alias_prefix(query: Query):
    sql = query.table("users").field("id,name", table_name="users", alias="u_").select(False)
    assert sql == "SELECT users.id AS u_id,users.name AS u_name FROM users"


def test_field_except_uses_table_fields(query: Query):
    sql = query.table("users").field("create_time,update_time", except_=True).select(False)
    assert sql == "SELECT id,name,age,vip FROM users"


def test_name_applies_prefix_and_join_prefix(driver: FakeDriver):
    query = _query(driver, prefix="t_")
    sql = query.name("users").alias("u").join("orders o", "u.id=o.user_id").select(False)
    assert sql == "SELECT * FROM t_users u INNER JOIN t_orders o ON u.id=o.user_id"


def test_join_list_form(query: Query):
    sql = (
        query.table("users u")
        .join([["orders o", "u.id=o.user_id", "left"], ["items i", "i.order_id=o.id"]])
        .select(False)
    )
    assert sql == (
        "SELECT * FROM users u LEFT JOIN orders o ON u.id=o.user_id "
        "INNER JOIN items i ON i.order_id=o.id"
    )


def test_join_same_table_twice(query: Query):
    sql = (
        query.table("users u")
        .join("users m", "u.manager_id=m.id")
        .join("users r", "u.referrer_id=r.id")
        .select(False)
    )
    assert "INNER JOIN users m ON u.manager_id=m.id INNER JOIN users r ON u.referrer_id=r.id" in sql


# ---------------------------------------------------------------------------
# ORDER / LIMIT / PAGE / UNION
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("args", "expected"),
    [
        (("id", "desc"), "ORDER BY id DESC"),
        (("[rand]",), "ORDER BY RANDOM()"),
        (("field(id,3,1)",), "ORDER BY field(id,3,1)"),
        (({"a": "asc", "b": "desc"},), "ORDER BY a ASC,b DESC"),
        (("a desc,b",), "ORDER BY a DESC,b"),
        ((["a", "b desc"],), "ORDER BY a,b DESC"),
    ],
)
def test_order_forms(query: Query, args, expected):
    assert query.table("users").order(*args).select(False) == f"SELECT * FROM users {expected}"


def test_limit_forms(query: Query):
    assert query.table("users").limit("20,10").select(False).endswith("LIMIT 10 OFFSET 20")
    assert query.table("users").limit(5).select(False).endswith("LIMIT 5")
    assert query.table("users").limit(0, 5).select(False).endswith("LIMIT 5")


def test_page(query: Query):
    assert query.table("users").page(3, 10).select(False).endswith("LIMIT 10 OFFSET 20")
    assert query.table("users").limit(15).page(2).select(False).endswith("LIMIT 15 OFFSET 15")
    assert query.table("users").page(0).select(False).endswith("LIMIT 20")


def test_union_with_query(query: Query):
    sub = Query(query.connection).table("admins").field("id").where("id", 2)
    sql = query.table("users").field("id").where("id", 1).union(sub, all=True).select(False)
    assert sql == "SELECT id FROM users WHERE id = 1 UNION ALL SELECT id FROM admins WHERE id = 2"


def test_union_raw_list(query: Query):
    sql = query.table("users").field("id").union(["SELECT id FROM a", "SELECT id FROM b"]).select(False)
    assert sql == "SELECT id FROM users UNION SELECT id FROM a UNION SELECT id FROM b"


# ---------------------------------------------------------------------------
# Options lifecycle
# ---------------------------------------------------------------------------


def test_compile_fills_defaults_and_clears_state(query: Query):
    query.table("users").where("id", 1).lock()
    options = query.compile()
    assert options.lock and options.master
    assert options.field == {}
    assert options.data == {}
    assert query.get_options() == {}
    assert query.table("users").select(False) == "SELECT * FROM users"


def test_identical_chains_are_deterministic(conn: Connection):
    def chain() -> QueryOptions:
        return (
            Query(conn).table("users").where("id", 1).where_or("id", 2)
            .where(lambda q: q.where("id", "in", [3, 4])).compile()
        )

    first = conn.builder.select(chain())
    second = conn.builder.select(chain())
    assert first.sql == second.sql
    assert first.binds == second.binds


def test_get_and_remove_option(query: Query):
    query.table("users").comment("x").group("age")
    assert query.get_options("comment") == "x"
    query.remove_option("comment")
    assert query.get_options("comment") is None
    query.remove_option()
    assert query.get_options() == {}


def test_build_sql(query: Query):
    assert query.table("users").where("id", 1).build_sql() == "( SELECT * FROM users WHERE id = 1 )"
    assert query.table("users").build_sql(sub=False) == "SELECT * FROM users"


def test_bind_with_raw_where(query: Query):
    query.table("users").where("id = :uid").bind("uid", "5", BindType.INT)
    assert query.is_bind("uid")
    assert query.select(False) == "SELECT * FROM users WHERE id = 5"
    assert not query.is_bind("uid")


def test_where_references_manual_bind(query: Query):
    sql = query.table("users").bind({"uid": 5}).where("id", ":uid").select(False)
    assert sql == "SELECT * FROM users WHERE id = 5"


# ---------------------------------------------------------------------------
# Writes (debug SQL)
# ---------------------------------------------------------------------------


def test_insert_debug_sql(query: Query):
    sql = query.table("users").data({"name": "bob", "age": 3}).insert(False)
    assert sql == "INSERT INTO users (name,age) VALUES ('bob',3)"


def test_insert_all_debug_sql(query: Query):
    sql = query.table("users").insert_all([{"name": "a"}, {"name": "b"}], execute=False)
    assert sql == "INSERT INTO users (name) VALUES ('a'),('b')"


def test_update_with_exp(query: Query):
    sql = query.table("users").exp("score", "score+1").data("name", "x").where("id", 1).update(False)
    assert sql == "UPDATE users SET score=score+1,name='x' WHERE id = 1"


def test_empty_insert_is_noop(query: Query, driver: FakeDriver):
    assert query.table("users").insert() == 0
    assert query.table("users").data("tags", [1]).update() == 0
    assert driver.connects == []


def test_delete_requires_condition(query: Query):
    with pytest.raises(CompilationError):
        query.table("users").delete()
    assert query.table("users").where("id", 1).delete(False) == "DELETE FROM users WHERE id = 1"


# ---------------------------------------------------------------------------
# Execution through the connection
# ---------------------------------------------------------------------------


def test_select_executes_with_binds(query: Query):
    link = _with_link(query)
    link.results.append(Result("FROM users", columns=["id", "name"], rows=[(1, "bob")]))
    rows = query.table("users").where("id", 1).select()
    assert rows == [{"id": 1, "name": "bob"}]
    assert link.log[-1] == ("SELECT * FROM users WHERE id = :where_id", {"where_id": 1})


def test_find_returns_first_row_or_none(query: Query):
    link = _with_link(query)
    link.results.append(Result("FROM users", columns=["id"], rows=[(1,), (2,)]))
    assert query.table("users").find() == {"id": 1}
    assert link.statements[-1].endswith("LIMIT 1")
    assert query.table("orders").find() is None


def test_fetch_raw_returns_cursor(query: Query):
    link = _with_link(query)
    link.results.append(Result("FROM users", columns=["id"], rows=[(1,)]))
    cursor = query.table("users").fetch_raw().select()
    assert cursor.fetchall() == [(1,)]


def test_insert_returns_last_id(query: Query):
    link = _with_link(query)
    link.results.append(Result("INSERT INTO users", rowcount=1, lastrowid=42))
    assert query.table("users").data("name", "bob").insert() == 42
    assert query.table("users").data("name", "amy").insert(get_last_ins_id=False) == 1


def test_update_and_delete_return_rowcount(query: Query):
    link = _with_link(query)
    link.results.append(Result("UPDATE users", rowcount=3))
    link.results.append(Result("DELETE FROM users", rowcount=2))
    assert query.table("users").data("vip", 1).where("age", ">", 30).update() == 3
    assert query.table("users").where("vip", 0).delete() == 2


def test_get_last_sql(query: Query):
    query.table("users").where("name", "bob").select()
    assert query.get_last_sql() == "SELECT * FROM users WHERE name = 'bob'"


# ---------------------------------------------------------------------------
# Config-driven write behaviour
# ---------------------------------------------------------------------------


def test_auto_timestamp_on_insert_and_update(driver: FakeDriver):
    query = _query(driver, auto_timestamp=True, datetime_format="%Y")
    insert = query.table("users").data("name", "bob").insert(False)
    assert insert.startswith("INSERT INTO users (name,create_time,update_time) VALUES ('bob','")
    update = query.table("users").data("name", "bob").where("id", 1).update(False)
    assert update.startswith("UPDATE users SET name='bob',update_time='")


def test_auto_timestamp_keeps_explicit_values(driver: FakeDriver):
    query = _query(driver, auto_timestamp=True)
    sql = query.table("users").data({"name": "bob", "create_time": "2020"}).insert(False)
    assert "'2020'" in sql


def test_fields_strict_rejects_unknown_columns(driver: FakeDriver):
    query = _query(driver, fields_strict=True)
    with pytest.raises(CompilationError):
        query.table("users").data({"nope": 1}).insert(False)


def test_fields_strict_uses_column_bind_types(driver: FakeDriver):
    query = _query(driver, fields_strict=True)
    assert query.table("users").data({"age": "7"}).insert(False) == "INSERT INTO users (age) VALUES (7)"


def test_table_info(query: Query):
    query.table("users")
    assert query.get_pk() == "id"
    assert query.table_info(fetch="fields") == ["id", "name", "age", "vip", "create_time", "update_time"]
    assert query.get_fields_bind("users")["name"] is BindType.STR
    assert query.table_info("users", "type")["age"] == "int(3)"
