"""Clause-level SQL builders.

Each class handles exactly one SQL clause.  List-shaped clauses (tables,
fields, ORDER BY) render as comma-joined fragments; every builder returns
``""`` for an empty clause so the statement never carries a stray keyword.

Classes
-------
TableClauseBuilder   — ``table alias, table``
FieldClauseBuilder   — ``*`` or ``field AS alias, field``
JoinClauseBuilder    — ``INNER JOIN … ON a=b AND …``
OrderClauseBuilder   — ``ORDER BY …``
DataBuilder          — write payload → column/placeholder pairs
UnionClauseBuilder   — ``UNION [ALL] …``
"""
from __future__ import annotations

from typing import Any, Callable

from mortar.compile.bindings import bind_name, is_scalar
from mortar.compile.context import CompilationContext
from mortar.schema.options import JoinSpec, OrderItem, QueryOptions, Raw

_DIRECTIONS = frozenset({"asc", "desc"})


class TableClauseBuilder:
    """Builds the table list.

    Aliases come either from inline ``table alias`` syntax (already split
    into the table map by ``Query``) or from the explicit alias map.
    """

    def build(self, tables: dict[str, str | None], aliases: dict[str, str]) -> str:
        items = [self.render(table, alias, aliases) for table, alias in tables.items()]
        return ",".join(items)

    @staticmethod
    def render(table: str, alias: str | None, aliases: dict[str, str]) -> str:
        alias = alias or aliases.get(table)
        return f"{table} {alias}" if alias else table


class FieldClauseBuilder:
    """Builds the SELECT field list; an empty map renders ``*``."""

    def build(self, fields: dict[str, str | None]) -> str:
        if not fields:
            return "*"
        items = [f"{name} AS {alias}" if alias else name for name, alias in fields.items()]
        return ",".join(items)


class JoinClauseBuilder:
    """Builds the JOIN clauses.

    An ``a=b`` condition token is split on the first ``=`` into two column
    references; a token without ``=`` passes through as a raw condition.
    A literal value that itself contains ``=`` is split too.
    """

    def __init__(self, tables: TableClauseBuilder) -> None:
        self._tables = tables

    def build(self, joins: list[JoinSpec], aliases: dict[str, str]) -> str:
        return " ".join(self._build_one(join, aliases) for join in joins)

    def _build_one(self, join: JoinSpec, aliases: dict[str, str]) -> str:
        conditions: list[str] = []
        for token in join.condition:
            if token.find("=") > 0:
                left, right = token.split("=", 1)
                conditions.append(f"{left.strip()}={right.strip()}")
            else:
                conditions.append(token)
        table = self._tables.render(join.table, join.alias, aliases)
        sql = f"{join.type} JOIN {table}"
        if conditions:
            sql += f" ON {' AND '.join(conditions)}"
        return sql


class OrderClauseBuilder:
    """Builds the ``ORDER BY`` clause."""

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, order: list[OrderItem]) -> str:
        if not order:
            return ""
        return f"ORDER BY {','.join(self._build_item(item) for item in order)}"

    def _build_item(self, item: OrderItem) -> str:
        if item.rand:
            return self._ctx.driver.random_order()
        if item.raw:
            return item.expr
        if item.direction and item.direction.strip().lower() in _DIRECTIONS:
            return f"{item.expr} {item.direction.strip().upper()}"
        return item.expr


class DataBuilder:
    """Turns a write payload into ``column → SQL fragment`` pairs.

    * ``None`` renders ``NULL``.
    * :class:`Raw` expressions are inserted verbatim.
    * A string ``":name"`` naming an existing bind references that bind.
    * Any other scalar is registered as a new bind.
    * Non-scalar values (lists, dicts, objects) are silently dropped.
    """

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, data: dict[str, Any]) -> dict[str, str]:
        result: dict[str, str] = {}
        binds = self._ctx.binds
        for key, value in data.items():
            if value is None:
                result[key] = "NULL"
            elif isinstance(value, Raw):
                result[key] = value.sql
            elif isinstance(value, str) and value.startswith(":") and value[1:] in binds:
                result[key] = value
            elif is_scalar(value):
                name = binds.add(bind_name("data", key), value, self._ctx.bind_types.get(key))
                result[key] = f":{name}"
        return result


class UnionClauseBuilder:
    """Builds ``UNION [ALL] …`` fragments.

    Sub-query entries are compiled with ``build_fn``, which shares the
    outer bind set so placeholder names stay unique across branches.
    """

    def __init__(self, build_fn: Callable[[QueryOptions], str]) -> None:
        self._build_fn = build_fn

    def build(self, union: list[str | QueryOptions], union_all: bool) -> str:
        if not union:
            return ""
        keyword = "UNION ALL" if union_all else "UNION"
        parts: list[str] = []
        for entry in union:
            sql = entry if isinstance(entry, str) else self._build_fn(entry)
            parts.append(f"{keyword} {sql}")
        return " ".join(parts)
