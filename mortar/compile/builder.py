"""Core QueryOptions → SQL compilation logic.

``SQLBuilder`` is the top-level orchestrator.  It wires together the
clause-level sub-builders and assembles SELECT / INSERT / INSERT-multi /
UPDATE / DELETE statements.  All dialect-specific fragments (random order,
LIMIT syntax, row locks, forced indexes, literal quoting) are delegated to
the injected driver.

Every scalar destined for the statement body is bound as a ``:name``
parameter; literals are only inlined for :class:`~mortar.schema.options.Raw`
expressions and LIKE patterns.

Sub-builder hierarchy
---------------------
SQLBuilder
  ├── TableClauseBuilder   (clause_builders.py)
  ├── FieldClauseBuilder   (clause_builders.py)
  ├── JoinClauseBuilder    (clause_builders.py)
  ├── WhereBuilder         (where_builder.py)
  ├── OrderClauseBuilder   (clause_builders.py)
  ├── DataBuilder          (clause_builders.py)
  └── UnionClauseBuilder   (clause_builders.py)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mortar.compile.bindings import BindSet, BindType, BindValue
from mortar.compile.clause_builders import (
    DataBuilder,
    FieldClauseBuilder,
    JoinClauseBuilder,
    OrderClauseBuilder,
    TableClauseBuilder,
    UnionClauseBuilder,
)
from mortar.compile.context import CompilationContext
from mortar.compile.where_builder import WhereBuilder
from mortar.schema.options import QueryOptions

if TYPE_CHECKING:
    from mortar.drivers.base import Driver


@dataclass
class CompiledSQL:
    """The output of a compilation.

    Attributes:
        sql: SQL text with ``:name`` placeholders; ``""`` when there was
            nothing to write (empty or entirely invalid payload).
        binds: The consumed bind set, in placeholder order.
    """

    sql: str
    binds: dict[str, BindValue] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.sql)


class SQLBuilder:
    """Compiles normalized query options to parameterized SQL.

    Args:
        driver: Backend capability used for dialect fragments.
    """

    def __init__(self, driver: Driver) -> None:
        self._driver = driver
        self._tables = TableClauseBuilder()
        self._fields = FieldClauseBuilder()
        self._joins = JoinClauseBuilder(self._tables)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def select(
        self,
        options: QueryOptions,
        binds: BindSet | None = None,
        bind_types: dict[str, BindType] | None = None,
    ) -> CompiledSQL:
        """Compile a SELECT statement."""
        ctx = self._context(binds, bind_types)
        sql = self._build_select(options, ctx)
        return CompiledSQL(sql=sql, binds=ctx.binds.consume())

    def insert(
        self,
        options: QueryOptions,
        binds: BindSet | None = None,
        bind_types: dict[str, BindType] | None = None,
        replace: bool = False,
    ) -> CompiledSQL:
        """Compile a single-row INSERT (or REPLACE) from ``options.data``."""
        ctx = self._context(binds, bind_types)
        data = DataBuilder(ctx).build(options.data)
        if not data:
            ctx.binds.consume()
            return CompiledSQL(sql="")
        parts = [
            self._driver.insert_keyword(replace),
            "INTO",
            self._table_sql(options),
            f"({','.join(data)})",
            "VALUES",
            f"({','.join(data.values())})",
            self._comment(options.comment),
        ]
        return CompiledSQL(sql=_join(parts), binds=ctx.binds.consume())

    def insert_all(
        self,
        rows: list[dict[str, Any]],
        options: QueryOptions,
        binds: BindSet | None = None,
        bind_types: dict[str, BindType] | None = None,
        replace: bool = False,
    ) -> CompiledSQL:
        """Compile a multi-row INSERT.

        The column list comes from the first row that yields any valid
        values; columns missing from later rows render ``NULL``.
        """
        ctx = self._context(binds, bind_types)
        builder = DataBuilder(ctx)
        parsed = [row for row in (builder.build(r) for r in rows) if row]
        if not parsed:
            ctx.binds.consume()
            return CompiledSQL(sql="")
        columns = list(parsed[0])
        values = [
            f"({','.join(row.get(col, 'NULL') for col in columns)})" for row in parsed
        ]
        parts = [
            self._driver.insert_keyword(replace),
            "INTO",
            self._table_sql(options),
            f"({','.join(columns)})",
            "VALUES",
            ",".join(values),
            self._comment(options.comment),
        ]
        return CompiledSQL(sql=_join(parts), binds=ctx.binds.consume())

    def update(
        self,
        options: QueryOptions,
        binds: BindSet | None = None,
        bind_types: dict[str, BindType] | None = None,
    ) -> CompiledSQL:
        """Compile an UPDATE from ``options.data``; empty payload yields ``""``."""
        ctx = self._context(binds, bind_types)
        data = DataBuilder(ctx).build(options.data)
        if not data:
            ctx.binds.consume()
            return CompiledSQL(sql="")
        assignments = ",".join(f"{key}={value}" for key, value in data.items())
        parts = [
            "UPDATE",
            self._table_sql(options),
            "SET",
            assignments,
            self._joins.build(options.join, options.alias),
            WhereBuilder(ctx).clause(options.where),
            OrderClauseBuilder(ctx).build(options.order),
            self._limit(options),
            self._driver.lock_clause(options.lock),
            self._comment(options.comment),
        ]
        return CompiledSQL(sql=_join(parts), binds=ctx.binds.consume())

    def delete(
        self,
        options: QueryOptions,
        binds: BindSet | None = None,
        bind_types: dict[str, BindType] | None = None,
    ) -> CompiledSQL:
        """Compile a DELETE statement."""
        ctx = self._context(binds, bind_types)
        parts = [
            "DELETE FROM",
            self._table_sql(options),
            f"USING {options.using}" if options.using else "",
            self._joins.build(options.join, options.alias),
            WhereBuilder(ctx).clause(options.where),
            OrderClauseBuilder(ctx).build(options.order),
            self._limit(options),
            self._driver.lock_clause(options.lock),
            self._comment(options.comment),
        ]
        return CompiledSQL(sql=_join(parts), binds=ctx.binds.consume())

    # ------------------------------------------------------------------
    # SELECT assembly (shared by UNION sub-queries)
    # ------------------------------------------------------------------

    def _build_select(self, options: QueryOptions, ctx: CompilationContext) -> str:
        union = UnionClauseBuilder(lambda sub: self._build_select(sub, ctx))
        parts = [
            "SELECT",
            "DISTINCT" if options.distinct else "",
            self._fields.build(options.field),
            "FROM",
            self._table_sql(options),
            self._driver.force_index_clause(options.force),
            self._joins.build(options.join, options.alias),
            WhereBuilder(ctx).clause(options.where),
            f"GROUP BY {options.group}" if options.group else "",
            f"HAVING {options.having}" if options.having else "",
            OrderClauseBuilder(ctx).build(options.order),
            self._limit(options),
            union.build(options.union, options.union_all),
            self._driver.lock_clause(options.lock),
            self._comment(options.comment),
        ]
        return _join(parts)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _context(
        self,
        binds: BindSet | None,
        bind_types: dict[str, BindType] | None,
    ) -> CompilationContext:
        return CompilationContext(
            driver=self._driver,
            binds=binds if binds is not None else BindSet(),
            bind_types=bind_types or {},
        )

    def _table_sql(self, options: QueryOptions) -> str:
        return self._tables.build(options.table, options.alias)

    def _limit(self, options: QueryOptions) -> str:
        if options.limit is None or options.limit.count is None:
            return ""
        return self._driver.limit_clause(options.limit.offset, options.limit.count)

    @staticmethod
    def _comment(comment: str) -> str:
        return f"/* {comment} */" if comment else ""


def _join(parts: list[str]) -> str:
    return " ".join(part for part in parts if part)
