"""Fluent query builder.

``Query`` collects intent through chainable setters and hands a normalized
:class:`~mortar.schema.options.QueryOptions` snapshot to the SQL builder
when a terminal method runs.  Setters never touch the database; terminal
methods either execute through the :class:`~mortar.connection.Connection`
or, with ``execute=False``, return the debug SQL with every bind
substituted::

    rows = (
        Query(conn)
        .table("users u")
        .field("u.id,u.name")
        .where("u.status", 1)
        .where_or(lambda q: q.where("u.age", ">", 30).where("u.vip", 1))
        .order("u.id", "desc")
        .limit(10)
        .select()
    )

A snapshot is consumed exactly once: every terminal method clears the
pending options and binds, so a ``Query`` must be reconfigured before reuse.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from typing import Any, TypeVar

from mortar.compile.bindings import BindSet, BindType, BindValue
from mortar.compile.builder import CompiledSQL
from mortar.connection.manager import Binds, Connection
from mortar.errors import CompilationError
from mortar.schema.fields import TableInfo
from mortar.schema.options import (
    NULL_OPS,
    Condition,
    JoinSpec,
    LimitSpec,
    NestedCondition,
    OrderItem,
    QueryOptions,
    Raw,
    RawCondition,
)

T = TypeVar("T")

_MISSING: Any = object()
_DEFAULT_LIST_ROWS = 20


class Query:
    """Chainable query builder bound to one :class:`Connection`.

    Args:
        connection: The session statements run on.
    """

    def __init__(self, connection: Connection) -> None:
        self.connection = connection
        self.prefix = connection.config.prefix
        self._name = ""
        self._options: dict[str, Any] = {}
        self._binds = BindSet()

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def name(self, name: str) -> Query:
        """Set the table name without prefix; the prefix is added on compile."""
        self._name = name
        return self

    def get_table(self, name: str = "") -> str:
        """Return the prefixed table name for ``name`` (or the current name)."""
        name = name or self._name
        return f"{self.prefix}{name}" if name else ""

    def table(self, table: str | Iterable[str] | Mapping[str, str]) -> Query:
        """Set the table list.

        Accepts ``"users"``, ``"users u"``, ``"users u,orders o"``, a sub-query
        string containing ``)``, a list of such entries or a ``{table: alias}``
        mapping.  Inline aliases are also recorded in the alias map.
        """
        tables: dict[str, str | None] = {}
        if isinstance(table, str) and ")" in table:
            self._options["table"] = {table: None}
            return self
        if isinstance(table, str):
            entries: Iterable[Any] = table.split(",")
        elif isinstance(table, Mapping):
            entries = list(table.items())
        else:
            entries = list(table)
        for entry in entries:
            if isinstance(entry, tuple):
                name, alias = entry
            else:
                name, alias = _split_alias(entry)
            tables[name] = alias
            if alias:
                self.alias({name: alias})
        self._options["table"] = tables
        return self

    def alias(self, alias: str | Mapping[str, str]) -> Query:
        """Set table aliases; a bare string aliases the current table."""
        aliases = self._options.setdefault("alias", {})
        if isinstance(alias, Mapping):
            aliases.update(alias)
        else:
            tables = self._options.get("table")
            current = next(iter(tables)) if tables else self.get_table()
            aliases[current] = alias
        return self

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    def field(
        self,
        fields: str | Iterable[str] | Mapping[str, str],
        except_: bool = False,
        table_name: str = "",
        prefix: str = "",
        alias: str = "",
    ) -> Query:
        """Add fields to the SELECT list.

        Args:
            fields: ``"a,b"``, a list of names, or a ``{field: alias}`` map.
            except_: Select every field of the table except ``fields``.
            table_name: Qualify each field with this table.
            prefix: Qualifier to use instead of ``table_name``.
            alias: Alias prefix; ``a`` becomes ``t.a AS {alias}a``.

        Duplicates are dropped; the first occurrence wins.
        """
        if not fields:
            return self
        if isinstance(fields, str):
            items: list[tuple[str, str | None]] = [
                (name.strip(), None) for name in fields.split(",") if name.strip()
            ]
        elif isinstance(fields, Mapping):
            items = [(name, value) for name, value in fields.items()]
        else:
            items = [(name, None) for name in fields]

        if except_:
            excluded = {name for name, _ in items}
            table = table_name or self._main_table()
            items = [
                (name, None)
                for name in self.table_info(table).field_names
                if name not in excluded
            ]

        if table_name:
            qualifier = prefix or table_name
            items = [
                (f"{qualifier}.{name}", field_alias or (f"{alias}{name}" if alias else None))
                for name, field_alias in items
            ]

        selected = self._options.setdefault("field", {})
        for name, field_alias in items:
            if name not in selected:
                selected[name] = field_alias
        return self

    # ------------------------------------------------------------------
    # Joins
    # ------------------------------------------------------------------

    def join(
        self,
        join: str | Mapping[str, str] | Iterable[Any],
        condition: str | Iterable[str] | None = None,
        type: str = "INNER",
    ) -> Query:
        """Add a JOIN.

        Without ``condition``, ``join`` is a list of ``[table, condition,
        type?]`` entries joined one by one.
        """
        if not condition:
            for entry in join:
                if isinstance(entry, (list, tuple)) and len(entry) >= 2:
                    self.join(entry[0], entry[1], entry[2] if len(entry) > 2 else type)
            return self
        table, alias = self._join_table(join)
        if isinstance(condition, str):
            tokens = [condition]
        else:
            tokens = list(condition)
        spec = JoinSpec(table=table, alias=alias, type=type.upper(), condition=tokens)
        self._options.setdefault("join", []).append(spec)
        return self

    def _join_table(self, join: str | Mapping[str, str]) -> tuple[str, str | None]:
        if isinstance(join, Mapping):
            table, alias = next(iter(join.items()))
            return table, alias
        join = join.strip()
        if "(" in join:
            return join, None
        table, alias = _split_alias(join)
        if (
            self.prefix
            and "." not in table
            and not table.startswith(self.prefix)
            and not table.startswith("__")
        ):
            if alias is None:
                alias = table
            table = self.get_table(table)
        return table, alias

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    def where(self, field: Any, op: Any = _MISSING, value: Any = _MISSING) -> Query:
        """Add an ``AND`` condition.

        * ``where(callback)`` nests the conditions ``callback`` adds to a
          fresh child query as one parenthesised group.
        * ``where("a > 1")`` adds raw SQL.
        * ``where({"a": 1, "b": 2})`` adds one equality per key.
        * ``where("a", 1)`` means ``a = 1``; ``where("a", "NULL")`` is a null test.
        * ``where("a", "in", [1, 2])`` is the full form.
        """
        self._add_where("AND", field, op, value)
        return self

    def where_or(self, field: Any, op: Any = _MISSING, value: Any = _MISSING) -> Query:
        """Add an ``OR`` condition; arguments as for :meth:`where`."""
        self._add_where("OR", field, op, value)
        return self

    def _add_where(self, logic: str, field: Any, op: Any, value: Any) -> None:
        nodes = self._options.setdefault("where", [])
        if callable(field):
            child = Query(self.connection)
            field(child)
            nodes.append(NestedCondition(logic=logic, children=child._options.get("where", [])))
            return
        if isinstance(field, Mapping):
            for key, item in field.items():
                nodes.append(Condition(logic=logic, field=key, op="=", value=item))
            return
        if op is _MISSING:
            nodes.append(RawCondition(logic=logic, sql=str(field)))
            return
        if value is _MISSING:
            if isinstance(op, str) and op.strip().upper() in NULL_OPS:
                nodes.append(Condition(logic=logic, field=field, op=op.strip().upper()))
            else:
                nodes.append(Condition(logic=logic, field=field, op="=", value=op))
            return
        operator = str(op).strip().upper()
        if value is None and operator in ("=", "<>"):
            operator = "NULL" if operator == "=" else "NOT NULL"
        nodes.append(Condition(logic=logic, field=field, op=operator, value=value))

    def group(self, group: str) -> Query:
        self._options["group"] = group
        return self

    def having(self, having: str) -> Query:
        self._options["having"] = having
        return self

    # ------------------------------------------------------------------
    # Ordering & paging
    # ------------------------------------------------------------------

    def order(self, field: str | Iterable[str] | Mapping[str, str], direction: str | None = None) -> Query:
        """Add ORDER BY entries.

        ``"[rand]"`` orders randomly; fragments containing ``(`` pass through
        unmodified; ``"a desc,b"``, ``["a desc", "b"]`` and
        ``{"a": "desc"}`` are all accepted.
        """
        items = self._options.setdefault("order", [])
        if isinstance(field, Mapping):
            for expr, item_direction in field.items():
                items.append(OrderItem(expr=expr, direction=item_direction))
            return self
        if isinstance(field, str):
            if field.strip() == "[rand]":
                items.append(OrderItem(rand=True))
                return self
            if "(" in field:
                items.append(OrderItem(expr=field, raw=True))
                return self
            if direction is not None:
                items.append(OrderItem(expr=field.strip(), direction=direction))
                return self
            entries: Iterable[str] = field.split(",")
        else:
            entries = field
        for entry in entries:
            entry = entry.strip()
            if entry == "[rand]":
                items.append(OrderItem(rand=True))
            elif "(" in entry:
                items.append(OrderItem(expr=entry, raw=True))
            else:
                expr, _, item_direction = entry.partition(" ")
                items.append(OrderItem(expr=expr, direction=item_direction.strip() or None))
        return self

    def limit(self, offset: int | str, count: int | str | None = None) -> Query:
        """Set LIMIT; ``limit(10)`` and ``limit("20,10")`` are both accepted."""
        if count is None and isinstance(offset, str) and "," in offset:
            offset, count = offset.split(",", 1)
        if count is None:
            self._options["limit"] = LimitSpec(offset=0, count=int(offset))
        else:
            self._options["limit"] = LimitSpec(offset=int(offset), count=int(count))
        return self

    def page(self, page: int | str, list_rows: int | None = None) -> Query:
        """Select page ``page`` (1-based) of ``list_rows`` rows.

        Without ``list_rows`` the current limit count is used, else 20.
        """
        if list_rows is None and isinstance(page, str) and "," in page:
            page, rows = page.split(",", 1)
            list_rows = int(rows)
        self._options["page"] = (int(page), list_rows)
        return self

    # ------------------------------------------------------------------
    # Other clauses
    # ------------------------------------------------------------------

    def union(self, union: Any, all: bool = False) -> Query:  # noqa: A002
        """Add UNION branches: raw SQL, a ``Query``, options, or a list of them."""
        entries = self._options.setdefault("union", [])
        self._options["union_all"] = all
        for entry in union if isinstance(union, list) else [union]:
            entries.append(entry.compile() if isinstance(entry, Query) else entry)
        return self

    def data(self, field: str | Mapping[str, Any], value: Any = None) -> Query:
        """Merge values into the pending write payload."""
        payload = self._options.setdefault("data", {})
        if isinstance(field, Mapping):
            payload.update(field)
        else:
            payload[field] = value
        return self

    def exp(self, field: str, value: str) -> Query:
        """Set a payload value to a raw SQL expression (``"score+1"``)."""
        return self.data(field, Raw(value))

    def lock(self, lock: bool = True) -> Query:
        """Lock the selected rows; a locking read always uses the master."""
        self._options["lock"] = lock
        if lock:
            self._options["master"] = True
        return self

    def force(self, index: str | Iterable[str]) -> Query:
        self._options["force"] = index.split(",") if isinstance(index, str) else list(index)
        return self

    def comment(self, comment: str) -> Query:
        self._options["comment"] = comment
        return self

    def distinct(self, distinct: bool = True) -> Query:
        self._options["distinct"] = distinct
        return self

    def master(self, master: bool = True) -> Query:
        """Send the next read to the write role."""
        self._options["master"] = master
        return self

    def using(self, using: str | Iterable[str]) -> Query:
        """Set the USING table list of a multi-table DELETE."""
        self._options["using"] = using if isinstance(using, str) else ",".join(using)
        return self

    def fetch_raw(self, fetch: bool = True) -> Query:
        """Return the DB-API cursor from :meth:`select` instead of rows."""
        self._options["fetch_raw"] = fetch
        return self

    # ------------------------------------------------------------------
    # Binds & options
    # ------------------------------------------------------------------

    def bind(
        self,
        key: str | Mapping[str, Any],
        value: Any = None,
        type: BindType = BindType.STR,
    ) -> Query:
        """Bind a value for a ``:key`` placeholder written in raw SQL."""
        if isinstance(key, Mapping):
            for name, item in key.items():
                if isinstance(item, BindValue):
                    self._binds.set(name, item.value, item.type)
                else:
                    self._binds.set(name, item)
        else:
            self._binds.set(key, value, type)
        return self

    def is_bind(self, key: str) -> bool:
        return key in self._binds

    def get_options(self, name: str = "") -> Any:
        """Return the pending options, or one of them by name."""
        if not name:
            return self._options
        return self._options.get(name)

    def remove_option(self, option: str | None = None) -> Query:
        """Drop one pending option, or all of them."""
        if option is None:
            self._options = {}
        else:
            self._options.pop(option, None)
        return self

    def remove_where_field(self, field: str, logic: str = "AND") -> Query:
        """Drop the pending conditions on ``field`` joined with ``logic``.

        Raw and nested conditions are left untouched.
        """
        logic = logic.strip().upper()
        where = self._options.get("where")
        if where:
            self._options["where"] = [
                node
                for node in where
                if not (isinstance(node, Condition) and node.field == field and node.logic == logic)
            ]
        return self

    def compile(self) -> QueryOptions:
        """Snapshot the pending options with defaults filled in and clear them."""
        options = self._options
        self._options = {}
        if not options.get("table"):
            table = self.get_table()
            if table:
                options["table"] = {table: None}
        page = options.pop("page", None)
        if page is not None:
            number, list_rows = page
            number = number if number > 0 else 1
            if not list_rows or list_rows <= 0:
                limit = options.get("limit")
                list_rows = limit.count if limit is not None and limit.count else _DEFAULT_LIST_ROWS
            options["limit"] = LimitSpec(offset=list_rows * (number - 1), count=list_rows)
        return QueryOptions.model_validate(options)

    # ------------------------------------------------------------------
    # Terminal operations
    # ------------------------------------------------------------------

    def select(self, execute: bool = True) -> Any:
        """Run the SELECT; with ``execute=False`` return its debug SQL."""
        options = self.compile()
        with self._compiling():
            compiled = self.connection.builder.select(options, self._binds)
        if not execute:
            return self._real_sql(compiled)
        return self.connection.query(
            compiled.sql,
            compiled.binds,
            master=options.master,
            raw=options.fetch_raw,
        )

    def find(self, execute: bool = True) -> Any:
        """Return the first matching row, or ``None``."""
        self.limit(1)
        result = self.select(execute)
        if not execute or not isinstance(result, list):
            return result
        return result[0] if result else None

    def build_sql(self, sub: bool = True) -> str:
        """Return the SELECT as SQL text, parenthesised for use as a sub-query."""
        sql = self.select(execute=False)
        return f"( {sql} )" if sub else sql

    def insert(
        self,
        execute: bool = True,
        get_last_ins_id: bool = True,
        replace: bool = False,
    ) -> Any:
        """Insert ``data``; returns the new id, the row count, or ``0`` for an empty payload."""
        options = self.compile()
        with self._compiling():
            options, bind_types = self._prepare_write(options, creating=True)
            compiled = self.connection.builder.insert(options, self._binds, bind_types, replace)
        if not execute:
            return self._real_sql(compiled)
        if not compiled:
            return 0
        result = self.connection.execute(compiled.sql, compiled.binds)
        if result and get_last_ins_id:
            return self.connection.get_last_ins_id()
        return result

    def insert_all(
        self,
        rows: list[Mapping[str, Any]],
        execute: bool = True,
        replace: bool = False,
    ) -> Any:
        """Insert several rows in one statement; returns the row count."""
        options = self.compile()
        prepared: list[dict[str, Any]] = []
        bind_types: dict[str, BindType] = {}
        with self._compiling():
            for row in rows:
                row_options, bind_types = self._prepare_write(
                    options.model_copy(update={"data": dict(row)}), creating=True
                )
                prepared.append(row_options.data)
            compiled = self.connection.builder.insert_all(
                prepared, options, self._binds, bind_types, replace
            )
        if not execute:
            return self._real_sql(compiled)
        if not compiled:
            return 0
        return self.connection.execute(compiled.sql, compiled.binds)

    def update(self, execute: bool = True) -> Any:
        """Update matching rows with ``data``; returns the row count."""
        options = self.compile()
        with self._compiling():
            options, bind_types = self._prepare_write(options, creating=False)
            compiled = self.connection.builder.update(options, self._binds, bind_types)
        if not execute:
            return self._real_sql(compiled)
        if not compiled:
            return 0
        return self.connection.execute(compiled.sql, compiled.binds)

    def delete(self, execute: bool = True) -> Any:
        """Delete matching rows; returns the row count.

        Raises:
            CompilationError: If no condition was given.
        """
        options = self.compile()
        with self._compiling():
            if not options.where:
                raise CompilationError("Refusing to delete without a condition.", clause="delete")
            compiled = self.connection.builder.delete(options, self._binds)
        if not execute:
            return self._real_sql(compiled)
        return self.connection.execute(compiled.sql, compiled.binds)

    @contextmanager
    def _compiling(self) -> Iterator[None]:
        """Drop the pending binds when the snapshot fails to compile."""
        try:
            yield
        except CompilationError:
            self._binds.consume()
            raise

    def _real_sql(self, compiled: CompiledSQL) -> str:
        return self.connection.get_real_sql(compiled.sql, compiled.binds)

    def _prepare_write(
        self,
        options: QueryOptions,
        creating: bool,
    ) -> tuple[QueryOptions, dict[str, BindType]]:
        config = self.connection.config
        if not config.auto_timestamp and not config.fields_strict:
            return options, {}
        data = dict(options.data)
        info = self.table_info(options.main_table) if config.fields_strict else None
        if config.auto_timestamp:
            now = datetime.now().strftime(config.datetime_format)
            stamps = ("create_time", "update_time") if creating else ("update_time",)
            for column in stamps:
                if info is None or column in info.field_names:
                    data.setdefault(column, now)
        if info is None:
            return options.model_copy(update={"data": data}), {}
        unknown = [column for column in data if column not in info.field_names]
        if unknown:
            raise CompilationError(
                f"Fields not exists: [{', '.join(unknown)}] in table '{info.name}'.",
                clause="data",
            )
        return options.model_copy(update={"data": data}), info.bind

    # ------------------------------------------------------------------
    # Table metadata
    # ------------------------------------------------------------------

    def table_info(self, table: str = "", fetch: str = "") -> Any:
        """Return the :class:`TableInfo` of ``table``, or one facet of it.

        Args:
            table: Table name; defaults to the current table.
            fetch: ``"fields"``, ``"type"``, ``"bind"`` or ``"pk"``.
        """
        name = (table or self._main_table()).split(" ")[0]
        info: TableInfo = self.connection.get_fields(name)
        if fetch == "fields":
            return info.field_names
        if fetch == "type":
            return info.types
        if fetch == "bind":
            return info.bind
        if fetch == "pk":
            return info.pk
        return info

    def get_pk(self, table: str = "") -> str | list[str] | None:
        return self.table_info(table, "pk")

    def get_fields_bind(self, table: str = "") -> dict[str, BindType]:
        return self.table_info(table, "bind")

    def _main_table(self) -> str:
        tables = self._options.get("table")
        return next(iter(tables)) if tables else self.get_table()

    # ------------------------------------------------------------------
    # Connection pass-through
    # ------------------------------------------------------------------

    def query(self, sql: str, binds: Binds | None = None, master: bool = False, raw: bool = False) -> Any:
        return self.connection.query(sql, binds, master, raw)

    def execute(self, sql: str, binds: Binds | None = None) -> int:
        return self.connection.execute(sql, binds)

    def get_last_sql(self) -> str:
        return self.connection.get_last_sql()

    def get_last_ins_id(self, sequence: str | None = None) -> Any:
        return self.connection.get_last_ins_id(sequence)

    def start_trans(self) -> None:
        self.connection.start_trans()

    def commit(self) -> None:
        self.connection.commit()

    def rollback(self) -> None:
        self.connection.rollback()

    def transaction(self, callback: Callable[[Query], T]) -> T:
        """Run ``callback(self)`` in a transaction; roll back if it raises."""
        return self.connection.transaction(lambda _conn: callback(self))

    def batch_query(self, sqls: Iterable[str]) -> bool:
        return self.connection.batch_query(sqls)


def _split_alias(entry: str) -> tuple[str, str | None]:
    parts = entry.strip().split()
    if len(parts) >= 2:
        return parts[0], parts[-1]
    return entry.strip(), None
