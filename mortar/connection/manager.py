"""Connection manager: link routing, statement execution and transactions.

``Connection`` owns every physical link of one logical session.  Links are
created lazily, cached per ``(role, slot)`` and released together by
:meth:`Connection.close`.  Under distributed deployment each role keeps the
first link it resolved, so a session sticks to one master and one slave.

Statements use mortar's canonical placeholders (``:name`` or ``?``); the
driver translates them to the DB-API paramstyle just before execution.
Outside a transaction every statement is committed immediately.
"""
from __future__ import annotations

import logging
import random
import re
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar

from mortar.compile.bindings import BindType, BindValue
from mortar.compile.builder import SQLBuilder
from mortar.connection.routing import Router
from mortar.connection.slot import ConnectionSlot, Role, SessionMetrics, SessionState
from mortar.drivers.base import Driver
from mortar.drivers.paramstyle import NAMED_TOKEN, POSITIONAL_TOKEN
from mortar.drivers.registry import DriverFactory
from mortar.errors import (
    DEFAULT_ERROR_CODE,
    BindingError,
    ConnectionError,
    ExecutionError,
)
from mortar.schema.config import DatabaseConfig, DeployMode, NodeConfig
from mortar.schema.fields import TableInfo

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Bind input accepted by :meth:`Connection.query` / :meth:`Connection.execute`.
Binds = Mapping[str, Any] | Sequence[Any]

_PROCEDURE = re.compile(r"^\s*(call|exec)\b", re.I)
_FALSE_STRINGS = frozenset({"", "0", "false"})
_SELECT = re.compile(r"^\s*select\b", re.I)


def is_procedure(sql: str) -> bool:
    """Return True when ``sql`` calls a stored procedure (``CALL``/``EXEC``)."""
    return bool(_PROCEDURE.match(sql))


class Connection:
    """A logical database session.

    Args:
        config: Validated configuration.
        driver: Backend driver; resolved from ``config.type`` when omitted.
        rng: Random source for slot selection.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        driver: Driver | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.driver = driver or DriverFactory.create(config.type)
        self.builder = SQLBuilder(self.driver)
        self.router = Router(config, rng)
        self.metrics = SessionMetrics()
        self.trans_times = 0

        self._nodes: list[NodeConfig] = config.nodes()
        self._slots: dict[tuple[Role, int], ConnectionSlot] = {}
        self._link_write: ConnectionSlot | None = None
        self._link_read: ConnectionSlot | None = None
        self._current: ConnectionSlot | None = None
        self._last: ConnectionSlot | None = None

        self._query_str = ""
        self._binds: Binds | None = None
        self._num_rows = 0
        self._fields: dict[str, TableInfo] = {}

    # ------------------------------------------------------------------
    # Link management
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        if not self._slots:
            return SessionState.UNCONNECTED
        if self.config.deploy is DeployMode.SINGLE:
            return SessionState.CONNECTED_SINGLE
        if self._current is not None and self._current is self._link_read:
            return SessionState.CONNECTED_READ
        return SessionState.CONNECTED_WRITE

    def init_connect(self, master: bool = True) -> ConnectionSlot:
        """Resolve the link that should serve the next statement.

        Writes and every statement inside an open transaction use the write
        role; other reads use the read role.  Under single deployment there
        is only one link.
        """
        if self.config.deploy is DeployMode.DISTRIBUTED:
            if master or self.trans_times:
                if self._link_write is None:
                    self._link_write = self._multi_connect(Role.WRITE)
                self._current = self._link_write
            else:
                if self._link_read is None:
                    self._link_read = self._multi_connect(Role.READ)
                self._current = self._link_read
        elif self._current is None:
            self._current = self._connect(self._nodes[0], Role.WRITE)
        return self._current

    def _multi_connect(self, role: Role) -> ConnectionSlot:
        route = self.router.route(role is Role.WRITE)
        node = self._node(route.slot)
        try:
            return self._connect(node, role)
        except ConnectionError:
            if not route.has_fallback:
                raise
            logger.warning(
                "Connect to slot %d failed; falling back to master slot %d",
                route.slot,
                route.master,
            )
            return self._connect(self._node(route.master), role)

    def _node(self, index: int) -> NodeConfig:
        if 0 <= index < len(self._nodes):
            return self._nodes[index]
        # Missing entries fall back to the first node, as config fields do.
        return self._nodes[0].model_copy(update={"index": index})

    def _connect(self, node: NodeConfig, role: Role) -> ConnectionSlot:
        key = (role, node.index)
        slot = self._slots.get(key)
        if slot is None:
            link = self.driver.connect(node)
            slot = ConnectionSlot(index=node.index, role=role, link=link)
            self._slots[key] = slot
            logger.debug("Opened %s link on slot %d (%s)", role.value, node.index, node.hostname)
        return slot

    def _drop(self, slot: ConnectionSlot) -> None:
        """Forget a broken link so the next statement reconnects."""
        logger.warning("Dropping disconnected link on slot %d", slot.index)
        self._slots.pop((slot.role, slot.index), None)
        if self._link_write is slot:
            self._link_write = None
        if self._link_read is slot:
            self._link_read = None
        if self._current is slot:
            self._current = None
        if self._last is slot:
            self._last = None
        try:
            slot.close()
        except slot.link.error_class:
            logger.debug("Ignoring error while closing dropped link", exc_info=True)

    def close(self) -> None:
        """Release every cached link."""
        for slot in list(self._slots.values()):
            slot.close()
        if self._slots:
            logger.debug("Closed %d link(s)", len(self._slots))
        self._slots.clear()
        self._link_write = None
        self._link_read = None
        self._current = None
        self._last = None

    def free(self) -> None:
        """Release the current prepared statement."""
        if self._current is not None:
            self._current.free()

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def query(
        self,
        sql: str,
        binds: Binds | None = None,
        master: bool = False,
        raw: bool = False,
    ) -> Any:
        """Run a read statement.

        Args:
            sql: SQL text with ``:name`` or ``?`` placeholders.
            binds: Named or positional binds; values may be :class:`BindValue`.
            master: Force the write role.
            raw: Return the DB-API cursor instead of fetched rows.  The cursor
                stays valid until the next statement with a different text.

        Returns:
            A list of rows shaped per ``result_type``; for procedures, a list
            holding every result set.
        """
        slot, cursor, procedure = self._run(sql, binds, master, write=False)
        if raw:
            return cursor
        try:
            rows = self._procedure(cursor) if procedure else self._fetch(cursor)
        except slot.link.error_class as exc:
            raise self._error(exc, slot, sql, binds) from exc
        self._autocommit(slot)
        if self.config.debug and self.config.sql_explain and _SELECT.match(sql):
            logger.info("[ EXPLAIN ] %s", self._explain(sql, binds))
        return rows

    def execute(self, sql: str, binds: Binds | None = None) -> int:
        """Run a write statement and return the affected-row count."""
        slot, cursor, procedure = self._run(sql, binds, master=True, write=True)
        self._num_rows = cursor.rowcount
        if procedure:
            try:
                self._procedure(cursor)
            except slot.link.error_class as exc:
                raise self._error(exc, slot, sql, binds) from exc
        self._autocommit(slot)
        return self._num_rows

    def _run(
        self,
        sql: str,
        binds: Binds | None,
        master: bool,
        write: bool,
    ) -> tuple[ConnectionSlot, Any, bool]:
        slot = self.init_connect(master)
        self._query_str = sql
        self._binds = binds
        procedure = is_procedure(sql)
        try:
            statement = slot.prepare(sql)
        except slot.link.error_class as exc:
            raise self._error(exc, slot, sql, binds) from exc
        params = self._bind_params(sql, binds, procedure)
        native_sql, native_params = self.driver.prepare(slot.link, sql, params)
        start = time.perf_counter()
        try:
            if native_params is None:
                statement.cursor.execute(native_sql)
            else:
                statement.cursor.execute(native_sql, native_params)
        except slot.link.error_class as exc:
            raise self._error(exc, slot, sql, binds) from exc
        elapsed = time.perf_counter() - start
        self.metrics.record(write, elapsed)
        self._last = slot
        if self.config.debug:
            logger.info("%s [ RunTime:%.6fs ]", self.get_real_sql(sql, binds), elapsed)
        return slot, statement.cursor, procedure

    def _autocommit(self, slot: ConnectionSlot) -> None:
        if not self.trans_times:
            slot.link.commit()

    def _fetch(self, cursor: Any) -> list[Any]:
        if cursor.description is None:
            return []
        rows = cursor.fetchall()
        if self.config.result_type == "tuple":
            return [tuple(row) for row in rows]
        columns = [column[0] for column in cursor.description]
        return [dict(zip(columns, row)) for row in rows]

    def _procedure(self, cursor: Any) -> list[list[Any]]:
        """Collect every result set a procedure produced."""
        results = [self._fetch(cursor)]
        nextset = getattr(cursor, "nextset", None)
        while nextset is not None and nextset():
            results.append(self._fetch(cursor))
        return results

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------

    def _bind_params(
        self,
        sql: str,
        binds: Binds | None,
        procedure: bool,
    ) -> dict[str, Any] | list[Any]:
        """Resolve typed binds to plain values.

        Value binding coerces each value per its type tag; procedure binding
        passes values through untouched so drivers can map OUT parameters.
        """
        if not binds:
            return {}
        if isinstance(binds, Mapping):
            present = {match.group(1) for match in NAMED_TOKEN.finditer(sql) if match.group(1)}
            params: dict[str, Any] = {}
            for key, bind in binds.items():
                name = str(key).lstrip(":")
                if name not in present:
                    raise BindingError(
                        f":{name}",
                        sql=self.get_real_sql(sql, binds),
                        binds=_plain(binds),
                        config=self.config.masked(),
                    )
                params[name] = self._bind_value(f":{name}", bind, procedure, sql, binds)
            return params
        return [
            self._bind_value(str(position + 1), bind, procedure, sql, binds)
            for position, bind in enumerate(binds)
        ]

    def _bind_value(
        self,
        placeholder: str,
        bind: Any,
        procedure: bool,
        sql: str,
        binds: Binds,
    ) -> Any:
        value, type_ = _unpack(bind)
        if procedure:
            return value
        try:
            return _coerce(value, type_)
        except (TypeError, ValueError) as exc:
            raise BindingError(
                placeholder,
                f"Error occurred when binding parameter '{placeholder}': {exc}",
                sql=self.get_real_sql(sql, binds),
                binds=_plain(binds),
                config=self.config.masked(),
            ) from exc

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def _error(
        self,
        exc: Exception,
        slot: ConnectionSlot,
        sql: str,
        binds: Binds | None,
    ) -> ExecutionError:
        if self.config.break_reconnect and slot.link.is_disconnect(exc):
            self._drop(slot)
        code = exc.args[0] if exc.args and isinstance(exc.args[0], int) else DEFAULT_ERROR_CODE
        return ExecutionError(
            str(exc),
            sql=self.get_real_sql(sql, binds),
            binds=_plain(binds),
            config=self.config.masked(),
            code=code,
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def start_trans(self) -> None:
        """Open a transaction, or a savepoint when one is already open."""
        slot = self.init_connect(True)
        self.trans_times += 1
        try:
            if self.trans_times == 1:
                self.driver.begin(slot.link)
            elif self.driver.supports_savepoint:
                self._exec_raw(slot, self.driver.savepoint_sql(f"trans{self.trans_times}"))
        except slot.link.error_class as exc:
            raise self._error(exc, slot, "START TRANSACTION", None) from exc
        logger.debug("Transaction depth %d", self.trans_times)

    def commit(self) -> None:
        """Commit the outermost transaction; inner levels only decrement depth."""
        if self.trans_times == 0:
            logger.warning("commit() called with no open transaction")
            return
        slot = self.init_connect(True)
        if self.trans_times == 1:
            try:
                slot.link.commit()
            except slot.link.error_class as exc:
                raise self._error(exc, slot, "COMMIT", None) from exc
        self.trans_times -= 1
        logger.debug("Transaction depth %d", self.trans_times)

    def rollback(self) -> None:
        """Roll back the outermost transaction, or to the innermost savepoint."""
        slot = self.init_connect(True)
        try:
            if self.trans_times == 1:
                slot.link.rollback()
            elif self.trans_times > 1 and self.driver.supports_savepoint:
                self._exec_raw(
                    slot, self.driver.rollback_to_savepoint_sql(f"trans{self.trans_times}")
                )
        except slot.link.error_class as exc:
            raise self._error(exc, slot, "ROLLBACK", None) from exc
        self.trans_times = max(0, self.trans_times - 1)
        logger.debug("Transaction depth %d", self.trans_times)

    def transaction(self, callback: Callable[[Connection], T]) -> T:
        """Run ``callback`` inside a transaction.

        Commits when it returns, rolls back and re-raises when it fails.
        """
        self.start_trans()
        try:
            result = callback(self)
        except Exception:
            self.rollback()
            raise
        self.commit()
        return result

    def batch_query(self, sqls: Iterable[str]) -> bool:
        """Execute several statements in one transaction."""
        self.start_trans()
        try:
            for sql in sqls:
                self.execute(sql)
        except Exception:
            self.rollback()
            raise
        self.commit()
        return True

    def _exec_raw(self, slot: ConnectionSlot, sql: str) -> None:
        cursor = slot.link.cursor()
        try:
            cursor.execute(sql)
        finally:
            cursor.close()

    # ------------------------------------------------------------------
    # Introspection & debugging
    # ------------------------------------------------------------------

    def get_real_sql(self, sql: str, binds: Binds | None = None) -> str:
        """Render ``sql`` with every bind substituted as a literal.

        The text is scanned once: named binds are replaced as whole tokens,
        so ``:id`` never clobbers ``:id_1``, positional ``?`` are replaced in
        order, and string literals (including substituted values) are never
        rescanned.
        """
        if not binds:
            return sql
        if isinstance(binds, Mapping):
            literals = {str(key).lstrip(":"): self._literal(bind) for key, bind in binds.items()}

            def _named(match: re.Match[str]) -> str:
                name = match.group(1)
                if name is None or name not in literals:
                    return match.group(0)
                return literals[name]

            return NAMED_TOKEN.sub(_named, sql)
        positional = iter([self._literal(bind) for bind in binds])

        def _positional(match: re.Match[str]) -> str:
            if match.group(0) != "?":
                return match.group(0)
            return next(positional, "?")

        return POSITIONAL_TOKEN.sub(_positional, sql)

    def _literal(self, bind: Any) -> str:
        value, type_ = _unpack(bind)
        if type_ is BindType.NULL or value is None:
            return "NULL"
        if type_ is BindType.BOOL:
            return "1" if _to_bool(value) else "0"
        if type_ is BindType.INT:
            return "0" if value == "" else str(value)
        return self.driver.quote(str(value))

    def get_last_sql(self) -> str:
        """Return the debug SQL of the most recent statement."""
        return self.get_real_sql(self._query_str, self._binds)

    def get_last_ins_id(self, sequence: str | None = None) -> Any:
        """Return the id generated by the most recent INSERT."""
        slot = self._last
        if slot is None or slot.statement is None:
            return None
        last_id = self.driver.last_insert_id(slot.link, slot.statement.cursor, sequence)
        self._autocommit(slot)
        return last_id

    def get_num_rows(self) -> int:
        return self._num_rows

    def get_fields(self, table: str) -> TableInfo:
        """Return (and cache) the field metadata of ``table``."""
        info = self._fields.get(table)
        if info is None:
            slot = self.init_connect(False)
            try:
                fields = self.driver.get_fields(slot.link, table)
            except slot.link.error_class as exc:
                raise self._error(exc, slot, f"-- fields of {table}", None) from exc
            info = TableInfo(name=table, fields=fields)
            self._fields[table] = info
        return info

    def get_explain(self, sql: str, binds: Binds | None = None) -> list[Any]:
        """Run the backend's EXPLAIN for ``sql`` and return its rows."""
        return self._explain(sql, binds)

    def _explain(self, sql: str, binds: Binds | None) -> list[Any]:
        slot = self.init_connect(False)
        explain = self.driver.explain_sql(sql)
        params = self._bind_params(explain, binds, procedure=False)
        native_sql, native_params = self.driver.prepare(slot.link, explain, params)
        cursor = slot.link.cursor()
        try:
            if native_params is None:
                cursor.execute(native_sql)
            else:
                cursor.execute(native_sql, native_params)
            return self._fetch(cursor)
        except slot.link.error_class as exc:
            raise self._error(exc, slot, explain, binds) from exc
        finally:
            cursor.close()


def _unpack(bind: Any) -> tuple[Any, BindType]:
    if isinstance(bind, BindValue):
        return bind.value, bind.type
    return bind, BindType.infer(bind)


def _coerce(value: Any, type_: BindType) -> Any:
    if type_ is BindType.NULL:
        return None
    if type_ is BindType.BOOL:
        return _to_bool(value)
    if type_ is BindType.INT and isinstance(value, str):
        if value == "":
            return 0
        try:
            return int(value)
        except ValueError:
            return float(value)
    return value


def _to_bool(value: Any) -> bool:
    """``"0"``, ``""`` and ``"false"`` (any case) are false; otherwise truthiness."""
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _plain(binds: Binds | None) -> dict[str, Any] | list[Any]:
    """Strip type tags for error payloads."""
    if not binds:
        return {}
    if isinstance(binds, Mapping):
        return {str(key): _unpack(bind)[0] for key, bind in binds.items()}
    return [_unpack(bind)[0] for bind in binds]
