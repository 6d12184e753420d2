"""Test fixtures: sample DDL and a recording fake DB-API backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from mortar.drivers.base import Driver, Link
from mortar.errors import ConnectionError
from mortar.schema.config import NodeConfig
from mortar.schema.fields import FieldInfo

_FIXTURES_DIR = Path(__file__).parent

#: Four hosts: one master followed by three slaves.
HOSTS = "10.0.0.1,10.0.0.2,10.0.0.3,10.0.0.4"


def load_ddl(target: Literal["sqlite", "postgres"] = "sqlite") -> str:
    """Return the sample DDL SQL string for the given backend."""
    return (_FIXTURES_DIR / f"ddl_{target}.sql").read_text()


# ---------------------------------------------------------------------------
# Fake DB-API
# ---------------------------------------------------------------------------


class FakeError(Exception):
    """DB-API ``Error`` of the fake backend."""


class FakeDisconnect(FakeError):
    """Raised by the fake backend to simulate a dropped server connection."""


@dataclass
class Result:
    """Scripted result for statements containing ``match``."""

    match: str
    columns: list[str] = field(default_factory=list)
    rows: list[tuple[Any, ...]] = field(default_factory=list)
    rowcount: int = 1
    lastrowid: int | None = None
    extra_sets: list[list[tuple[Any, ...]]] = field(default_factory=list)


class FakeCursor:
    def __init__(self, conn: FakeConnection) -> None:
        self._conn = conn
        self.description: list[tuple[Any, ...]] | None = None
        self.rowcount = -1
        self.lastrowid: int | None = None
        self.closed = False
        self._sets: list[list[tuple[Any, ...]]] = []

    def execute(self, sql: str, params: Any = None) -> None:
        conn = self._conn
        conn.log.append((sql, params))
        for needle, exc in conn.failures.items():
            if needle in sql:
                raise exc
        result = next((r for r in conn.results if r.match in sql), None)
        if result is None:
            self.description = None
            self.rowcount = 1
            self._sets = []
            return
        self.description = [(name, None, None, None, None, None, None) for name in result.columns] or None
        self.rowcount = result.rowcount
        self.lastrowid = result.lastrowid
        self._sets = [list(result.rows), *result.extra_sets]

    def fetchall(self) -> list[tuple[Any, ...]]:
        return self._sets[0] if self._sets else []

    def fetchone(self) -> tuple[Any, ...] | None:
        rows = self.fetchall()
        return rows[0] if rows else None

    def nextset(self) -> bool | None:
        if len(self._sets) > 1:
            self._sets.pop(0)
            return True
        return None

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    """Records every statement, commit and rollback it receives."""

    def __init__(self, host: str = "") -> None:
        self.host = host
        self.log: list[tuple[str, Any]] = []
        self.results: list[Result] = []
        self.failures: dict[str, Exception] = {}
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self.cursors: list[FakeCursor] = []

    @property
    def statements(self) -> list[str]:
        return [sql for sql, _ in self.log]

    def cursor(self) -> FakeCursor:
        cursor = FakeCursor(self)
        self.cursors.append(cursor)
        return cursor

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def close(self) -> None:
        self.closed = True


class FakeLink(Link):
    def is_disconnect(self, exc: Exception) -> bool:
        return isinstance(exc, FakeDisconnect)


class FakeDriver(Driver):
    """Driver handing out :class:`FakeConnection` links.

    Attributes:
        connects: Node indexes in connect order.
        links: Connection per node index (the latest one).
        down: Host names that refuse connections.
        tables: Field metadata served by :meth:`get_fields`.
        paramstyle: Paramstyle advertised by the links.
    """

    def __init__(self, paramstyle: str = "named") -> None:
        self.connects: list[int] = []
        self.links: dict[int, FakeConnection] = {}
        self.down: set[str] = set()
        self.tables: dict[str, list[FieldInfo]] = {}
        self.paramstyle = paramstyle

    @property
    def name(self) -> str:
        return "fake"

    def connect(self, node: NodeConfig) -> Link:
        self.connects.append(node.index)
        if node.hostname in self.down:
            raise ConnectionError(f"{node.hostname} is down", slot=node.index, host=node.hostname)
        conn = FakeConnection(node.hostname)
        self.links[node.index] = conn
        return FakeLink(dbapi=conn, error_class=FakeError, paramstyle=self.paramstyle, host=node.hostname)

    def get_fields(self, link: Link, table: str) -> list[FieldInfo]:
        link.cursor().execute(f"-- fields of {table}")
        return list(self.tables.get(table, []))


def users_fields() -> list[FieldInfo]:
    """Field metadata of the sample ``users`` table."""
    return [
        FieldInfo(name="id", type="int(11)", nullable=False, primary=True, autoinc=True),
        FieldInfo(name="name", type="varchar(64)"),
        FieldInfo(name="age", type="int(3)"),
        FieldInfo(name="vip", type="tinyint(1)"),
        FieldInfo(name="create_time", type="datetime"),
        FieldInfo(name="update_time", type="datetime"),
    ]
