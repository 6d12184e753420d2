"""SQLite driver."""

from __future__ import annotations

from sqlalchemy.engine import URL

from mortar.drivers.base import Driver, Link
from mortar.schema.config import NodeConfig
from mortar.schema.fields import FieldInfo


class SQLiteDriver(Driver):
    """SQLite backend over the standard-library ``sqlite3`` module.

    ``database`` is the file path (``:memory:`` or empty for an in-memory
    database).  SQLite has no row locks and no index hints, so both
    clauses render empty.  Fields are read with ``PRAGMA table_info`` on the
    link itself, which also works for in-memory databases that a second
    connection could not see.
    """

    drivername = "sqlite"

    @property
    def name(self) -> str:
        return "sqlite"

    def build_url(self, node: NodeConfig) -> URL:
        if node.dsn:
            return super().build_url(node)
        database = node.database if node.database and node.database != ":memory:" else None
        return URL.create(self.drivername, database=database)

    def lock_clause(self, lock: bool) -> str:
        return ""

    def explain_sql(self, sql: str) -> str:
        return f"EXPLAIN QUERY PLAN {sql}"

    def get_fields(self, link: Link, table: str) -> list[FieldInfo]:
        cursor = link.cursor()
        try:
            cursor.execute(f"PRAGMA table_info({table})")
            rows = cursor.fetchall()
        finally:
            cursor.close()
        pk_count = sum(1 for row in rows if row[5])
        fields: list[FieldInfo] = []
        for _cid, name, type_name, notnull, default, pk in rows:
            fields.append(
                FieldInfo(
                    name=name,
                    type=type_name or "",
                    nullable=not notnull and not pk,
                    default=None if default is None else str(default),
                    primary=bool(pk),
                    # A lone INTEGER PRIMARY KEY aliases the rowid.
                    autoinc=bool(pk) and pk_count == 1 and (type_name or "").upper() == "INTEGER",
                )
            )
        return fields
