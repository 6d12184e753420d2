"""Driver abstractions: the physical ``Link`` and the ``Driver`` ABC.

The Template Method pattern (GoF) is used:

- ``Driver`` implements the backend-neutral steps on top of SQLAlchemy
  (URL construction, engine creation, schema inspection) and provides
  ANSI defaults for every dialect fragment.
- ``MySQLDriver``, ``PostgresDriver`` and ``SQLiteDriver`` override only the
  steps that differ (URL query keys, quoting, random order, LIMIT syntax,
  row locks, forced indexes, transaction start, last insert id).

The connection manager and SQL builder only ever talk to this interface;
nothing outside ``mortar.drivers`` branches on the backend name.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from mortar.drivers.paramstyle import Params, translate
from mortar.errors import ConnectionError
from mortar.schema.config import NodeConfig
from mortar.schema.fields import FieldInfo

logger = logging.getLogger(__name__)


@dataclass
class Link:
    """A physical DB-API connection and the facts needed to drive it.

    Attributes:
        dbapi: The DB-API connection (SQLAlchemy pool proxy).
        error_class: The driver module's ``Error`` base class.
        paramstyle: The driver module's PEP 249 ``paramstyle``.
        engine: Engine that produced the connection; ``None`` for links
            built by hand (tests, externally managed connections).
        host: Host name, for logging and error context.
    """

    dbapi: Any
    error_class: type[Exception]
    paramstyle: str
    engine: Engine | None = None
    host: str = ""

    def cursor(self) -> Any:
        return self.dbapi.cursor()

    def commit(self) -> None:
        self.dbapi.commit()

    def rollback(self) -> None:
        self.dbapi.rollback()

    def is_disconnect(self, exc: Exception) -> bool:
        """Ask the SQLAlchemy dialect whether ``exc`` means the link is gone."""
        if self.engine is None:
            return False
        return bool(self.engine.dialect.is_disconnect(exc, self.dbapi, None))

    def close(self) -> None:
        """Close the DB-API connection and dispose of its engine."""
        try:
            self.dbapi.close()
        finally:
            if self.engine is not None:
                self.engine.dispose()


class Driver(ABC):
    """Abstract base for backend capabilities.

    Subclasses set :attr:`drivername` (the SQLAlchemy ``dialect+driver``
    string) and override dialect-specific steps.
    """

    #: SQLAlchemy drivername used by :meth:`build_url`.
    drivername: str = ""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the canonical backend tag (``'mysql'``, ``'postgres'``, ...)."""

    # ------------------------------------------------------------------
    # Connecting
    # ------------------------------------------------------------------

    def build_url(self, node: NodeConfig) -> URL:
        """Build the SQLAlchemy URL for ``node``; an explicit DSN wins."""
        if node.dsn:
            url = make_url(node.dsn)
            if "+" not in url.drivername and "+" in self.drivername:
                # Pin the DB-API module this driver is written for.
                url = url.set(drivername=self.drivername)
            return url
        return URL.create(
            self.drivername,
            username=node.username or None,
            password=node.password or None,
            host=node.hostname or None,
            port=int(node.hostport) if node.hostport else None,
            database=node.database or None,
            query=self.url_query(node),
        )

    def url_query(self, node: NodeConfig) -> dict[str, str]:
        """Return the URL query parameters (charset and extra params)."""
        query = dict(node.params)
        if node.charset:
            query.setdefault("charset", node.charset)
        return query

    def connect(self, node: NodeConfig) -> Link:
        """Open one physical link to ``node``.

        The engine uses ``NullPool`` so the link is exclusively owned by the
        caller and closing it really closes the connection.

        Raises:
            ConnectionError: If the backend cannot be reached.
        """
        url = self.build_url(node)
        engine = create_engine(url, poolclass=NullPool)
        try:
            dbapi = engine.raw_connection()
        except SQLAlchemyError as exc:
            engine.dispose()
            raise ConnectionError(
                f"Cannot connect to {url.render_as_string(hide_password=True)}: {exc}",
                slot=node.index,
                host=node.hostname,
            ) from exc
        logger.debug("Connected to %s", url.render_as_string(hide_password=True))
        return Link(
            dbapi=dbapi,
            error_class=engine.dialect.loaded_dbapi.Error,
            paramstyle=engine.dialect.paramstyle,
            engine=engine,
            host=node.hostname,
        )

    def prepare(self, link: Link, sql: str, params: Params) -> tuple[str, Any]:
        """Translate canonical placeholders to the link's paramstyle."""
        return translate(sql, params, link.paramstyle)

    # ------------------------------------------------------------------
    # Dialect fragments
    # ------------------------------------------------------------------

    def quote(self, value: str) -> str:
        """Return ``value`` as a quoted SQL string literal."""
        return "'" + value.replace("'", "''") + "'"

    def random_order(self) -> str:
        return "RANDOM()"

    def limit_clause(self, offset: int, count: int) -> str:
        if offset:
            return f"LIMIT {count} OFFSET {offset}"
        return f"LIMIT {count}"

    def lock_clause(self, lock: bool) -> str:
        return "FOR UPDATE" if lock else ""

    def force_index_clause(self, indexes: list[str]) -> str:
        """Index hints are not portable; most backends ignore them."""
        return ""

    def insert_keyword(self, replace: bool) -> str:
        return "REPLACE" if replace else "INSERT"

    def explain_sql(self, sql: str) -> str:
        return f"EXPLAIN {sql}"

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @property
    def supports_savepoint(self) -> bool:
        return True

    def begin(self, link: Link) -> None:
        """Open a real transaction on ``link``."""
        cursor = link.cursor()
        try:
            cursor.execute("BEGIN")
        finally:
            cursor.close()

    def savepoint_sql(self, name: str) -> str:
        return f"SAVEPOINT {name}"

    def rollback_to_savepoint_sql(self, name: str) -> str:
        return f"ROLLBACK TO SAVEPOINT {name}"

    def last_insert_id(self, link: Link, cursor: Any, sequence: str | None = None) -> Any:
        """Return the id generated by the last INSERT on ``cursor``."""
        return getattr(cursor, "lastrowid", None)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_fields(self, link: Link, table: str) -> list[FieldInfo]:
        """Reflect the fields of ``table`` through SQLAlchemy's inspector."""
        if link.engine is None:
            return []
        inspector = inspect(link.engine)
        primary = set(inspector.get_pk_constraint(table).get("constrained_columns") or [])
        fields: list[FieldInfo] = []
        for column in inspector.get_columns(table):
            default = column.get("default")
            fields.append(
                FieldInfo(
                    name=column["name"],
                    type=str(column["type"]),
                    nullable=bool(column.get("nullable", True)),
                    default=str(default) if default is not None else None,
                    primary=column["name"] in primary,
                    autoinc=column.get("autoincrement") is True,
                )
            )
        return fields
