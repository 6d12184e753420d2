"""PostgreSQL driver."""

from __future__ import annotations

from typing import Any

from mortar.drivers.base import Driver, Link
from mortar.errors import CompilationError
from mortar.schema.config import NodeConfig


class PostgresDriver(Driver):
    """PostgreSQL backend over psycopg 3.

    psycopg opens a transaction implicitly with the first statement, so
    :meth:`begin` has nothing to send.  The connection character set is
    passed as ``client_encoding``.  There is no ``REPLACE`` statement and
    no index hint syntax.
    """

    drivername = "postgresql+psycopg"

    @property
    def name(self) -> str:
        return "postgres"

    def url_query(self, node: NodeConfig) -> dict[str, str]:
        query = dict(node.params)
        if node.charset:
            query.setdefault("client_encoding", node.charset)
        return query

    def insert_keyword(self, replace: bool) -> str:
        if replace:
            raise CompilationError("PostgreSQL does not support REPLACE INTO.", clause="insert")
        return "INSERT"

    def begin(self, link: Link) -> None:
        pass

    def last_insert_id(self, link: Link, cursor: Any, sequence: str | None = None) -> Any:
        """Read the last value handed out by a sequence in this session.

        With ``sequence`` the named sequence is queried with ``currval``;
        otherwise ``lastval()`` reports the most recent sequence use.
        """
        id_cursor = link.cursor()
        # A failed lookup must not abort an enclosing transaction.
        id_cursor.execute("SAVEPOINT mortar_last_id")
        try:
            if sequence:
                id_cursor.execute("SELECT currval(%s)", (sequence,))
            else:
                id_cursor.execute("SELECT lastval()")
            row = id_cursor.fetchone()
        except link.error_class:
            # No sequence was used in this session.
            id_cursor.execute("ROLLBACK TO SAVEPOINT mortar_last_id")
            row = None
        id_cursor.execute("RELEASE SAVEPOINT mortar_last_id")
        id_cursor.close()
        return row[0] if row else None
