"""Connection slots, roles and per-session bookkeeping."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from mortar.drivers.base import Link

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Routing role a slot was first resolved for."""

    WRITE = "write"
    READ = "read"


class SessionState(str, Enum):
    UNCONNECTED = "unconnected"
    CONNECTED_SINGLE = "connected_single"
    CONNECTED_WRITE = "connected_write"
    CONNECTED_READ = "connected_read"


@dataclass
class PreparedStatement:
    """The cursor currently bound to one SQL text on a slot."""

    sql: str
    cursor: Any

    def free(self) -> None:
        self.cursor.close()


@dataclass
class ConnectionSlot:
    """One physical link, keyed by its node index.

    A slot owns at most one :class:`PreparedStatement`; the previous one is
    freed before it is replaced.
    """

    index: int
    role: Role
    link: Link
    statement: PreparedStatement | None = None

    def prepare(self, sql: str) -> PreparedStatement:
        """Return a statement for ``sql``, reusing the current one if the text matches."""
        if self.statement is not None and self.statement.sql == sql:
            return self.statement
        self.free()
        self.statement = PreparedStatement(sql=sql, cursor=self.link.cursor())
        return self.statement

    def free(self) -> None:
        if self.statement is not None:
            statement, self.statement = self.statement, None
            statement.free()

    def close(self) -> None:
        """Free the statement and close the physical link."""
        try:
            self.free()
        except self.link.error_class:
            logger.debug("Ignoring error while freeing statement on slot %d", self.index)
        self.link.close()


@dataclass
class SessionMetrics:
    """Statement counters owned by one connection.

    Attributes:
        queries: Number of read statements run.
        executes: Number of write statements run.
        elapsed: Total seconds spent executing statements.
    """

    queries: int = 0
    executes: int = 0
    elapsed: float = 0.0

    def record(self, write: bool, elapsed: float) -> None:
        if write:
            self.executes += 1
        else:
            self.queries += 1
        self.elapsed += elapsed

    @property
    def total(self) -> int:
        return self.queries + self.executes
