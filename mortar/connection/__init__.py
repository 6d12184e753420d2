"""mortar connection layer: sessions, routing and transactions."""
from mortar.connection.manager import Connection, is_procedure
from mortar.connection.routing import Route, Router
from mortar.connection.slot import (
    ConnectionSlot,
    PreparedStatement,
    Role,
    SessionMetrics,
    SessionState,
)

__all__ = [
    "Connection",
    "ConnectionSlot",
    "PreparedStatement",
    "Role",
    "Route",
    "Router",
    "SessionMetrics",
    "SessionState",
    "is_procedure",
]
