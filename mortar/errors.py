"""Custom exception hierarchy for mortar.

All public errors inherit from MortarError so callers can catch the base
class for any mortar-specific failure.
"""
from __future__ import annotations

from typing import Any

#: Error code used when the backend does not report a numeric one.
DEFAULT_ERROR_CODE = 10502


class MortarError(Exception):
    """Base exception for all mortar errors."""


class ConfigurationError(MortarError):
    """Raised when a database configuration is missing or invalid.

    Detected at construction time, before any link is opened.

    Args:
        message: Human-readable description.
        option: The offending configuration key, when known.
    """

    def __init__(self, message: str, option: str | None = None) -> None:
        super().__init__(message)
        self.option = option


class ConnectionError(MortarError):  # noqa: A001
    """Raised when a physical link cannot be established.

    Args:
        message: Human-readable description.
        slot: Slot index of the node that failed.
        host: Host name of the node that failed.
    """

    def __init__(
        self,
        message: str,
        slot: int | None = None,
        host: str | None = None,
    ) -> None:
        super().__init__(message)
        self.slot = slot
        self.host = host


class CompilationError(MortarError):
    """Raised when query options cannot be compiled to SQL.

    Args:
        message: Human-readable description.
        clause: The clause being compiled when the error occurred.
    """

    def __init__(self, message: str, clause: str | None = None) -> None:
        super().__init__(message)
        self.clause = clause


class ExecutionError(MortarError):
    """Raised when the backend rejects a prepared or executed statement.

    The error always carries enough context to reproduce the failure: the
    debug SQL with every bind substituted, the bind set itself and the
    resolved connection config (password masked).

    Args:
        message: Human-readable description (usually the driver message).
        sql: Debug SQL of the failing statement.
        binds: The bind set that was sent with the statement.
        config: Resolved connection configuration.
        code: Backend error code, ``10502`` when unknown.
    """

    def __init__(
        self,
        message: str,
        sql: str = "",
        binds: dict[Any, Any] | list[Any] | None = None,
        config: dict[str, Any] | None = None,
        code: int | str = DEFAULT_ERROR_CODE,
    ) -> None:
        super().__init__(message)
        self.sql = sql
        self.binds = binds if binds is not None else {}
        self.config: dict[str, Any] = config or {}
        self.code = code

    @property
    def data(self) -> dict[str, Any]:
        """Debug payload grouped by section, for error pages and logs."""
        return {
            "Bind Param": self.binds,
            "Database Status": {
                "Error Code": self.code,
                "Error Message": str(self),
                "Error SQL": self.sql,
            },
            "Database Config": self.config,
        }

    def to_error_response(self) -> dict[str, Any]:
        """Returns a flat structured payload for logging or API responses."""
        return {
            "message": str(self),
            "code": self.code,
            "sql": self.sql,
            "binds": self.binds,
            "config": self.config,
        }


class BindingError(ExecutionError):
    """Raised when a parameter cannot be bound to a prepared statement.

    Args:
        placeholder: The placeholder that failed (``:name`` or position).
        message: Human-readable description.
    """

    def __init__(self, placeholder: str, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(
            message or f"Error occurred when binding parameter '{placeholder}'.",
            **kwargs,
        )
        self.placeholder = placeholder
