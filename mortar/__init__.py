"""mortar – fluent SQL building and master/slave connection routing.

Public API
----------
``connect``
    Validate a config (mapping, DSN string or ``DatabaseConfig``) and return
    a ``Database`` facade.

``Query``
    Chainable builder; ``select``/``find``/``insert``/``update``/``delete``
    compile and run, or return debug SQL with ``execute=False``.

``Connection``
    Session owning the physical links: routing, execution, transactions.

Re-exported types
-----------------
``DatabaseConfig``, ``QueryOptions``, ``Raw``, ``BindType``, ``BindValue``,
``SQLBuilder``, ``CompiledSQL`` and all error classes.

Extensibility
-------------
New backends can be registered via::

    from mortar.drivers import Driver, DriverFactory

    @DriverFactory.register("oracle")
    class OracleDriver(Driver):
        ...

After registration, any config with ``type="oracle"`` picks it up.
"""

from __future__ import annotations

from mortar.compile import BindSet, BindType, BindValue, CompiledSQL, SQLBuilder
from mortar.connection import Connection, SessionMetrics, SessionState
from mortar.db import Database, connect, load_config
from mortar.drivers import (
    Driver,
    DriverFactory,
    Link,
    MySQLDriver,
    PostgresDriver,
    SQLiteDriver,
)
from mortar.errors import (
    BindingError,
    CompilationError,
    ConfigurationError,
    ConnectionError,
    ExecutionError,
    MortarError,
)
from mortar.query import Query
from mortar.schema.config import DatabaseConfig, DeployMode, parse_dsn
from mortar.schema.fields import FieldInfo, TableInfo
from mortar.schema.options import QueryOptions, Raw

__all__ = [
    # Entry points
    "connect",
    "load_config",
    "Database",
    "Query",
    "Connection",
    "SessionMetrics",
    "SessionState",
    # Config
    "DatabaseConfig",
    "DeployMode",
    "parse_dsn",
    # Compilation
    "QueryOptions",
    "Raw",
    "BindSet",
    "BindType",
    "BindValue",
    "CompiledSQL",
    "SQLBuilder",
    # Drivers
    "Driver",
    "DriverFactory",
    "Link",
    "MySQLDriver",
    "PostgresDriver",
    "SQLiteDriver",
    "FieldInfo",
    "TableInfo",
    # Errors
    "MortarError",
    "ConfigurationError",
    "ConnectionError",
    "CompilationError",
    "ExecutionError",
    "BindingError",
]
