"""mortar backend drivers: dialect fragments, links and introspection."""
from mortar.drivers.base import Driver, Link
from mortar.drivers.mysql import MySQLDriver
from mortar.drivers.postgres import PostgresDriver
from mortar.drivers.registry import DriverFactory
from mortar.drivers.sqlite import SQLiteDriver

# ---------------------------------------------------------------------------
# Register built-in drivers with DriverFactory
# ---------------------------------------------------------------------------

DriverFactory.register_class("mysql", MySQLDriver)
DriverFactory.register_class("postgres", PostgresDriver)
DriverFactory.register_class("pgsql", PostgresDriver)
DriverFactory.register_class("postgresql", PostgresDriver)
DriverFactory.register_class("sqlite", SQLiteDriver)

__all__ = [
    "Driver",
    "DriverFactory",
    "Link",
    "MySQLDriver",
    "PostgresDriver",
    "SQLiteDriver",
]
