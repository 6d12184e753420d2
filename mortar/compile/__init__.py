"""mortar compilation layer: QueryOptions → parameterized SQL."""
from mortar.compile.bindings import BindSet, BindType, BindValue
from mortar.compile.builder import CompiledSQL, SQLBuilder

__all__ = [
    "BindSet",
    "BindType",
    "BindValue",
    "CompiledSQL",
    "SQLBuilder",
]
