"""mortar schema models: connection config, query options, field metadata."""
from mortar.schema.config import DatabaseConfig, DeployMode, NodeConfig, parse_dsn
from mortar.schema.options import (
    Condition,
    JoinSpec,
    LimitSpec,
    NestedCondition,
    OrderItem,
    QueryOptions,
    Raw,
    RawCondition,
    WhereNode,
)
from mortar.schema.fields import FieldInfo, TableInfo, field_bind_type

__all__ = [
    "DatabaseConfig",
    "DeployMode",
    "NodeConfig",
    "parse_dsn",
    "Condition",
    "JoinSpec",
    "LimitSpec",
    "NestedCondition",
    "OrderItem",
    "QueryOptions",
    "Raw",
    "RawCondition",
    "WhereNode",
    "FieldInfo",
    "TableInfo",
    "field_bind_type",
]
