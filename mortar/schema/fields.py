"""Pydantic models for table field introspection results."""
from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field

from mortar.compile.bindings import BindType

_NUMERIC_TYPE = re.compile(r"(int|double|float|decimal|real|numeric|serial|bit)", re.I)
_BOOL_TYPE = re.compile(r"bool", re.I)


def field_bind_type(type_name: str) -> BindType:
    """Map a backend column type string to the bind type used for it."""
    if _NUMERIC_TYPE.search(type_name):
        return BindType.INT
    if _BOOL_TYPE.search(type_name):
        return BindType.BOOL
    return BindType.STR


class FieldInfo(BaseModel):
    """Metadata for a single table field.

    Attributes:
        name: Column name.
        type: SQL type string (e.g. ``'VARCHAR(32)'``, ``'INTEGER'``).
        nullable: Whether the column can be NULL.
        default: Server default expression, if any.
        primary: Whether the column belongs to the primary key.
        autoinc: Whether the column is auto-incrementing.
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    type: str
    nullable: bool = True
    default: str | None = None
    primary: bool = False
    autoinc: bool = False

    @property
    def bind_type(self) -> BindType:
        return field_bind_type(self.type)


class TableInfo(BaseModel):
    """Field list, types, bind types and primary key of one table.

    Attributes:
        name: Table name.
        fields: Ordered field metadata.
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    fields: list[FieldInfo] = Field(default_factory=list)

    @property
    def field_names(self) -> list[str]:
        """Returns all field names for this table."""
        return [f.name for f in self.fields]

    @property
    def types(self) -> dict[str, str]:
        return {f.name: f.type for f in self.fields}

    @property
    def bind(self) -> dict[str, BindType]:
        return {f.name: f.bind_type for f in self.fields}

    @property
    def pk(self) -> str | list[str] | None:
        """Primary key column, a list for composite keys, or ``None``."""
        keys = [f.name for f in self.fields if f.primary]
        if not keys:
            return None
        return keys[0] if len(keys) == 1 else keys
