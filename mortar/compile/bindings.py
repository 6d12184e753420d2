"""Bind-parameter accumulator shared by every clause of one statement.

A single :class:`BindSet` is threaded through every sub-builder and every
nested sub-query (UNION branches) so that placeholder names are unique for
the entire statement.  Names are derived from the field path rather than a
bare counter, which keeps the debug SQL readable::

    binds = BindSet()
    binds.add("where_user_id", 7)        # -> "where_user_id"
    binds.add("where_user_id", 8)        # -> "where_user_id_1"
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator

_NON_ALNUM = re.compile(r"[^0-9a-zA-Z]")

#: Python types treated as scalars (bindable values).
SCALAR_TYPES: tuple[type, ...] = (str, bytes, bool, int, float, Decimal, date, time)


class BindType(str, Enum):
    """Type tag attached to every bound value.

    ``INT`` covers every numeric literal (ints, floats, decimals).
    """

    STR = "string"
    INT = "int"
    BOOL = "bool"
    NULL = "null"

    @classmethod
    def infer(cls, value: Any) -> BindType:
        """Infer the type tag of a Python value."""
        if value is None:
            return cls.NULL
        if isinstance(value, bool):
            return cls.BOOL
        if isinstance(value, (int, float, Decimal)):
            return cls.INT
        return cls.STR


@dataclass(frozen=True)
class BindValue:
    """A bound value and its type tag."""

    value: Any
    type: BindType = BindType.STR


def is_scalar(value: Any) -> bool:
    """Return True for values that can be sent as a single bind parameter."""
    return isinstance(value, SCALAR_TYPES)


def bind_name(prefix: str, field: str) -> str:
    """Derive a placeholder name from a field path.

    Every non-alphanumeric character is normalized to ``_``:
    ``bind_name("where", "u.user-id")`` gives ``"where_u_user_id"``.
    """
    return f"{prefix}_{_NON_ALNUM.sub('_', field)}"


class BindSet:
    """Ordered mapping of placeholder name to :class:`BindValue`.

    Collisions are resolved with a deterministic counter suffix, so two
    structurally identical chains always produce identical names.
    """

    def __init__(self, binds: dict[str, BindValue] | None = None) -> None:
        self._binds: dict[str, BindValue] = dict(binds or {})
        self._counter = 0

    def add(self, name: str, value: Any, type: BindType | None = None) -> str:
        """Store ``value`` under a unique name derived from ``name``.

        Returns:
            The placeholder name actually used (without the leading ``:``).
        """
        unique = self._allocate(name)
        self._binds[unique] = BindValue(value, type or BindType.infer(value))
        return unique

    def set(self, name: str, value: Any, type: BindType | None = None) -> None:
        """Store ``value`` under exactly ``name``, replacing any previous bind."""
        self._binds[name] = BindValue(value, type or BindType.infer(value))

    def update(self, other: dict[str, BindValue]) -> None:
        self._binds.update(other)

    def consume(self) -> dict[str, BindValue]:
        """Return the accumulated binds and clear the set."""
        binds = self._binds
        self._binds = {}
        self._counter = 0
        return binds

    def _allocate(self, name: str) -> str:
        if name not in self._binds:
            return name
        while True:
            self._counter += 1
            candidate = f"{name}_{self._counter}"
            if candidate not in self._binds:
                return candidate

    def __contains__(self, name: object) -> bool:
        return name in self._binds

    def __getitem__(self, name: str) -> BindValue:
        return self._binds[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._binds)

    def __len__(self) -> int:
        return len(self._binds)

    def as_dict(self) -> dict[str, BindValue]:
        """Return a shallow copy of the current binds."""
        return dict(self._binds)
