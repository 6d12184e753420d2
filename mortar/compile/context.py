"""Compilation context value object.

Packages the ``(driver, binds, bind_types)`` data clump shared by
``SQLBuilder`` and all clause-level sub-builders into a single object.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from mortar.compile.bindings import BindSet, BindType

if TYPE_CHECKING:
    from mortar.drivers.base import Driver


@dataclass(frozen=True)
class CompilationContext:
    """Context for a single compilation run.

    Attributes:
        driver: Backend capability used for dialect fragments and quoting.
        binds: Bind accumulator shared by every clause and sub-query.
        bind_types: Known column bind types (from table introspection);
            columns not listed get a type inferred from their value.
    """

    driver: Driver
    binds: BindSet
    bind_types: dict[str, BindType] = field(default_factory=dict)
