"""WHERE-tree compiler.

``WhereBuilder`` walks the ordered where-tree recursively.  Comparison and
membership operands are always bound; pattern and null tests bypass binding
and render literal operators (LIKE operands are quoted by the driver).
"""
from __future__ import annotations

from typing import Any

from mortar.compile.bindings import bind_name
from mortar.compile.context import CompilationContext
from mortar.errors import CompilationError
from mortar.schema.options import (
    COMPARISON_OPS,
    MEMBERSHIP_OPS,
    NULL_OPS,
    PATTERN_OPS,
    Condition,
    NestedCondition,
    RawCondition,
    WhereNode,
)


class WhereBuilder:
    """Compiles a where-tree to a SQL fragment (without the ``WHERE`` keyword).

    Args:
        ctx: Compilation context holding the driver and shared binds.
    """

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, nodes: list[WhereNode]) -> str:
        """Render a group; the first rendered node omits its logic keyword."""
        parts: list[str] = []
        for node in nodes:
            sql = self._build_node(node)
            if not sql:
                continue
            parts.append(f"{node.logic} {sql}" if parts else sql)
        return " ".join(parts)

    def clause(self, nodes: list[WhereNode]) -> str:
        """Render the full ``WHERE …`` clause, or ``""`` for an empty tree."""
        sql = self.build(nodes)
        return f"WHERE {sql}" if sql else ""

    # ------------------------------------------------------------------
    # Node dispatch
    # ------------------------------------------------------------------

    def _build_node(self, node: WhereNode) -> str:
        if isinstance(node, NestedCondition):
            inner = self.build(node.children)
            return f"( {inner} )" if inner else ""
        if isinstance(node, RawCondition):
            return node.sql
        if isinstance(node, Condition):
            return self._build_condition(node)
        raise CompilationError(
            f"Unknown where node: {type(node).__name__}", clause="WHERE"
        )

    def _build_condition(self, cond: Condition) -> str:
        op = cond.op
        if op in COMPARISON_OPS:
            return f"{cond.field} {op} {self._placeholder(cond.field, cond.value)}"
        if op in MEMBERSHIP_OPS:
            values = _as_list(cond.value)
            if not values:
                raise CompilationError(
                    f"Empty value list for '{cond.field} {op}'.", clause="WHERE"
                )
            holders = ",".join(self._placeholder(cond.field, v) for v in values)
            return f"{cond.field} {op} ({holders})"
        if op in PATTERN_OPS:
            return f"{cond.field} {op} {self._literal(cond.value)}"
        if op in NULL_OPS:
            return f"{cond.field} IS {op}"
        raise CompilationError(f"Unknown where operator '{op}'.", clause="WHERE")

    # ------------------------------------------------------------------
    # Operands
    # ------------------------------------------------------------------

    def _placeholder(self, field: str, value: Any) -> str:
        binds = self._ctx.binds
        if isinstance(value, str) and value.startswith(":") and value[1:] in binds:
            return value
        name = binds.add(bind_name("where", field), value, self._ctx.bind_types.get(field))
        return f":{name}"

    def _literal(self, value: Any) -> str:
        if value is None:
            return "NULL"
        return self._ctx.driver.quote(str(value))


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]
