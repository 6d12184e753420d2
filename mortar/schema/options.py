"""Pydantic models for the one-shot query options snapshot.

``Query`` accumulates intent in a plain dict while setters are chained; on
compile the dict is validated into a :class:`QueryOptions`, which fills
every missing option with its documented default (no WHERE, ``*`` fields,
empty payload, master/lock/distinct off).  The snapshot is handed to the
SQL builder exactly once.

The WHERE tree is an ordered list of nodes, each carrying its own logic
keyword.  The first node of any group renders without it, so a group never
starts with a dangling ``AND``/``OR``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Logic = Literal["AND", "OR"]

COMPARISON_OPS: frozenset[str] = frozenset({"=", "<>", ">", ">=", "<", "<="})
PATTERN_OPS: frozenset[str] = frozenset({"LIKE", "NOT LIKE"})
NULL_OPS: frozenset[str] = frozenset({"NULL", "NOT NULL"})
MEMBERSHIP_OPS: frozenset[str] = frozenset({"IN", "NOT IN"})

#: Every operator accepted in a WHERE condition.
ALL_OPS: frozenset[str] = COMPARISON_OPS | PATTERN_OPS | NULL_OPS | MEMBERSHIP_OPS


@dataclass(frozen=True)
class Raw:
    """A raw SQL expression written verbatim into the statement.

    Produced by :meth:`Query.exp`; never bound or escaped.
    """

    sql: str


class Condition(BaseModel):
    """A ``field OP value`` test.

    Attributes:
        logic: Keyword joining this node to the previous one.
        field: Column reference.
        op: Upper-cased operator from :data:`ALL_OPS`.
        value: Operand; a list for membership tests, ignored for NULL tests.
    """

    model_config = ConfigDict(extra="forbid")

    kind: Literal["condition"] = "condition"
    logic: Logic = "AND"
    field: str
    op: str
    value: Any = None


class RawCondition(BaseModel):
    """A raw SQL condition passed through unmodified."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["raw"] = "raw"
    logic: Logic = "AND"
    sql: str


class NestedCondition(BaseModel):
    """A parenthesised sub-group built by a callback against a child query."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["nested"] = "nested"
    logic: Logic = "AND"
    children: list[WhereNode] = Field(default_factory=list)


WhereNode = Annotated[
    Union[Condition, RawCondition, NestedCondition],
    Field(discriminator="kind"),
]


class JoinSpec(BaseModel):
    """A single JOIN entry.

    Attributes:
        table: Table name (prefix already applied) or sub-query text.
        alias: Optional alias for the joined table.
        type: Join type keyword (``INNER``, ``LEFT``, ...).
        condition: ON tokens, ``AND``-joined when rendered.
    """

    model_config = ConfigDict(extra="forbid")

    table: str
    alias: str | None = None
    type: str = "INNER"
    condition: list[str] = Field(default_factory=list)


class OrderItem(BaseModel):
    """A single ORDER BY entry.

    Attributes:
        expr: Column name or raw fragment.
        direction: ``ASC``/``DESC`` or ``None``.
        raw: Pass ``expr`` through unmodified (it contains ``(``).
        rand: Render the backend random-order expression instead.
    """

    model_config = ConfigDict(extra="forbid")

    expr: str = ""
    direction: str | None = None
    raw: bool = False
    rand: bool = False


class LimitSpec(BaseModel):
    """LIMIT clause; ``offset`` 0 renders a bare ``LIMIT count``."""

    model_config = ConfigDict(extra="forbid")

    offset: int = 0
    count: int | None = None


class QueryOptions(BaseModel):
    """Normalized snapshot of everything a ``Query`` chain asked for.

    Attributes:
        table: Ordered table name → inline alias (``None`` if not aliased).
        alias: Explicit alias map (table name → alias).
        field: Ordered field → alias; empty means ``*``.
        where: Root WHERE group.
        join: JOIN entries in call order.
        group: Raw GROUP BY text.
        having: Raw HAVING text.
        order: ORDER BY entries.
        limit: LIMIT/OFFSET, if any.
        union: Raw SQL strings or sub-query snapshots to UNION with.
        union_all: Use ``UNION ALL`` instead of ``UNION``.
        lock: Append ``FOR UPDATE`` (backend permitting).
        distinct: Emit ``SELECT DISTINCT``.
        force: Index name(s) to force (backend permitting).
        comment: Trailing SQL comment text.
        data: Write payload; values are scalars, :class:`Raw` or ``None``.
        using: Raw USING text for multi-table DELETE.
        master: Force reads onto the write role.
        fetch_raw: Return the raw cursor instead of materialized rows.
    """

    model_config = ConfigDict(extra="forbid")

    table: dict[str, str | None] = Field(default_factory=dict)
    alias: dict[str, str] = Field(default_factory=dict)
    field: dict[str, str | None] = Field(default_factory=dict)
    where: list[WhereNode] = Field(default_factory=list)
    join: list[JoinSpec] = Field(default_factory=list)
    group: str = ""
    having: str = ""
    order: list[OrderItem] = Field(default_factory=list)
    limit: LimitSpec | None = None
    union: list[Union[str, QueryOptions]] = Field(default_factory=list)
    union_all: bool = False
    lock: bool = False
    distinct: bool = False
    force: list[str] = Field(default_factory=list)
    comment: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    using: str = ""
    master: bool = False
    fetch_raw: bool = False

    @property
    def main_table(self) -> str:
        """The first table of the statement, or ``""``."""
        return next(iter(self.table), "")


# Resolve forward references created by the recursive where-tree and union.
NestedCondition.model_rebuild()
QueryOptions.model_rebuild()
