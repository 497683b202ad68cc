"""
Canonical plan tree model.

Both accepted plan shapes (PostgreSQL-style EXPLAIN JSON documents and
indented EXPLAIN text) normalize into the same ``PlanNode`` tree. Nodes are
frozen: a tree is built once by the parser and never mutated, and every
child belongs to exactly one parent.

The field names are the JSON wire contract for clients that consume
serialized trees. ``to_document()`` goes the other way and produces the
structured EXPLAIN shape the parser accepts.

Reference: https://www.postgresql.org/docs/current/using-explain.html
"""

from __future__ import annotations

from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field


class PlanNode(BaseModel):
    """
    A single operator in a query execution plan.

    This is a recursive structure: each node owns an ordered tuple of child
    nodes. Leaves execute first and results flow up to the root.

    Fields are divided into:
    - Planner estimates: present on every node (default to zero)
    - Runtime telemetry: only present for EXPLAIN ANALYZE style input
    - Everything else: kept as ordered text pairs in ``extra``
    """

    model_config = ConfigDict(frozen=True)

    operator: str = Field(
        ...,
        description="Operator name (e.g. 'Hash Aggregate', 'Seq Scan')",
    )

    relation: str | None = Field(
        default=None,
        description="Table or relation the operator reads, if any",
    )

    # =========================================================================
    # Planner estimates
    # =========================================================================

    cost_startup: float = Field(
        default=0.0,
        description="Estimated cost to return the first row",
    )

    cost_total: float = Field(
        default=0.0,
        description="Estimated cost to return all rows",
    )

    estimated_rows: int = Field(
        default=0,
        ge=0,
        description="Estimated number of rows returned",
    )

    width: int | None = Field(
        default=None,
        description="Estimated average row width in bytes",
    )

    # =========================================================================
    # Runtime telemetry (EXPLAIN ANALYZE)
    # =========================================================================

    actual_rows: int | None = Field(
        default=None,
        description="Actual number of rows returned",
    )

    actual_time_ms: float | None = Field(
        default=None,
        description="Actual time in ms to return all rows",
    )

    # =========================================================================
    # Tree structure and passthrough
    # =========================================================================

    children: tuple[PlanNode, ...] = Field(
        default=(),
        description="Child plan nodes in plan order",
    )

    extra: tuple[tuple[str, str], ...] = Field(
        default=(),
        description="Auxiliary key/value pairs not otherwise modeled",
    )

    # =========================================================================
    # Computed properties
    # =========================================================================

    @property
    def has_runtime_data(self) -> bool:
        """Check if EXPLAIN ANALYZE telemetry is present on this node."""
        return self.actual_rows is not None or self.actual_time_ms is not None

    @property
    def row_volume(self) -> int:
        """Actual rows when measured, otherwise the planner estimate."""
        if self.actual_rows is not None:
            return self.actual_rows
        return self.estimated_rows

    @property
    def node_count(self) -> int:
        """Total number of nodes in this subtree."""
        return 1 + sum(child.node_count for child in self.children)

    @property
    def depth(self) -> int:
        """Height of this subtree (a leaf has depth 1)."""
        if not self.children:
            return 1
        return 1 + max(child.depth for child in self.children)

    def get_extra(self, key: str) -> str | None:
        """Look up an auxiliary value by key."""
        for name, value in self.extra:
            if name == key:
                return value
        return None

    def iter_nodes(self) -> Iterator[PlanNode]:
        """Iterate through all nodes in the subtree (pre-order)."""
        yield self
        for child in self.children:
            yield from child.iter_nodes()

    def iter_postorder(self) -> Iterator[PlanNode]:
        """Iterate children before parents, i.e. in execution order."""
        for child in self.children:
            yield from child.iter_postorder()
        yield self

    def to_document(self) -> dict[str, Any]:
        """
        Serialize to the structured EXPLAIN shape.

        The output uses the same keys ``parse_json_plan`` reads, so parsing
        it back reproduces an equivalent tree.
        """
        document: dict[str, Any] = {
            "Node Type": self.operator,
            "Startup Cost": self.cost_startup,
            "Total Cost": self.cost_total,
            "Plan Rows": self.estimated_rows,
        }
        if self.relation is not None:
            document["Relation Name"] = self.relation
        if self.width is not None:
            document["Plan Width"] = self.width
        if self.actual_rows is not None:
            document["Actual Rows"] = self.actual_rows
        if self.actual_time_ms is not None:
            document["Actual Total Time"] = self.actual_time_ms
        for key, value in self.extra:
            document.setdefault(key, value)
        if self.children:
            document["Plans"] = [child.to_document() for child in self.children]
        return document
