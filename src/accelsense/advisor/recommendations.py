"""
Recommendation rules.

Each rule is a plain function that looks at a finished analysis and returns
zero or more Recommendations. Rules register themselves with
``@recommendation_rule`` and run in registration order.

Example:
    @recommendation_rule("MY_RULE")
    def my_rule(ctx: RuleContext) -> Iterable[Recommendation]:
        if ctx.recommended_for(AccelerableOp.SORT):
            yield Recommendation(...)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from accelsense.advisor.models import (
    AccelerableOp,
    AcceleratorBackend,
    HardwareProfile,
    OperatorAnalysis,
    Recommendation,
    RecommendationCategory,
    StrategyComparison,
)

logger = logging.getLogger(__name__)

# Scans at or above this volume that stay on CPU get a partitioning hint.
PARTITION_HINT_ROWS = 1_000_000_000


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may inspect."""

    normalized_sql: str
    hardware: HardwareProfile
    analyses: tuple[OperatorAnalysis, ...]
    recommended_strategy: StrategyComparison

    def recommended_for(
        self,
        op: AccelerableOp,
        backend: AcceleratorBackend | None = None,
    ) -> list[OperatorAnalysis]:
        """Analyses of kind ``op``, optionally only those placed on ``backend``."""
        return [
            a for a in self.analyses
            if a.op_type is op and (backend is None or a.recommended_backend is backend)
        ]


RuleFn = Callable[[RuleContext], Iterable[Recommendation]]

RULES: dict[str, RuleFn] = {}


def recommendation_rule(rule_id: str) -> Callable[[RuleFn], RuleFn]:
    """
    Register a rule function under ``rule_id``.

    Raises:
        ValueError: If ``rule_id`` is already registered
    """
    def decorator(fn: RuleFn) -> RuleFn:
        if rule_id in RULES:
            raise ValueError(f"Rule '{rule_id}' already registered by {RULES[rule_id].__name__}")
        RULES[rule_id] = fn
        return fn
    return decorator


def generate_recommendations(
    ctx: RuleContext,
    exclude: frozenset[str] = frozenset(),
) -> list[Recommendation]:
    """
    Run every registered rule not in ``exclude``.

    A rule that raises is logged and skipped; the others still run.
    """
    recommendations: list[Recommendation] = []
    for rule_id, rule in RULES.items():
        if rule_id in exclude:
            continue
        try:
            recommendations.extend(rule(ctx))
        except Exception as e:
            logger.warning("Rule %s failed: %s", rule_id, e)
    return recommendations


# =============================================================================
# Hardware toggles
# =============================================================================


@recommendation_rule("GPU_OLAP_AGGREGATION")
def gpu_aggregation(ctx: RuleContext) -> Iterable[Recommendation]:
    if ctx.recommended_for(AccelerableOp.HASH_AGGREGATE, AcceleratorBackend.GPU):
        yield Recommendation(
            category=RecommendationCategory.HARDWARE_ACCELERATION,
            title="Enable GPU for OLAP aggregation",
            description="Set accelerator.gpu.enable_olap_aggregation = true in the engine config",
            actionable_sql="SET accelerator.gpu.enable_olap_aggregation = true;",
        )


@recommendation_rule("GPU_GRAPH_TRAVERSAL")
def gpu_graph_traversal(ctx: RuleContext) -> Iterable[Recommendation]:
    if ctx.recommended_for(AccelerableOp.GRAPH_TRAVERSAL, AcceleratorBackend.GPU):
        yield Recommendation(
            category=RecommendationCategory.HARDWARE_ACCELERATION,
            title="Enable GPU graph traversal",
            description=(
                "Graph pattern matching runs as a CSR breadth-first search on the GPU. "
                "Set accelerator.gpu.enable_graph_traversal = true"
            ),
            actionable_sql="SET accelerator.gpu.enable_graph_traversal = true;",
        )


@recommendation_rule("NPU_COST_ANALYTICS")
def npu_cost_analytics(ctx: RuleContext) -> Iterable[Recommendation]:
    if ctx.recommended_for(AccelerableOp.COST_ANALYTICS, AcceleratorBackend.NPU):
        yield Recommendation(
            category=RecommendationCategory.HARDWARE_ACCELERATION,
            title="Route cost analytics inference to the NPU",
            description=(
                "Anomaly scoring and forecasting models run under ONNX Runtime. "
                "Set accelerator.npu.enable_cost_analytics = true"
            ),
            actionable_sql="SET accelerator.npu.enable_cost_analytics = true;",
        )


# =============================================================================
# Storage and layout
# =============================================================================


@recommendation_rule("FPGA_DECOMPRESSION_TIER")
def fpga_decompression_tier(ctx: RuleContext) -> Iterable[Recommendation]:
    scans = ctx.recommended_for(AccelerableOp.DECOMPRESSION, AcceleratorBackend.FPGA)
    if scans:
        names = ", ".join(dict.fromkeys(a.operator_name for a in scans))
        yield Recommendation(
            category=RecommendationCategory.STORAGE_TIER,
            title="Keep scanned data ZSTD-compressed on the FPGA tier",
            description=(
                f"{names} decompresses at wire speed on the FPGA, so heavier "
                "compression costs no scan time"
            ),
            actionable_sql="SET storage.scan.decompression_backend = 'fpga';",
        )


@recommendation_rule("PARTITION_LARGE_SCAN")
def partition_large_scan(ctx: RuleContext) -> Iterable[Recommendation]:
    for analysis in ctx.recommended_for(AccelerableOp.DECOMPRESSION, AcceleratorBackend.CPU):
        if analysis.estimated_rows >= PARTITION_HINT_ROWS:
            yield Recommendation(
                category=RecommendationCategory.PARTITION_STRATEGY,
                title="Partition the scanned table",
                description=(
                    f"{analysis.operator_name} reads {analysis.estimated_rows:,} rows on CPU. "
                    "Partitioning on the filter column lets pruning skip most of them"
                ),
            )


@recommendation_rule("VECTOR_INDEX")
def vector_index(ctx: RuleContext) -> Iterable[Recommendation]:
    if ctx.recommended_for(AccelerableOp.VECTOR_DISTANCE):
        yield Recommendation(
            category=RecommendationCategory.INDEX_SUGGESTION,
            title="Add an approximate nearest-neighbour index",
            description=(
                "Distance ordering over the full table is a brute-force scan. "
                "An HNSW index answers top-k queries without touching every vector"
            ),
            actionable_sql="CREATE INDEX ON <table> USING hnsw (<column> vector_cosine_ops);",
        )


# =============================================================================
# Query shape
# =============================================================================


@recommendation_rule("SELECT_STAR")
def select_star(ctx: RuleContext) -> Iterable[Recommendation]:
    if "SELECT *" in ctx.normalized_sql:
        yield Recommendation(
            category=RecommendationCategory.QUERY_REWRITE,
            title="Project only the columns you need",
            description=(
                "SELECT * decompresses and transfers every column. "
                "Naming the columns shrinks both scan and accelerator transfer"
            ),
        )


@recommendation_rule("BREAK_EVEN_SCALING")
def break_even_scaling(ctx: RuleContext) -> Iterable[Recommendation]:
    break_even = ctx.recommended_strategy.break_even_queries_per_hour
    if break_even is not None:
        yield Recommendation(
            category=RecommendationCategory.SCALING_HINT,
            title="Accelerators pay off at sustained throughput",
            description=(
                f"The accelerated strategy costs more per query but saves time; "
                f"it breaks even above {break_even:,.0f} queries/hour"
            ),
        )
