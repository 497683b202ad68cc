"""
Advisory engine: per-operator backend selection and strategy comparison.

The engine:
1. Classifies operators, from a parsed plan tree when one is available and
   from query-text heuristics otherwise
2. Enumerates the backends each operator could run on, with time and cost
   scaled to its row volume
3. Picks a backend per operator and explains the pick in one line
4. Compares a CPU-only strategy against the accelerated one and computes
   the throughput at which the extra accelerator spend breaks even
5. Runs the recommendation rules over the finished analysis

Everything here is pure: inputs are frozen models and nothing is mutated,
so one engine can be shared freely. Malformed plans were already absorbed
by the parser; analysis itself does not fail.

Usage:
    from accelsense.advisor import AdvisoryEngine, REFERENCE_CLUSTER

    engine = AdvisoryEngine(hardware=REFERENCE_CLUSTER)
    result = engine.analyze("SELECT region, SUM(cost) FROM cur GROUP BY region")
    print(result.recommended_strategy.overall_speedup)
"""

from __future__ import annotations

import logging

from accelsense.advisor.classifier import Classifier, HeuristicClassifier, normalize_query
from accelsense.advisor.cost_model import DEFAULT_COST_MODEL, CostModel, load_cost_model
from accelsense.advisor.hardware import CPU_ONLY, load_hardware_profile
from accelsense.advisor.models import (
    AccelerableOp,
    AcceleratorBackend,
    BackendOption,
    HardwareProfile,
    OperatorAnalysis,
    StrategyComparison,
    WorkbenchResult,
)
from accelsense.advisor.recommendations import RuleContext, generate_recommendations
from accelsense.config import Config, get_config
from accelsense.parser import DEFAULT_CONFIG, ParserConfig, PlanNode, parse_plan

logger = logging.getLogger(__name__)

# Accelerators in enumeration order, after the CPU baseline.
ACCELERATORS = (AcceleratorBackend.GPU, AcceleratorBackend.FPGA, AcceleratorBackend.NPU)

CPU_STRATEGY = "CPU-only"
ACCELERATED_STRATEGY = "Accelerated"
RECOMMENDED_STRATEGY_INDEX = 1


def choose_backend(options: list[BackendOption]) -> BackendOption:
    """
    Pick the best available option.

    Highest speedup wins; ties go to the cheaper option, then to the one
    enumerated first. The CPU option is always available, so there is
    always a pick.
    """
    available = [o for o in options if o.available] or options[:1]
    # max() keeps the first of equal keys, which preserves enumeration order
    return max(available, key=lambda o: (o.estimated_speedup, -o.estimated_cost_usd))


def compute_break_even(
    cpu_time_ms: float,
    cpu_cost_usd: float,
    accel_time_ms: float,
    accel_cost_usd: float,
) -> float | None:
    """
    Queries per hour at which the accelerated strategy pays for itself.

    Only defined when acceleration costs more per query and saves time.
    """
    if accel_cost_usd <= cpu_cost_usd or cpu_time_ms <= accel_time_ms:
        return None
    hours_saved = (cpu_time_ms - accel_time_ms) / 1000.0 / 3600.0
    return (accel_cost_usd - cpu_cost_usd) / hours_saved


def synthesize_strategies(analyses: list[OperatorAnalysis]) -> list[StrategyComparison]:
    """Build the CPU-only and Accelerated strategies from per-operator picks."""
    cpu_time = sum(a.cpu_option.estimated_time_ms for a in analyses)
    cpu_cost = sum(a.cpu_option.estimated_cost_usd for a in analyses)
    accel_time = sum(a.recommended_option.estimated_time_ms for a in analyses)
    accel_cost = sum(a.recommended_option.estimated_cost_usd for a in analyses)

    speedup = cpu_time / accel_time if accel_time > 0 else 1.0

    return [
        StrategyComparison(
            name=CPU_STRATEGY,
            description="All operators on CPU with SIMD",
            total_estimated_time_ms=cpu_time,
            total_estimated_cost_usd=cpu_cost,
            overall_speedup=1.0,
            operator_backends=tuple((a.operator_name, AcceleratorBackend.CPU) for a in analyses),
        ),
        StrategyComparison(
            name=ACCELERATED_STRATEGY,
            description="Optimal hardware per operator",
            total_estimated_time_ms=accel_time,
            total_estimated_cost_usd=accel_cost,
            overall_speedup=speedup,
            operator_backends=tuple((a.operator_name, a.recommended_backend) for a in analyses),
            break_even_queries_per_hour=compute_break_even(
                cpu_time, cpu_cost, accel_time, accel_cost
            ),
        ),
    ]


class AdvisoryEngine:
    """
    Hardware acceleration advisor.

    Args:
        hardware: Available accelerators. Defaults to a CPU-only host.
        cost_model: Calibration table. Defaults to DEFAULT_COST_MODEL.
        classifier: Operator classifier. Defaults to HeuristicClassifier.
        parser_config: Limits used when parsing EXPLAIN text.
    """

    def __init__(
        self,
        hardware: HardwareProfile | None = None,
        cost_model: CostModel | None = None,
        classifier: Classifier | None = None,
        parser_config: ParserConfig | None = None,
    ) -> None:
        self.hardware = hardware or CPU_ONLY
        self.cost_model = cost_model or DEFAULT_COST_MODEL
        self.classifier = classifier or HeuristicClassifier()
        self.parser_config = parser_config or DEFAULT_CONFIG

    @classmethod
    def from_config(cls, config: Config | None = None) -> AdvisoryEngine:
        """
        Build an engine from configuration.

        Raises:
            ConfigurationError: If a referenced profile or cost model is invalid
        """
        config = config or get_config()
        threshold = config.gpu_offload_threshold_rows

        if config.hardware_profile_path:
            hardware = load_hardware_profile(
                config.hardware_profile_path,
                gpu_offload_threshold_rows=threshold,
            )
        elif threshold is not None:
            hardware = CPU_ONLY.model_copy(update={"gpu_offload_threshold_rows": threshold})
        else:
            hardware = CPU_ONLY

        cost_model = (
            load_cost_model(config.cost_model_path)
            if config.cost_model_path
            else DEFAULT_COST_MODEL
        )

        return cls(
            hardware=hardware,
            cost_model=cost_model,
            parser_config=ParserConfig(max_depth=config.parser_max_depth),
        )

    # =========================================================================
    # Entry points
    # =========================================================================

    def analyze(
        self,
        sql: str,
        plan: PlanNode | None = None,
        explain_text: str | None = None,
    ) -> WorkbenchResult:
        """
        Analyze a query.

        Args:
            sql: Query text
            plan: Parsed plan tree. Without one, operators are inferred from
                the query text.
            explain_text: Raw plan text to carry into the result. When
                neither this nor ``plan`` is given, an operator sketch of the
                inferred plan is used.

        Returns:
            WorkbenchResult with exactly two strategies, "Accelerated"
            recommended
        """
        if plan is not None:
            analyses = self._analyze_plan(plan)
        else:
            analyses = self._analyze_query_text(sql)
            if explain_text is None:
                explain_text = sketch_plan(analyses)

        strategies = synthesize_strategies(analyses)
        recommended = strategies[RECOMMENDED_STRATEGY_INDEX]

        recommendations = generate_recommendations(
            RuleContext(
                normalized_sql=normalize_query(sql),
                hardware=self.hardware,
                analyses=tuple(analyses),
                recommended_strategy=recommended,
            )
        )

        logger.debug(
            "Analyzed %d operators (%s): %.1fx speedup, %d recommendations",
            len(analyses),
            "plan" if plan is not None else "heuristic",
            recommended.overall_speedup,
            len(recommendations),
        )

        return WorkbenchResult(
            sql=sql,
            explain_text=explain_text,
            hardware_profile=self.hardware,
            operator_analyses=tuple(analyses),
            strategies=tuple(strategies),
            recommended_strategy_index=RECOMMENDED_STRATEGY_INDEX,
            recommendations=tuple(recommendations),
        )

    def analyze_explain(self, sql: str, explain_text: str) -> WorkbenchResult:
        """
        Analyze a query using raw EXPLAIN output (JSON or indented text).

        Falls back to the query-text heuristics when the text holds no
        recognizable plan.
        """
        plan = parse_plan(explain_text, self.parser_config)
        if plan is None:
            logger.debug("EXPLAIN output not parseable, using query-text heuristics")
        return self.analyze(sql, plan=plan, explain_text=explain_text)

    # =========================================================================
    # Operator analysis
    # =========================================================================

    def _analyze_plan(self, plan: PlanNode) -> list[OperatorAnalysis]:
        return [
            self.analyze_operator(
                node.operator,
                self.classifier.classify(node.operator),
                node.row_volume,
                measured=node.actual_rows is not None,
            )
            for node in plan.iter_postorder()
        ]

    def _analyze_query_text(self, sql: str) -> list[OperatorAnalysis]:
        ops = [AccelerableOp.DECOMPRESSION]
        ops.extend(op for op in self.classifier.detect(sql) if op not in ops)
        if len(ops) == 1:
            ops.append(AccelerableOp.FILTER)

        analyses = []
        for op in ops:
            profile = self.cost_model.profile(op)
            analyses.append(
                self.analyze_operator(profile.operator_name, op, profile.reference_rows)
            )
        return analyses

    def analyze_operator(
        self,
        operator_name: str,
        op: AccelerableOp | None,
        rows: int,
        measured: bool = False,
    ) -> OperatorAnalysis:
        """Enumerate, choose and explain the backend for one operator."""
        options = self.enumerate_backends(op, rows)
        chosen = choose_backend(options)
        return OperatorAnalysis(
            operator_name=operator_name,
            op_type=op,
            estimated_rows=rows,
            recommended_backend=chosen.backend,
            backend_options=tuple(options),
            rationale=self.build_rationale(operator_name, op, rows, options, chosen, measured),
        )

    def enumerate_backends(self, op: AccelerableOp | None, rows: int) -> list[BackendOption]:
        """
        List the backends ``op`` could run on at ``rows`` volume.

        CPU always comes first. An accelerator appears only when the hardware
        has it and the cost model has a path for it; a GPU below the offload
        threshold appears marked unavailable.
        """
        if op is None:
            cpu_time, cpu_cost = self.cost_model.fallback_cpu_estimate(rows)
            return [_cpu_option(cpu_time, cpu_cost)]

        profile = self.cost_model.profile(op)
        factor = profile.volume_factor(rows)
        cpu_time = profile.cpu_time_ms * factor
        options = [_cpu_option(cpu_time, profile.cpu_cost_usd * factor)]

        for backend in ACCELERATORS:
            estimate = profile.accelerator(backend)
            if estimate is None or not self.hardware.is_available(backend):
                continue
            options.append(
                BackendOption(
                    backend=backend,
                    estimated_speedup=estimate.speedup,
                    estimated_time_ms=cpu_time / estimate.speedup,
                    estimated_cost_usd=estimate.cost_usd * factor,
                    available=not self._below_gpu_threshold(backend, rows),
                )
            )
        return options

    def _below_gpu_threshold(self, backend: AcceleratorBackend, rows: int) -> bool:
        return backend is AcceleratorBackend.GPU and rows < self.hardware.gpu_offload_threshold_rows

    def build_rationale(
        self,
        operator_name: str,
        op: AccelerableOp | None,
        rows: int,
        options: list[BackendOption],
        chosen: BackendOption,
        measured: bool = False,
    ) -> str:
        """One line naming the row volume and the GPU offload threshold."""
        threshold = self.hardware.gpu_offload_threshold_rows
        volume = f"{rows:,} {'measured' if measured else 'estimated'} rows"
        threshold_text = f"GPU offload threshold ({threshold:,})"
        cpu = f"{AcceleratorBackend.CPU.label} ({self.hardware.simd_level.label})"

        if op is None:
            return (
                f"No accelerated path for {operator_name}; {volume} run on {cpu} "
                f"({threshold_text} not applicable)"
            )

        note = self.cost_model.profile(op).note

        if chosen.backend is not AcceleratorBackend.CPU:
            relation = "exceeds" if rows >= threshold else "is below"
            return (
                f"{volume} {relation} the {threshold_text}; {chosen.backend.label} "
                f"provides {chosen.estimated_speedup:.1f}x speedup ({note})"
            )

        if any(o.backend is AcceleratorBackend.GPU and not o.available for o in options):
            return f"{volume} is below the {threshold_text}; {cpu} avoids the device transfer"

        if len(options) == 1 and not self.cost_model.profile(op).accelerators:
            return f"{note}; {cpu} is optimal for {volume} ({threshold_text} not applicable)"

        if len(options) == 1:
            return (
                f"No {op.label} accelerator on this host; {volume} run on {cpu} "
                f"against a {threshold_text}"
            )

        return f"{cpu} is fastest for {volume} against the {threshold_text}"


def _cpu_option(time_ms: float, cost_usd: float) -> BackendOption:
    return BackendOption(
        backend=AcceleratorBackend.CPU,
        estimated_speedup=1.0,
        estimated_time_ms=time_ms,
        estimated_cost_usd=cost_usd,
    )


def sketch_plan(analyses: list[OperatorAnalysis]) -> str:
    """
    Indented operator sketch of an inferred plan, root first.

    Analyses are in execution order, so the last one is the root.
    """
    lines = []
    for depth, analysis in enumerate(reversed(analyses)):
        marker = "-> " if depth else ""
        lines.append(f"{'  ' * depth}{marker}{analysis.operator_name}")
    return "\n".join(lines)
