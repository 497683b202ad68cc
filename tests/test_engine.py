"""
Tests for the advisory engine.

Covers backend enumeration, selection, strategy synthesis, break-even math,
both classification paths (query text and parsed plans) and the
recommendation rules.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from accelsense.advisor import (
    CPU_ONLY,
    DEFAULT_COST_MODEL,
    REFERENCE_CLUSTER,
    RULES,
    AccelerableOp,
    AcceleratorBackend,
    AdvisoryEngine,
    BackendOption,
    HardwareProfile,
    RecommendationCategory,
    WorkbenchResult,
    choose_backend,
    compute_break_even,
)
from accelsense.config import Config
from accelsense.parser import parse_plan

FIXTURES_DIR = Path(__file__).parent / "fixtures"

GROUP_BY_SQL = "SELECT region, SUM(cost) FROM cur GROUP BY region"
# Long enough that sqlparse refuses to group it.
LARGE_IN_LIST_SQL = (
    "SELECT a FROM t WHERE a IN (" + ", ".join(str(i) for i in range(6000)) + ") GROUP BY a"
)
DEEP_PARENS_SQL = "SELECT " + "(" * 5000 + "1" + ")" * 5000 + " ORDER BY 1"
TWO_GPUS = HardwareProfile(gpu_count=2, gpu_total_vram_bytes=160 * 1024 ** 3)


def option(
    backend: AcceleratorBackend,
    speedup: float,
    cost: float,
    available: bool = True,
) -> BackendOption:
    return BackendOption(
        backend=backend,
        estimated_speedup=speedup,
        estimated_time_ms=100.0 / speedup,
        estimated_cost_usd=cost,
        available=available,
    )


# =============================================================================
# Selection and break-even
# =============================================================================


class TestChooseBackend:
    """Test per-operator backend selection."""

    def test_highest_speedup_wins(self) -> None:
        options = [
            option(AcceleratorBackend.CPU, 1.0, 0.01),
            option(AcceleratorBackend.GPU, 9.0, 0.08),
            option(AcceleratorBackend.FPGA, 5.0, 0.02),
        ]

        assert choose_backend(options).backend is AcceleratorBackend.GPU

    def test_unavailable_options_skipped(self) -> None:
        options = [
            option(AcceleratorBackend.CPU, 1.0, 0.01),
            option(AcceleratorBackend.GPU, 9.0, 0.08, available=False),
        ]

        assert choose_backend(options).backend is AcceleratorBackend.CPU

    def test_tie_goes_to_cheaper(self) -> None:
        options = [
            option(AcceleratorBackend.CPU, 1.0, 0.01),
            option(AcceleratorBackend.GPU, 5.0, 0.08),
            option(AcceleratorBackend.FPGA, 5.0, 0.02),
        ]

        assert choose_backend(options).backend is AcceleratorBackend.FPGA

    def test_full_tie_keeps_enumeration_order(self) -> None:
        options = [
            option(AcceleratorBackend.CPU, 1.0, 0.01),
            option(AcceleratorBackend.GPU, 5.0, 0.02),
            option(AcceleratorBackend.FPGA, 5.0, 0.02),
        ]

        assert choose_backend(options).backend is AcceleratorBackend.GPU


class TestBreakEven:
    """Test the break-even throughput formula."""

    def test_one_hour_saved_per_dollar(self) -> None:
        """One hour saved for one extra dollar breaks even at 1 query/hour."""
        assert compute_break_even(3_600_000.0, 0.0, 0.0, 1.0) == pytest.approx(1.0)

    def test_formula(self) -> None:
        expected = (0.091 - 0.029) / ((31900.0 - 11000.0) / 1000 / 3600)

        assert compute_break_even(31900.0, 0.029, 11000.0, 0.091) == pytest.approx(expected)

    @pytest.mark.parametrize(("cpu_cost", "accel_cost"), [(0.05, 0.05), (0.05, 0.01)])
    def test_none_when_not_more_expensive(self, cpu_cost: float, accel_cost: float) -> None:
        """Equal or cheaper acceleration has no break-even, however much time it saves."""
        assert compute_break_even(10_000.0, cpu_cost, 10.0, accel_cost) is None

    def test_none_without_time_saved(self) -> None:
        assert compute_break_even(100.0, 0.01, 100.0, 0.05) is None
        assert compute_break_even(100.0, 0.01, 200.0, 0.05) is None


# =============================================================================
# Backend enumeration
# =============================================================================


class TestEnumerateBackends:
    """Test which options are listed for an operator."""

    def test_cpu_always_first(self) -> None:
        engine = AdvisoryEngine(hardware=REFERENCE_CLUSTER)

        for op in AccelerableOp:
            options = engine.enumerate_backends(op, 1_000_000)
            assert options[0].backend is AcceleratorBackend.CPU
            assert options[0].estimated_speedup == 1.0

    def test_missing_hardware_omitted(self) -> None:
        """No FPGA attached means no FPGA option at all."""
        engine = AdvisoryEngine(hardware=TWO_GPUS)

        options = engine.enumerate_backends(AccelerableOp.DECOMPRESSION, 1_000_000_000)

        assert [o.backend for o in options] == [AcceleratorBackend.CPU]

    def test_gpu_below_threshold_listed_unavailable(self) -> None:
        engine = AdvisoryEngine(hardware=TWO_GPUS)

        options = engine.enumerate_backends(AccelerableOp.HASH_AGGREGATE, 500)

        assert [o.backend for o in options] == [AcceleratorBackend.CPU, AcceleratorBackend.GPU]
        assert not options[1].available

    def test_threshold_is_inclusive(self) -> None:
        engine = AdvisoryEngine(hardware=TWO_GPUS)

        options = engine.enumerate_backends(AccelerableOp.SORT, TWO_GPUS.gpu_offload_threshold_rows)

        assert options[1].available

    def test_threshold_only_gates_gpu(self) -> None:
        engine = AdvisoryEngine(hardware=REFERENCE_CLUSTER)

        options = engine.enumerate_backends(AccelerableOp.COST_ANALYTICS, 10)

        assert options[1].backend is AcceleratorBackend.NPU
        assert options[1].available

    def test_linear_volume_scaling(self) -> None:
        engine = AdvisoryEngine(hardware=TWO_GPUS)
        profile = DEFAULT_COST_MODEL.profile(AccelerableOp.HASH_AGGREGATE)

        cpu, gpu = engine.enumerate_backends(AccelerableOp.HASH_AGGREGATE, profile.reference_rows // 1000)

        assert cpu.estimated_time_ms == pytest.approx(profile.cpu_time_ms / 1000)
        assert cpu.estimated_cost_usd == pytest.approx(profile.cpu_cost_usd / 1000)
        assert gpu.estimated_time_ms == pytest.approx(cpu.estimated_time_ms / 9.3)
        assert gpu.estimated_cost_usd == pytest.approx(0.083 / 1000)

    def test_unclassified_operator(self) -> None:
        engine = AdvisoryEngine(hardware=REFERENCE_CLUSTER)

        options = engine.enumerate_backends(None, 4_000_000)

        assert len(options) == 1
        assert options[0].estimated_time_ms == pytest.approx(10.0)


# =============================================================================
# Query-text path
# =============================================================================


class TestAnalyzeQueryText:
    """Test analysis without a plan."""

    def test_oversized_query(self) -> None:
        """Queries sqlparse will not group are still classified."""
        result = AdvisoryEngine(hardware=REFERENCE_CLUSTER).analyze(LARGE_IN_LIST_SQL)

        ops = [a.op_type for a in result.operator_analyses]
        assert ops == [AccelerableOp.DECOMPRESSION, AccelerableOp.HASH_AGGREGATE]
        assert result.recommended_strategy_index == 1

    def test_group_by_on_two_gpus(self) -> None:
        """GROUP BY yields a scan plus a GPU hash aggregate."""
        result = AdvisoryEngine(hardware=TWO_GPUS).analyze(GROUP_BY_SQL)

        ops = [a.op_type for a in result.operator_analyses]
        assert ops == [AccelerableOp.DECOMPRESSION, AccelerableOp.HASH_AGGREGATE]

        aggregate = result.operator_analyses[1]
        assert aggregate.operator_name == "HashAggregateExec"
        assert aggregate.recommended_backend is AcceleratorBackend.GPU
        assert aggregate.estimated_rows == 1_200_000_000
        assert "threshold" in aggregate.rationale
        assert "100,000" in aggregate.rationale
        assert "9.3x" in aggregate.rationale

    def test_empty_query(self) -> None:
        """Empty text still gives a scan, a filter and two strategies."""
        result = AdvisoryEngine().analyze("")

        names = [a.operator_name for a in result.operator_analyses]
        assert names == ["ParquetScan", "FilterExec"]
        assert len(result.strategies) == 2
        assert result.recommended_strategy_index == 1

    def test_scan_always_first(self) -> None:
        result = AdvisoryEngine().analyze(
            "SELECT * FROM a JOIN b ON a.id = b.id WHERE cost_anomaly_score(a.x) > 3 ORDER BY a.x"
        )

        ops = [a.op_type for a in result.operator_analyses]
        assert ops == [
            AccelerableOp.DECOMPRESSION,
            AccelerableOp.HASH_JOIN,
            AccelerableOp.COST_ANALYTICS,
            AccelerableOp.SORT,
        ]

    def test_cpu_only_profile(self) -> None:
        """No accelerators means a single CPU option everywhere."""
        result = AdvisoryEngine(hardware=CPU_ONLY).analyze(
            "SELECT id FROM items ORDER BY embedding <-> '[1,2]' LIMIT 5"
        )

        for analysis in result.operator_analyses:
            assert len(analysis.backend_options) == 1
            assert analysis.backend_options[0].backend is AcceleratorBackend.CPU
            assert analysis.recommended_backend is AcceleratorBackend.CPU
            assert analysis.rationale

    def test_sketch_plan_for_display(self) -> None:
        """Without a plan the result carries an operator sketch, root first."""
        result = AdvisoryEngine().analyze(GROUP_BY_SQL)

        sketch = parse_plan(result.explain_text or "")

        assert sketch is not None
        assert sketch.operator == "HashAggregateExec"
        assert sketch.children[0].operator == "ParquetScan"

    def test_custom_classifier(self) -> None:
        """The engine only talks to the classifier protocol."""

        class GraphOnly:
            def classify(self, operator_name: str) -> AccelerableOp | None:
                return AccelerableOp.GRAPH_TRAVERSAL

            def detect(self, query_text: str) -> list[AccelerableOp]:
                return [AccelerableOp.GRAPH_TRAVERSAL]

        engine = AdvisoryEngine(hardware=TWO_GPUS, classifier=GraphOnly())
        result = engine.analyze("anything")

        assert [a.op_type for a in result.operator_analyses] == [
            AccelerableOp.DECOMPRESSION,
            AccelerableOp.GRAPH_TRAVERSAL,
        ]
        assert result.operator_analyses[1].recommended_backend is AcceleratorBackend.GPU


# =============================================================================
# Plan path
# =============================================================================


class TestAnalyzePlan:
    """Test analysis driven by a parsed plan."""

    def test_psql_plan_execution_order(self) -> None:
        text = (FIXTURES_DIR / "sort_hash_join.txt").read_text()

        result = AdvisoryEngine(hardware=REFERENCE_CLUSTER).analyze_explain("SELECT ...", text)

        placements = [(a.operator_name, a.recommended_backend) for a in result.operator_analyses]
        assert placements == [
            ("Sort Key: (sum(c.unblended_cost)) DESC", AcceleratorBackend.CPU),
            ("Hash Cond: (c.account_id = a.id)", AcceleratorBackend.CPU),
            ("Seq Scan", AcceleratorBackend.FPGA),
            ("Seq Scan", AcceleratorBackend.FPGA),
            ("Hash", AcceleratorBackend.CPU),
            ("Hash Join", AcceleratorBackend.GPU),
            ("Sort", AcceleratorBackend.GPU),
        ]
        assert result.operator_analyses[1].op_type is None
        assert result.operator_analyses[4].op_type is None
        assert result.explain_text == text

    def test_measured_rows_drive_the_choice(self) -> None:
        """Actual rows beat estimates; a small aggregate stays on CPU."""
        text = (FIXTURES_DIR / "aggregate_analyze.json").read_text()

        result = AdvisoryEngine(hardware=REFERENCE_CLUSTER).analyze_explain(GROUP_BY_SQL, text)

        scan, aggregate = result.operator_analyses
        assert scan.estimated_rows == 1_200_000
        assert "measured" in scan.rationale
        assert aggregate.estimated_rows == 180
        assert aggregate.recommended_backend is AcceleratorBackend.CPU
        assert "below the GPU offload threshold" in aggregate.rationale
        assert [o.available for o in aggregate.backend_options] == [True, False]

    def test_unparseable_explain_falls_back(self) -> None:
        result = AdvisoryEngine(hardware=TWO_GPUS).analyze_explain(GROUP_BY_SQL, "   ")

        assert result.operator_analyses[1].op_type is AccelerableOp.HASH_AGGREGATE
        assert result.explain_text == "   "

    def test_plan_argument(self) -> None:
        plan = parse_plan({"Node Type": "Sort", "Plan Rows": 5_000_000})
        assert plan is not None

        result = AdvisoryEngine(hardware=TWO_GPUS).analyze("SELECT ...", plan=plan)

        assert len(result.operator_analyses) == 1
        assert result.operator_analyses[0].recommended_backend is AcceleratorBackend.GPU
        assert result.explain_text is None


# =============================================================================
# Strategies
# =============================================================================


class TestStrategies:
    """Test whole-query strategy synthesis."""

    def test_cpu_and_accelerated_totals(self) -> None:
        result = AdvisoryEngine(hardware=TWO_GPUS).analyze(GROUP_BY_SQL)

        cpu, accelerated = result.strategies
        assert cpu.name == "CPU-only"
        assert accelerated.name == "Accelerated"
        assert cpu.total_estimated_time_ms == pytest.approx(8500.0 + 23400.0)
        assert cpu.total_estimated_cost_usd == pytest.approx(0.008 + 0.021)
        assert accelerated.total_estimated_time_ms == pytest.approx(8500.0 + 23400.0 / 9.3)
        assert accelerated.total_estimated_cost_usd == pytest.approx(0.008 + 0.083)
        assert accelerated.overall_speedup == pytest.approx(
            cpu.total_estimated_time_ms / accelerated.total_estimated_time_ms
        )
        assert cpu.overall_speedup == 1.0
        assert cpu.break_even_queries_per_hour is None
        assert accelerated.break_even_queries_per_hour == pytest.approx(
            compute_break_even(
                cpu.total_estimated_time_ms,
                cpu.total_estimated_cost_usd,
                accelerated.total_estimated_time_ms,
                accelerated.total_estimated_cost_usd,
            )
        )

    def test_accelerated_uses_recommended_backends(self) -> None:
        result = AdvisoryEngine(hardware=REFERENCE_CLUSTER).analyze(GROUP_BY_SQL)

        cpu, accelerated = result.strategies
        assert all(b is AcceleratorBackend.CPU for _, b in cpu.operator_backends)
        assert accelerated.operator_backends == (
            ("ParquetScan", AcceleratorBackend.FPGA),
            ("HashAggregateExec", AcceleratorBackend.GPU),
        )

    def test_no_acceleration_means_no_break_even(self) -> None:
        result = AdvisoryEngine(hardware=CPU_ONLY).analyze(GROUP_BY_SQL)

        cpu, accelerated = result.strategies
        assert accelerated.total_estimated_cost_usd == cpu.total_estimated_cost_usd
        assert accelerated.overall_speedup == pytest.approx(1.0)
        assert accelerated.break_even_queries_per_hour is None

    def test_cheaper_acceleration_has_no_break_even(self) -> None:
        profile = DEFAULT_COST_MODEL.profile(AccelerableOp.HASH_AGGREGATE)
        cheap = DEFAULT_COST_MODEL.with_overrides({
            "profiles": {
                "HashAggregate": {
                    **profile.model_dump(mode="json"),
                    "accelerators": [{"backend": "Gpu", "speedup": 9.3, "cost_usd": 0.001}],
                },
                "Decompression": {
                    **DEFAULT_COST_MODEL.profile(AccelerableOp.DECOMPRESSION).model_dump(mode="json"),
                    "accelerators": [],
                },
            }
        })

        result = AdvisoryEngine(hardware=TWO_GPUS, cost_model=cheap).analyze(GROUP_BY_SQL)

        cpu, accelerated = result.strategies
        assert accelerated.total_estimated_time_ms < cpu.total_estimated_time_ms
        assert accelerated.total_estimated_cost_usd <= cpu.total_estimated_cost_usd
        assert accelerated.break_even_queries_per_hour is None

    @pytest.mark.parametrize("hardware", [CPU_ONLY, TWO_GPUS, REFERENCE_CLUSTER])
    @pytest.mark.parametrize("sql", [
        "",
        "SELECT 1",
        GROUP_BY_SQL,
        "GRAPH MATCH (a)-[:PAYS]->(b) RETURN count(b)",
        "SELECT * FROM a JOIN b ON a.id = b.id ORDER BY a.x LIMIT 10",
        "not even sql ((( <-> )))",
        LARGE_IN_LIST_SQL,
        DEEP_PARENS_SQL,
    ])
    def test_strategy_invariants(self, hardware: HardwareProfile, sql: str) -> None:
        result = AdvisoryEngine(hardware=hardware).analyze(sql)

        assert len(result.strategies) >= 2
        assert 0 <= result.recommended_strategy_index < len(result.strategies)
        assert len(result.operator_analyses) >= 2

    def test_result_rejects_bad_index(self) -> None:
        result = AdvisoryEngine().analyze(GROUP_BY_SQL)
        data = result.model_dump()
        data["recommended_strategy_index"] = 5

        with pytest.raises(ValidationError, match="out of range"):
            WorkbenchResult.model_validate(data)

    def test_result_json_round_trip(self) -> None:
        result = AdvisoryEngine(hardware=REFERENCE_CLUSTER).analyze(GROUP_BY_SQL)

        again = WorkbenchResult.model_validate_json(result.model_dump_json())

        assert again == result


# =============================================================================
# Recommendations
# =============================================================================


def categories(result: WorkbenchResult) -> set[RecommendationCategory]:
    return {r.category for r in result.recommendations}


class TestRecommendations:
    """Test the recommendation rules through the engine."""

    def test_gpu_aggregation_toggle(self) -> None:
        result = AdvisoryEngine(hardware=TWO_GPUS).analyze(GROUP_BY_SQL)

        toggles = [r for r in result.recommendations if r.title == "Enable GPU for OLAP aggregation"]
        assert len(toggles) == 1
        assert toggles[0].category is RecommendationCategory.HARDWARE_ACCELERATION
        assert "accelerator.gpu.enable_olap_aggregation" in (toggles[0].actionable_sql or "")

    def test_scaling_hint_with_break_even(self) -> None:
        result = AdvisoryEngine(hardware=TWO_GPUS).analyze(GROUP_BY_SQL)

        assert RecommendationCategory.SCALING_HINT in categories(result)

    def test_cpu_only_gets_partition_hint(self) -> None:
        result = AdvisoryEngine(hardware=CPU_ONLY).analyze(GROUP_BY_SQL)

        assert categories(result) == {RecommendationCategory.PARTITION_STRATEGY}

    def test_reference_cluster(self) -> None:
        sql = (
            "SELECT * FROM items ORDER BY embedding <-> '[1,2]' LIMIT 5; "
            "SELECT cost_forecast(cost) FROM cur"
        )
        result = AdvisoryEngine(hardware=REFERENCE_CLUSTER).analyze(sql)

        found = categories(result)
        assert RecommendationCategory.STORAGE_TIER in found
        assert RecommendationCategory.INDEX_SUGGESTION in found
        assert RecommendationCategory.QUERY_REWRITE in found
        assert RecommendationCategory.HARDWARE_ACCELERATION in found

    def test_graph_toggle(self) -> None:
        result = AdvisoryEngine(hardware=TWO_GPUS).analyze("GRAPH MATCH (a)-[:PAYS]->(b) RETURN b")

        sqls = [r.actionable_sql for r in result.recommendations]
        assert "SET accelerator.gpu.enable_graph_traversal = true;" in sqls

    def test_failing_rule_is_skipped(
        self,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        def broken(ctx):
            raise RuntimeError("boom")

        monkeypatch.setitem(RULES, "BROKEN", broken)

        result = AdvisoryEngine(hardware=TWO_GPUS).analyze(GROUP_BY_SQL)

        assert RecommendationCategory.HARDWARE_ACCELERATION in categories(result)
        assert "Rule BROKEN failed: boom" in caplog.text


# =============================================================================
# Configuration wiring
# =============================================================================


class TestFromConfig:
    """Test building an engine from Config."""

    def test_defaults(self) -> None:
        engine = AdvisoryEngine.from_config(Config())

        assert engine.hardware == CPU_ONLY
        assert engine.cost_model is DEFAULT_COST_MODEL
        assert engine.parser_config.max_depth == 100

    def test_profile_and_threshold(self) -> None:
        engine = AdvisoryEngine.from_config(Config(
            hardware_profile_path=FIXTURES_DIR / "gpu_node.yaml",
            gpu_offload_threshold_rows=5,
            parser_max_depth=10,
        ))

        assert engine.hardware.gpu_count == 1
        assert engine.hardware.gpu_offload_threshold_rows == 5
        assert engine.parser_config.max_depth == 10

    def test_threshold_without_profile(self) -> None:
        engine = AdvisoryEngine.from_config(Config(gpu_offload_threshold_rows=7))

        assert engine.hardware.gpu_offload_threshold_rows == 7
        assert not engine.hardware.has_accelerators

    def test_cost_model_file(self) -> None:
        engine = AdvisoryEngine.from_config(Config(cost_model_path=FIXTURES_DIR / "cost_overrides.json"))

        assert engine.cost_model.profile(AccelerableOp.FILTER).accelerators
