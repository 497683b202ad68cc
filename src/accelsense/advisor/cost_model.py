"""
Cost model: per-operator CPU baselines and accelerator multipliers.

Each accelerable operator kind has a profile measured at a reference row
volume: CPU wall time and dollar cost, plus one entry per accelerator that
has an execution path for it (speedup over CPU and dollar cost). Estimates
for other volumes scale linearly.

The numbers are calibration data, not algorithm. They live in this table
(and can be replaced from a JSON/YAML file) so they can be recalibrated
without touching the engine.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from accelsense.advisor.models import AccelerableOp, AcceleratorBackend
from accelsense.config import format_validation_error, load_structured_file
from accelsense.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class AcceleratorEstimate(BaseModel):
    """One accelerator execution path for an operator kind."""

    model_config = ConfigDict(frozen=True)

    backend: AcceleratorBackend
    speedup: float = Field(..., gt=0, description="Speedup over the CPU baseline")
    cost_usd: float = Field(..., ge=0, description="Cost at the reference row volume")

    @model_validator(mode="after")
    def validate_not_cpu(self) -> "AcceleratorEstimate":
        if self.backend is AcceleratorBackend.CPU:
            raise ValueError("CPU is the baseline and cannot be listed as an accelerator")
        return self


class OperatorCostProfile(BaseModel):
    """
    Calibration entry for one operator kind.

    Attributes:
        operator_name: Physical operator name used when the operator is
            inferred from query text (e.g. "HashAggregateExec")
        reference_rows: Row volume the figures below were measured at
        cpu_time_ms: CPU/SIMD wall time at the reference volume
        cpu_cost_usd: CPU/SIMD cost at the reference volume
        accelerators: Accelerator paths, in any order
        note: Short description of the accelerated implementation
    """

    model_config = ConfigDict(frozen=True)

    operator_name: str
    reference_rows: int = Field(..., gt=0)
    cpu_time_ms: float = Field(..., ge=0)
    cpu_cost_usd: float = Field(..., ge=0)
    accelerators: tuple[AcceleratorEstimate, ...] = ()
    note: str = ""

    @model_validator(mode="after")
    def validate_unique_backends(self) -> "OperatorCostProfile":
        backends = [a.backend for a in self.accelerators]
        if len(backends) != len(set(backends)):
            raise ValueError(f"duplicate accelerator backend for {self.operator_name}")
        return self

    def volume_factor(self, rows: int) -> float:
        """Multiplier that scales reference figures to ``rows``."""
        return rows / self.reference_rows

    def accelerator(self, backend: AcceleratorBackend) -> AcceleratorEstimate | None:
        for estimate in self.accelerators:
            if estimate.backend is backend:
                return estimate
        return None


class CostModel(BaseModel):
    """
    The full calibration table.

    Every AccelerableOp must have a profile. Operators that classify as
    none of them are costed with the fallback per-million-row CPU rates.
    """

    model_config = ConfigDict(frozen=True)

    profiles: dict[AccelerableOp, OperatorCostProfile]
    fallback_cpu_ms_per_million_rows: float = Field(default=2.5, ge=0)
    fallback_cpu_usd_per_million_rows: float = Field(default=0.0000025, ge=0)

    @model_validator(mode="after")
    def validate_complete(self) -> "CostModel":
        missing = [op.value for op in AccelerableOp if op not in self.profiles]
        if missing:
            raise ValueError(f"cost model has no profile for: {', '.join(missing)}")
        return self

    def profile(self, op: AccelerableOp) -> OperatorCostProfile:
        return self.profiles[op]

    def fallback_cpu_estimate(self, rows: int) -> tuple[float, float]:
        """CPU (time_ms, cost_usd) for an operator with no profile."""
        millions = rows / 1_000_000
        return (
            self.fallback_cpu_ms_per_million_rows * millions,
            self.fallback_cpu_usd_per_million_rows * millions,
        )

    def with_overrides(self, data: dict[str, Any]) -> CostModel:
        """
        Return a copy with profiles and rates replaced from ``data``.

        Profiles not mentioned in ``data`` keep their current values.
        """
        merged = self.model_dump(mode="json")
        merged["profiles"].update(data.get("profiles") or {})
        for key, value in data.items():
            if key != "profiles":
                merged[key] = value
        return CostModel.model_validate(merged)


def _profile(
    operator_name: str,
    reference_rows: int,
    cpu_time_ms: float,
    cpu_cost_usd: float,
    *accelerators: tuple[AcceleratorBackend, float, float],
    note: str = "",
) -> OperatorCostProfile:
    return OperatorCostProfile(
        operator_name=operator_name,
        reference_rows=reference_rows,
        cpu_time_ms=cpu_time_ms,
        cpu_cost_usd=cpu_cost_usd,
        accelerators=tuple(
            AcceleratorEstimate(backend=backend, speedup=speedup, cost_usd=cost)
            for backend, speedup, cost in accelerators
        ),
        note=note,
    )


_GPU = AcceleratorBackend.GPU
_FPGA = AcceleratorBackend.FPGA
_NPU = AcceleratorBackend.NPU

# Figures are for a columnar billing dataset (1.2B rows of ZSTD Parquet).
DEFAULT_COST_MODEL = CostModel(
    profiles={
        AccelerableOp.DECOMPRESSION: _profile(
            "ParquetScan", 1_200_000_000, 8500.0, 0.008,
            (_FPGA, 5.0, 0.012),
            note="ZSTD decompression offloaded to FPGA at wire speed",
        ),
        AccelerableOp.HASH_AGGREGATE: _profile(
            "HashAggregateExec", 1_200_000_000, 23400.0, 0.021,
            (_GPU, 9.3, 0.083),
            note="GPU hash aggregate",
        ),
        AccelerableOp.FILTER: _profile(
            "FilterExec", 1_200_000_000, 3200.0, 0.003,
            note="Simple predicate evaluation",
        ),
        AccelerableOp.SORT: _profile(
            "SortExec", 100_000_000, 9800.0, 0.009,
            (_GPU, 6.0, 0.031),
            note="GPU radix sort",
        ),
        AccelerableOp.HASH_JOIN: _profile(
            "HashJoinExec", 100_000_000, 15600.0, 0.014,
            (_GPU, 7.5, 0.052),
            note="GPU partitioned hash join",
        ),
        AccelerableOp.GRAPH_TRAVERSAL: _profile(
            "GraphTraversalExec", 5_000_000, 12000.0, 0.011,
            (_GPU, 45.0, 0.035),
            note="GPU BFS with CSR format",
        ),
        AccelerableOp.VECTOR_DISTANCE: _profile(
            "VectorDistanceExec", 10_000_000, 450.0, 0.0004,
            (_GPU, 50.0, 0.001),
            note="cuBLAS batch cosine similarity",
        ),
        AccelerableOp.COST_ANALYTICS: _profile(
            "CostAnalyticsExec", 500_000, 1200.0, 0.001,
            (_NPU, 8.0, 0.002),
            note="ONNX Runtime inference",
        ),
        AccelerableOp.RULE_ENGINE: _profile(
            "RuleEngineExec", 10_000_000, 4000.0, 0.004,
            (_FPGA, 4.0, 0.006),
            note="FPGA pattern-matching pipeline",
        ),
    },
)


def load_cost_model(path: str | Path, base: CostModel | None = None) -> CostModel:
    """
    Load cost-model overrides from a JSON or YAML file.

    The file may replace any subset of profiles; the rest come from
    ``base`` (DEFAULT_COST_MODEL when not given).

    Raises:
        ConfigurationError: If the file cannot be read or fails validation
    """
    base = base or DEFAULT_COST_MODEL
    data = load_structured_file(Path(path))
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Cost model file must contain a mapping: {path}",
            config_key=str(path),
        )

    try:
        model = base.with_overrides(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid cost model in {path}:\n{format_validation_error(e)}",
            config_key=str(path),
        ) from e

    logger.debug("Loaded cost model overrides from %s", path)
    return model
