"""
Data models for the advisory engine.

These models describe hardware, per-operator backend estimates, whole-query
strategies and recommendations. They're designed to be:
- Immutable (frozen=True): built once per analysis, never mutated
- Serializable: field names are the JSON wire contract for clients
- Closed: operator kinds and backends are enums, so every cost table and
  label mapping can be checked for completeness
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AccelerableOp(str, Enum):
    """Query operator kinds that have known hardware execution paths."""

    HASH_AGGREGATE = "HashAggregate"
    FILTER = "Filter"
    SORT = "Sort"
    HASH_JOIN = "HashJoin"
    GRAPH_TRAVERSAL = "GraphTraversal"
    VECTOR_DISTANCE = "VectorDistance"
    COST_ANALYTICS = "CostAnalytics"
    DECOMPRESSION = "Decompression"
    RULE_ENGINE = "RuleEngine"

    @property
    def label(self) -> str:
        return _OP_LABELS[self]

    def __str__(self) -> str:
        return self.value


_OP_LABELS: dict[AccelerableOp, str] = {
    AccelerableOp.HASH_AGGREGATE: "Hash Aggregate",
    AccelerableOp.FILTER: "Filter",
    AccelerableOp.SORT: "Sort",
    AccelerableOp.HASH_JOIN: "Hash Join",
    AccelerableOp.GRAPH_TRAVERSAL: "Graph Traversal",
    AccelerableOp.VECTOR_DISTANCE: "Vector Distance",
    AccelerableOp.COST_ANALYTICS: "Cost Analytics",
    AccelerableOp.DECOMPRESSION: "Decompression",
    AccelerableOp.RULE_ENGINE: "Rule Engine",
}


class AcceleratorBackend(str, Enum):
    """
    Execution backend for an operator.

    Declaration order is the enumeration order used for backend options:
    CPU first, then GPU, FPGA and NPU.
    """

    CPU = "Cpu"
    GPU = "Gpu"
    FPGA = "Fpga"
    NPU = "Npu"

    @property
    def label(self) -> str:
        """Display label, e.g. 'GPU (CUDA)'."""
        return _BACKEND_LABELS[self][0]

    @property
    def badge(self) -> str:
        """Short badge text, e.g. 'GPU'."""
        return _BACKEND_LABELS[self][1]

    def __str__(self) -> str:
        return self.value


_BACKEND_LABELS: dict[AcceleratorBackend, tuple[str, str]] = {
    AcceleratorBackend.CPU: ("CPU/SIMD", "CPU"),
    AcceleratorBackend.GPU: ("GPU (CUDA)", "GPU"),
    AcceleratorBackend.FPGA: ("FPGA (OpenCL)", "FPGA"),
    AcceleratorBackend.NPU: ("NPU (ONNX)", "NPU"),
}


class SimdLevel(str, Enum):
    """SIMD capability level of the CPU backend."""

    SCALAR = "Scalar"
    SSE42 = "Sse42"
    AVX2 = "Avx2"
    AVX512 = "Avx512"
    NEON = "Neon"

    @property
    def label(self) -> str:
        return _SIMD_LABELS[self]


_SIMD_LABELS: dict[SimdLevel, str] = {
    SimdLevel.SCALAR: "Scalar",
    SimdLevel.SSE42: "SSE 4.2",
    SimdLevel.AVX2: "AVX2",
    SimdLevel.AVX512: "AVX-512",
    SimdLevel.NEON: "NEON",
}


class RecommendationCategory(str, Enum):
    """Categories of recommendations."""

    HARDWARE_ACCELERATION = "HardwareAcceleration"
    STORAGE_TIER = "StorageTier"
    PARTITION_STRATEGY = "PartitionStrategy"
    INDEX_SUGGESTION = "IndexSuggestion"
    QUERY_REWRITE = "QueryRewrite"
    SCALING_HINT = "ScalingHint"

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]


_CATEGORY_LABELS: dict[RecommendationCategory, str] = {
    RecommendationCategory.HARDWARE_ACCELERATION: "Hardware Acceleration",
    RecommendationCategory.STORAGE_TIER: "Storage Tier",
    RecommendationCategory.PARTITION_STRATEGY: "Partition Strategy",
    RecommendationCategory.INDEX_SUGGESTION: "Index Suggestion",
    RecommendationCategory.QUERY_REWRITE: "Query Rewrite",
    RecommendationCategory.SCALING_HINT: "Scaling Hint",
}


class HardwareProfile(BaseModel):
    """
    Snapshot of the acceleration resources available to the engine.

    Supplied by whatever detects hardware; the advisor only reads it.
    The defaults describe a CPU-only host.
    """

    model_config = ConfigDict(frozen=True)

    gpu_count: int = Field(default=0, ge=0, description="Number of GPUs")
    gpu_total_vram_bytes: int = Field(default=0, ge=0, description="Total VRAM across GPUs")
    gpu_device_name: str | None = Field(default=None, description="GPU model name")
    gpu_compute_capability: tuple[int, int] | None = Field(
        default=None,
        description="CUDA compute capability (major, minor)",
    )
    fpga_available: bool = Field(default=False, description="Whether an FPGA is attached")
    fpga_device_name: str | None = Field(default=None, description="FPGA card name")
    npu_available: bool = Field(default=False, description="Whether an NPU runtime is present")
    simd_level: SimdLevel = Field(default=SimdLevel.SCALAR, description="CPU SIMD tier")
    cpu_batch_size: int = Field(default=8192, gt=0, description="Rows per CPU batch")
    gpu_batch_size: int = Field(default=65536, gt=0, description="Rows per GPU batch")
    gpu_offload_threshold_rows: int = Field(
        default=100_000,
        ge=0,
        description="Row volume at or above which GPU offload is considered",
    )

    @property
    def gpu_vram_gb(self) -> int:
        return self.gpu_total_vram_bytes // (1024 ** 3)

    @property
    def has_accelerators(self) -> bool:
        """Whether any non-CPU backend is present."""
        return self.gpu_count > 0 or self.fpga_available or self.npu_available

    def is_available(self, backend: AcceleratorBackend) -> bool:
        """Whether the hardware for ``backend`` is present (CPU always is)."""
        if backend is AcceleratorBackend.CPU:
            return True
        if backend is AcceleratorBackend.GPU:
            return self.gpu_count > 0
        if backend is AcceleratorBackend.FPGA:
            return self.fpga_available
        return self.npu_available


class BackendOption(BaseModel):
    """A candidate backend for one operator with performance/cost estimates."""

    model_config = ConfigDict(frozen=True)

    backend: AcceleratorBackend
    estimated_speedup: float = Field(..., gt=0, description="Speedup relative to CPU")
    estimated_time_ms: float = Field(..., ge=0)
    estimated_cost_usd: float = Field(..., ge=0)
    available: bool = True


class OperatorAnalysis(BaseModel):
    """Analysis of a single operator: options considered and the pick."""

    model_config = ConfigDict(frozen=True)

    operator_name: str
    op_type: AccelerableOp | None = None
    estimated_rows: int = Field(default=0, ge=0)
    recommended_backend: AcceleratorBackend
    backend_options: tuple[BackendOption, ...]
    rationale: str

    @property
    def recommended_option(self) -> BackendOption:
        """The option matching ``recommended_backend``."""
        for option in self.backend_options:
            if option.backend is self.recommended_backend:
                return option
        return self.backend_options[0]

    @property
    def cpu_option(self) -> BackendOption:
        """The first (CPU) option."""
        return self.backend_options[0]


class StrategyComparison(BaseModel):
    """A backend assignment for every operator, evaluated as a whole."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    total_estimated_time_ms: float
    total_estimated_cost_usd: float
    overall_speedup: float
    operator_backends: tuple[tuple[str, AcceleratorBackend], ...]
    break_even_queries_per_hour: float | None = Field(
        default=None,
        description="Throughput at which the extra unit cost is amortized by time saved",
    )


class Recommendation(BaseModel):
    """Actionable recommendation."""

    model_config = ConfigDict(frozen=True)

    category: RecommendationCategory
    title: str
    description: str
    actionable_sql: str | None = Field(
        default=None,
        description="DDL or config statement the user can copy-paste",
    )


class WorkbenchResult(BaseModel):
    """
    Full advisory result for one query.

    ``strategies`` is never empty and ``recommended_strategy_index`` always
    points into it.
    """

    model_config = ConfigDict(frozen=True)

    sql: str
    explain_text: str | None = None
    hardware_profile: HardwareProfile
    operator_analyses: tuple[OperatorAnalysis, ...]
    strategies: tuple[StrategyComparison, ...]
    recommended_strategy_index: int
    recommendations: tuple[Recommendation, ...] = ()

    @model_validator(mode="after")
    def validate_recommended_index(self) -> "WorkbenchResult":
        """Ensure the recommended index points at an existing strategy."""
        if not self.strategies:
            raise ValueError("strategies must not be empty")
        if not 0 <= self.recommended_strategy_index < len(self.strategies):
            raise ValueError(
                f"recommended_strategy_index ({self.recommended_strategy_index}) "
                f"out of range for {len(self.strategies)} strategies"
            )
        return self

    @property
    def recommended_strategy(self) -> StrategyComparison:
        return self.strategies[self.recommended_strategy_index]
