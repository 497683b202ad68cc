"""
Advisory engine: which hardware should run each operator of a query.

Usage:
    from accelsense.advisor import AdvisoryEngine, REFERENCE_CLUSTER

    result = AdvisoryEngine(hardware=REFERENCE_CLUSTER).analyze(sql)
"""

from accelsense.advisor.classifier import Classifier, HeuristicClassifier, normalize_query
from accelsense.advisor.cost_model import (
    DEFAULT_COST_MODEL,
    AcceleratorEstimate,
    CostModel,
    OperatorCostProfile,
    load_cost_model,
)
from accelsense.advisor.engine import (
    AdvisoryEngine,
    choose_backend,
    compute_break_even,
    synthesize_strategies,
)
from accelsense.advisor.hardware import CPU_ONLY, REFERENCE_CLUSTER, load_hardware_profile
from accelsense.advisor.models import (
    AccelerableOp,
    AcceleratorBackend,
    BackendOption,
    HardwareProfile,
    OperatorAnalysis,
    Recommendation,
    RecommendationCategory,
    SimdLevel,
    StrategyComparison,
    WorkbenchResult,
)
from accelsense.advisor.recommendations import RULES, RuleContext, recommendation_rule

__all__ = [
    # Engine
    "AdvisoryEngine",
    "choose_backend",
    "compute_break_even",
    "synthesize_strategies",
    # Classification
    "Classifier",
    "HeuristicClassifier",
    "normalize_query",
    # Cost model
    "CostModel",
    "OperatorCostProfile",
    "AcceleratorEstimate",
    "DEFAULT_COST_MODEL",
    "load_cost_model",
    # Hardware
    "HardwareProfile",
    "CPU_ONLY",
    "REFERENCE_CLUSTER",
    "load_hardware_profile",
    # Models
    "AccelerableOp",
    "AcceleratorBackend",
    "SimdLevel",
    "BackendOption",
    "OperatorAnalysis",
    "StrategyComparison",
    "Recommendation",
    "RecommendationCategory",
    "WorkbenchResult",
    # Rules
    "RULES",
    "RuleContext",
    "recommendation_rule",
]
