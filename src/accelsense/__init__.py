"""AccelSense - Hardware acceleration advisor for analytical SQL queries."""

__version__ = "0.1.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from accelsense.exceptions import (
    AccelSenseError,
    ConfigurationError,
    ParseError,
)

# Plan parsing
from accelsense.parser import (
    PlanNode,
    parse_json_plan,
    parse_plan,
    parse_text_plan,
)

# Advisory engine
from accelsense.advisor import (
    CPU_ONLY,
    DEFAULT_COST_MODEL,
    REFERENCE_CLUSTER,
    AccelerableOp,
    AcceleratorBackend,
    AdvisoryEngine,
    CostModel,
    HardwareProfile,
    WorkbenchResult,
)

# Configuration
from accelsense.config import Config, get_config, reset_config

__all__ = [
    "__version__",
    # Exceptions
    "AccelSenseError",
    "ParseError",
    "ConfigurationError",
    # Parser
    "PlanNode",
    "parse_plan",
    "parse_json_plan",
    "parse_text_plan",
    # Advisor
    "AdvisoryEngine",
    "AccelerableOp",
    "AcceleratorBackend",
    "HardwareProfile",
    "CostModel",
    "WorkbenchResult",
    "CPU_ONLY",
    "REFERENCE_CLUSTER",
    "DEFAULT_COST_MODEL",
    # Config
    "Config",
    "get_config",
    "reset_config",
]
