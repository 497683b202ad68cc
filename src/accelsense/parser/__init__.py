"""Plan parsing: EXPLAIN JSON documents and indented EXPLAIN text."""

from accelsense.parser.config import DEFAULT_CONFIG, STRICT_CONFIG, ParserConfig
from accelsense.parser.models import PlanNode
from accelsense.parser.parser import (
    parse_json_plan,
    parse_operator_line,
    parse_plan,
    parse_text_plan,
    read_plan_file,
)

__all__ = [
    "PlanNode",
    "parse_plan",
    "parse_json_plan",
    "parse_text_plan",
    "parse_operator_line",
    "read_plan_file",
    "ParserConfig",
    "DEFAULT_CONFIG",
    "STRICT_CONFIG",
]
