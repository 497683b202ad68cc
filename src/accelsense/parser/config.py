"""
Parser configuration with resource limits.

The plan parser never raises on malformed content, so the limits here do
not reject input. A subtree nested deeper than ``max_depth`` is skipped
rather than recursed into, which keeps pathological plans from exhausting
the interpreter stack.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ParserConfig(BaseModel):
    """
    Configuration for the plan parser.

    Attributes:
        max_depth: Maximum tree depth. Nodes below this level are dropped
            (with a warning) instead of being parsed.

    Example:
        # Use defaults
        config = ParserConfig()

        # Stricter limits for untrusted input
        config = ParserConfig(max_depth=32)
    """

    model_config = ConfigDict(frozen=True)

    max_depth: int = Field(
        default=100,
        gt=0,
        le=500,
        description="Maximum tree depth (nesting level)",
    )


DEFAULT_CONFIG = ParserConfig()

# Stricter limits for untrusted input
STRICT_CONFIG = ParserConfig(max_depth=32)
