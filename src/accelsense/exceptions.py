"""
Package-level exception hierarchy for AccelSense.

The parser and the advisory engine never raise for malformed plan or query
content; they degrade to smaller results instead. Exceptions only surface at
the edges where files are read and configuration is loaded.

Hierarchy:
    AccelSenseError
    ├── ParseError          – Plan or query input could not be read
    └── ConfigurationError  – Invalid config, hardware profile or cost model
"""

from __future__ import annotations

from typing import Any


class AccelSenseError(Exception):
    """
    Base exception for all AccelSense errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error output."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Input Errors ─────────────────────────────────────────────────────────


class ParseError(AccelSenseError):
    """
    Plan or query input could not be read.

    Raised for missing, unreadable or empty input files. Content that is
    readable but not a recognizable plan is NOT an error: the parser
    returns None and callers show the raw text.

    Attributes:
        source: Description of the input source (file path, "stdin", etc.).
        detail: Technical details for debugging (optional).
    """

    def __init__(
        self,
        message: str,
        source: str | None = None,
        *,
        detail: str | None = None,
    ) -> None:
        self.source = source
        self.detail = detail
        super().__init__(message)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}\n\nDetails: {self.detail}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["source"] = self.source
        result["detail"] = self.detail
        return result


# ── Configuration Errors ─────────────────────────────────────────────────


class ConfigurationError(AccelSenseError):
    """
    Invalid configuration, hardware profile or cost model.

    Attributes:
        config_key: The configuration key or file that caused the error.
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result
