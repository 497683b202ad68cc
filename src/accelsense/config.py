"""
Configuration system for AccelSense.

Implements 12-factor config principles:
- Environment variables as primary config source
- Optional config file (JSON or YAML) for local development
- Paths to the hardware profile and cost model the engine should use

Usage:
    from accelsense.config import get_config

    # Load from environment (default)
    config = get_config()

    if config.hardware_profile_path:
        ...

Environment variables:
- ACCELSENSE_CONFIG_FILE=accelsense.yaml
- ACCELSENSE_HARDWARE_PROFILE=hardware.json
- ACCELSENSE_COST_MODEL=cost_model.yaml
- ACCELSENSE_GPU_OFFLOAD_THRESHOLD_ROWS=250000
- ACCELSENSE_PARSER_MAX_DEPTH=64
- ACCELSENSE_LOG_LEVEL=DEBUG
- ACCELSENSE_OUTPUT_FORMAT=json
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from accelsense.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "ACCELSENSE_"


class Config(BaseModel):
    """
    AccelSense configuration.

    Loaded from environment variables and an optional config file.
    """

    model_config = ConfigDict(frozen=True)

    hardware_profile_path: Path | None = Field(
        default=None,
        description="JSON/YAML hardware profile; CPU-only defaults when unset",
    )
    cost_model_path: Path | None = Field(
        default=None,
        description="JSON/YAML cost-model overrides; built-in table when unset",
    )
    gpu_offload_threshold_rows: int | None = Field(
        default=None,
        ge=0,
        description="Override for the hardware profile's GPU offload threshold",
    )
    parser_max_depth: int = Field(
        default=100,
        gt=0,
        le=500,
        description="Maximum plan tree depth the parser descends into",
    )
    log_level: str = Field(
        default="WARNING",
        description="Log level used by the CLI",
    )
    output_format: Literal["text", "json", "markdown"] = Field(
        default="text",
        description="Default CLI output format",
    )


def format_validation_error(error: ValidationError) -> str:
    """Render pydantic errors as '  field -> path: message' lines."""
    lines = []
    for item in error.errors():
        loc = " -> ".join(str(x) for x in item["loc"]) or "(root)"
        lines.append(f"  {loc}: {item['msg']}")
    return "\n".join(lines)


def load_structured_file(path: Path) -> Any:
    """
    Read a JSON or YAML file.

    YAML is chosen by the .yaml/.yml suffix; anything else is read as JSON.

    Raises:
        ConfigurationError: If the file is missing, unreadable or malformed
    """
    if not path.is_file():
        raise ConfigurationError(f"File not found: {path}", config_key=str(path))

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read file: {path}: {e}", config_key=str(path)) from e

    try:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(content)
        return json.loads(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Malformed file {path}: {e}", config_key=str(path)) from e


def _parse_env_int(value: str | None, default: int | None) -> int | None:
    """Parse integer from environment variable."""
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer value %r", value)
        return default


def _build_config(values: dict[str, Any], source: str) -> Config:
    try:
        return Config(**values)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration from {source}:\n{format_validation_error(e)}",
            config_key=source,
        ) from e


def load_config_from_env() -> Config:
    """
    Load configuration from ACCELSENSE_* environment variables.

    Unset variables keep the Config defaults.
    """
    env = os.environ
    values: dict[str, Any] = {}

    if env.get(f"{ENV_PREFIX}HARDWARE_PROFILE"):
        values["hardware_profile_path"] = Path(env[f"{ENV_PREFIX}HARDWARE_PROFILE"])
    if env.get(f"{ENV_PREFIX}COST_MODEL"):
        values["cost_model_path"] = Path(env[f"{ENV_PREFIX}COST_MODEL"])

    threshold = _parse_env_int(env.get(f"{ENV_PREFIX}GPU_OFFLOAD_THRESHOLD_ROWS"), None)
    if threshold is not None:
        values["gpu_offload_threshold_rows"] = threshold

    max_depth = _parse_env_int(env.get(f"{ENV_PREFIX}PARSER_MAX_DEPTH"), None)
    if max_depth is not None:
        values["parser_max_depth"] = max_depth

    if env.get(f"{ENV_PREFIX}LOG_LEVEL"):
        values["log_level"] = env[f"{ENV_PREFIX}LOG_LEVEL"].upper()
    if env.get(f"{ENV_PREFIX}OUTPUT_FORMAT"):
        values["output_format"] = env[f"{ENV_PREFIX}OUTPUT_FORMAT"].lower()

    return _build_config(values, "environment")


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a JSON or YAML file.

    Falls back to environment variables if the file does not exist.
    Relative profile/cost-model paths resolve against the file's directory.

    Raises:
        ConfigurationError: If the file exists but is malformed or invalid
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    data = load_structured_file(path) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file must contain a mapping: {path}",
            config_key=str(path),
        )

    for key in ("hardware_profile_path", "cost_model_path"):
        if data.get(key):
            target = Path(data[key])
            data[key] = target if target.is_absolute() else path.parent / target

    return _build_config(data, str(path))


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from:
    1. ACCELSENSE_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
