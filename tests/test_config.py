"""Tests for configuration loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from accelsense.config import (
    Config,
    get_config,
    load_config_from_env,
    load_config_from_file,
    reset_config,
)
from accelsense.exceptions import ConfigurationError


class TestEnvironment:
    """Test ACCELSENSE_* environment variables."""

    def test_defaults(self) -> None:
        config = load_config_from_env()

        assert config == Config()
        assert config.hardware_profile_path is None
        assert config.parser_max_depth == 100
        assert config.output_format == "text"

    def test_all_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ACCELSENSE_HARDWARE_PROFILE", "/etc/hw.yaml")
        monkeypatch.setenv("ACCELSENSE_COST_MODEL", "costs.json")
        monkeypatch.setenv("ACCELSENSE_GPU_OFFLOAD_THRESHOLD_ROWS", "250000")
        monkeypatch.setenv("ACCELSENSE_PARSER_MAX_DEPTH", "64")
        monkeypatch.setenv("ACCELSENSE_LOG_LEVEL", "debug")
        monkeypatch.setenv("ACCELSENSE_OUTPUT_FORMAT", "JSON")

        config = load_config_from_env()

        assert config.hardware_profile_path == Path("/etc/hw.yaml")
        assert config.cost_model_path == Path("costs.json")
        assert config.gpu_offload_threshold_rows == 250_000
        assert config.parser_max_depth == 64
        assert config.log_level == "DEBUG"
        assert config.output_format == "json"

    def test_non_integer_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ACCELSENSE_PARSER_MAX_DEPTH", "deep")

        assert load_config_from_env().parser_max_depth == 100

    def test_out_of_range_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ACCELSENSE_PARSER_MAX_DEPTH", "10000")

        with pytest.raises(ConfigurationError, match="parser_max_depth"):
            load_config_from_env()

    def test_unknown_output_format(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ACCELSENSE_OUTPUT_FORMAT", "html")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_env()

        assert exc_info.value.config_key == "environment"


class TestConfigFile:
    """Test JSON/YAML config files."""

    def test_yaml_with_relative_paths(self, tmp_path: Path) -> None:
        path = tmp_path / "accelsense.yaml"
        path.write_text(
            "hardware_profile_path: profiles/gpu.yaml\n"
            "cost_model_path: /abs/costs.json\n"
            "gpu_offload_threshold_rows: 1000\n"
        )

        config = load_config_from_file(path)

        assert config.hardware_profile_path == tmp_path / "profiles" / "gpu.yaml"
        assert config.cost_model_path == Path("/abs/costs.json")
        assert config.gpu_offload_threshold_rows == 1000

    def test_json(self, tmp_path: Path) -> None:
        path = tmp_path / "accelsense.json"
        path.write_text(json.dumps({"output_format": "markdown", "log_level": "INFO"}))

        config = load_config_from_file(path)

        assert config.output_format == "markdown"
        assert config.log_level == "INFO"

    def test_missing_file_falls_back_to_env(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("ACCELSENSE_PARSER_MAX_DEPTH", "12")

        config = load_config_from_file(tmp_path / "missing.yaml")

        assert config.parser_max_depth == 12

    def test_invalid_field(self, tmp_path: Path) -> None:
        path = tmp_path / "accelsense.json"
        path.write_text(json.dumps({"gpu_offload_threshold_rows": -1}))

        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_file(path)

        assert "gpu_offload_threshold_rows" in exc_info.value.message
        assert exc_info.value.to_dict()["config_key"] == str(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "accelsense.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config_from_file(path)

    def test_empty_file_is_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "accelsense.yaml"
        path.write_text("")

        assert load_config_from_file(path) == Config()


class TestGetConfig:
    """Test the cached global config."""

    def test_cached_until_reset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        first = get_config()
        monkeypatch.setenv("ACCELSENSE_PARSER_MAX_DEPTH", "7")

        assert get_config() is first

        reset_config()
        assert get_config().parser_max_depth == 7

    def test_config_file_variable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "accelsense.json"
        path.write_text('{"parser_max_depth": 42}')
        monkeypatch.setenv("ACCELSENSE_CONFIG_FILE", str(path))

        assert get_config().parser_max_depth == 42

    def test_frozen(self) -> None:
        with pytest.raises(ValidationError):
            get_config().parser_max_depth = 3  # type: ignore[misc]
