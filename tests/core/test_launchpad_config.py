"""Tests for config models and the YAML loader."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from launchpad.core.config import (
    DEFAULT_STARTUP_DELAY,
    DEFAULT_STOP_TIMEOUT,
    LaunchpadConfig,
    load_config,
    load_config_from_dict,
)
from launchpad.core.exceptions import ConfigError

# =============================================================================
# Test: models
# =============================================================================


class TestModels:
    """Tests for pydantic model validation."""

    def test_minimal_config_defaults(self, tmp_path: Path) -> None:
        config = load_config_from_dict({"workspace": {"path": str(tmp_path)}})

        assert config.workspace.name == "workspace"
        assert config.workspace.repositories == []
        assert config.runner.startup_delay == DEFAULT_STARTUP_DELAY
        assert config.runner.stop_timeout == DEFAULT_STOP_TIMEOUT
        assert config.runner.shell_heuristics is False
        assert config.runner.logs_dir is None

    def test_expands_user(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))

        config = load_config_from_dict(
            {"workspace": {"path": "~/code"}, "runner": {"logs_dir": "~/logs"}}
        )

        assert config.workspace.path == tmp_path / "code"
        assert config.runner.logs_dir == tmp_path / "logs"

    def test_null_sections_coerced(self, tmp_path: Path) -> None:
        """Empty YAML keys parse as None and fall back to defaults."""
        config = load_config_from_dict(
            {"workspace": {"path": str(tmp_path), "repositories": None}, "runner": None}
        )

        assert config.workspace.repositories == []
        assert config.runner.stop_timeout == DEFAULT_STOP_TIMEOUT

    def test_repo_path(self, tmp_path: Path) -> None:
        config = load_config_from_dict({"workspace": {"path": str(tmp_path)}})

        assert config.workspace.repo_path("svc-a") == tmp_path / "svc-a"

    def test_resolved_logs_dir(self, tmp_path: Path) -> None:
        config = load_config_from_dict({"workspace": {"path": str(tmp_path)}})

        assert config.runner.resolved_logs_dir(tmp_path / "cfg") == tmp_path / "cfg" / "logs"

    def test_frozen(self, tmp_path: Path) -> None:
        config = load_config_from_dict({"workspace": {"path": str(tmp_path)}})

        with pytest.raises(ValidationError):
            config.workspace.name = "other"

    @pytest.mark.parametrize(
        "runner",
        [{"stop_timeout": 0}, {"stop_timeout": -1}, {"startup_delay": -0.5}],
    )
    def test_invalid_timeouts(self, tmp_path: Path, runner: dict) -> None:
        with pytest.raises(ConfigError, match="Invalid config"):
            load_config_from_dict({"workspace": {"path": str(tmp_path)}, "runner": runner})

    def test_missing_workspace(self) -> None:
        with pytest.raises(ConfigError):
            load_config_from_dict({"runner": {}})

    def test_non_mapping(self) -> None:
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_config_from_dict(["workspace"])


# =============================================================================
# Test: loader
# =============================================================================


class TestLoadConfig:
    """Tests for load_config() from YAML files."""

    def test_loads_yaml(self, tmp_path: Path) -> None:
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            f"""
workspace:
  name: payments
  path: {tmp_path / "ws"}
  repositories:
    - svc-a
    - svc-b
runner:
  startup_delay: 0.5
  stop_timeout: 3
""",
            encoding="utf-8",
        )

        config = load_config(config_path)

        assert isinstance(config, LaunchpadConfig)
        assert config.workspace.name == "payments"
        assert config.workspace.repositories == ["svc-a", "svc-b"]
        assert config.runner.startup_delay == 0.5
        assert config.runner.stop_timeout == 3

    def test_default_location(self, isolated_config_dir: Path, tmp_path: Path) -> None:
        isolated_config_dir.mkdir()
        (isolated_config_dir / "config.yaml").write_text(
            f"workspace:\n  path: {tmp_path}\n", encoding="utf-8"
        )

        assert load_config().workspace.path == tmp_path

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="No configuration found"):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        config_path = tmp_path / "config.yaml"
        config_path.write_text("workspace: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(config_path)

    def test_empty_file(self, tmp_path: Path) -> None:
        config_path = tmp_path / "config.yaml"
        config_path.write_text("", encoding="utf-8")

        with pytest.raises(ConfigError, match="must be a mapping"):
            load_config(config_path)
