"""Tests for config and log directory resolution."""

import sys
from pathlib import Path

import pytest

from launchpad.core.paths import get_config_dir, get_config_file, get_logs_dir


class TestConfigDir:
    """Tests for get_config_dir() precedence."""

    def test_explicit_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LAUNCHPAD_CONFIG_DIR", str(tmp_path / "custom"))

        assert get_config_dir() == tmp_path / "custom"

    @pytest.mark.skipif(sys.platform == "win32", reason="XDG layout")
    def test_xdg_config_home(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LAUNCHPAD_CONFIG_DIR", raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))

        assert get_config_dir() == tmp_path / "xdg" / "launchpad"

    @pytest.mark.skipif(sys.platform == "win32", reason="XDG layout")
    def test_home_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LAUNCHPAD_CONFIG_DIR", raising=False)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))

        assert get_config_dir() == tmp_path / ".config" / "launchpad"

    def test_config_file_and_logs(self, isolated_config_dir: Path) -> None:
        assert get_config_file() == isolated_config_dir / "config.yaml"
        assert get_logs_dir() == isolated_config_dir / "logs"

    def test_logs_dir_with_base(self, tmp_path: Path) -> None:
        assert get_logs_dir(tmp_path) == tmp_path / "logs"

    def test_nothing_is_created(self, isolated_config_dir: Path) -> None:
        get_config_file()
        get_logs_dir()

        assert not isolated_config_dir.exists()
