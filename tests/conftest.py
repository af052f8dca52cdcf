"""Pytest configuration and fixtures for launchpad tests."""

import io
import json
from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from rich.console import Console

from launchpad.runner.command_resolver import CommandResolver
from launchpad.runner.package_manager import PackageManagerDetector
from launchpad.runner.process_manager import ProcessManager


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the config directory at a temp dir so tests never touch ~/.config."""
    config_dir = tmp_path / "launchpad-config"
    monkeypatch.setenv("LAUNCHPAD_CONFIG_DIR", str(config_dir))
    return config_dir


@pytest.fixture
def console() -> Console:
    """Console writing plain text into a buffer (read via console.file.getvalue())."""
    return Console(file=io.StringIO(), width=200, color_system=None, highlight=False)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Empty workspace directory."""
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def make_repo(workspace: Path) -> Callable[..., Path]:
    """Factory creating a repository directory inside the workspace.

    Usage:
        make_repo("svc-a", package_json={"scripts": {"dev": "vite"}},
                  files=["pnpm-lock.yaml"])
    """

    def _make(
        name: str,
        package_json: dict | None = None,
        files: list[str] | None = None,
    ) -> Path:
        repo = workspace / name
        repo.mkdir(parents=True, exist_ok=True)
        if package_json is not None:
            (repo / "package.json").write_text(json.dumps(package_json), encoding="utf-8")
        for filename in files or []:
            (repo / filename).write_text("", encoding="utf-8")
        return repo

    return _make


@pytest.fixture
def detector() -> Iterator[PackageManagerDetector]:
    """Detector that considers every package manager installed."""
    detector = PackageManagerDetector()
    with patch.object(PackageManagerDetector, "is_available", return_value=True):
        yield detector


@pytest.fixture
def resolver(detector: PackageManagerDetector) -> CommandResolver:
    return CommandResolver(detector)


@pytest.fixture
def process_manager(tmp_path: Path, resolver: CommandResolver, console: Console) -> ProcessManager:
    """ProcessManager with short timeouts for real child processes."""
    return ProcessManager(
        tmp_path / "logs",
        resolver,
        console=console,
        sigterm_wait=0.5,
        startup_delay=0.3,
        drain_timeout=0.5,
    )
