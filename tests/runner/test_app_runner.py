"""Tests for AppRunner orchestration with injected collaborators."""

import sys
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from rich.console import Console

from launchpad.core.config import load_config_from_dict
from launchpad.core.exceptions import RepositoryNotFoundError
from launchpad.runner.app_runner import AppRunner
from launchpad.runner.command_resolver import CommandResolver
from launchpad.runner.docker_detector import DockerDetector
from launchpad.runner.log_manager import LogManager
from launchpad.runner.process_manager import ProcessManager
from launchpad.runner.repository_manager import RepositoryManager
from launchpad.runner.types import RunOptions


@pytest.fixture
def app_runner(
    workspace: Path,
    process_manager: ProcessManager,
    resolver: CommandResolver,
    console: Console,
) -> AppRunner:
    return AppRunner(
        workspace_path=workspace,
        process_manager=process_manager,
        docker_detector=DockerDetector(),
        command_resolver=resolver,
        log_manager=LogManager(process_manager.log_dir, console=console),
        repository_manager=RepositoryManager(workspace, console=console),
    )


class TestBuildRequest:
    """Detection and resolution for one repository."""

    def test_pnpm_build(self, app_runner: AppRunner, make_repo: Callable[..., Path]) -> None:
        repo = make_repo("svc-a", files=["pnpm-lock.yaml"])

        request = app_runner.build_request("build", "svc-a", repo, RunOptions(environment="prod"))

        assert request.argv == ["pnpm", "run", "build"]
        assert request.repo_path == repo
        assert request.docker_info.is_docker_compose is False

    def test_compose_repository(self, app_runner: AppRunner, make_repo: Callable[..., Path]) -> None:
        repo = make_repo("svc-b", files=["docker-compose.yml"])

        request = app_runner.build_request("dev", "svc-b", repo, RunOptions())

        assert request.argv == ["compose", "-f", "docker-compose.yml", "up", "--build"]
        assert request.docker_info.compose_file == "docker-compose.yml"

    def test_script_driving_compose(
        self, app_runner: AppRunner, make_repo: Callable[..., Path]
    ) -> None:
        repo = make_repo("svc-c", package_json={"scripts": {"dev": "docker compose up api"}})

        request = app_runner.build_request("dev", "svc-c", repo, RunOptions())

        assert request.argv == ["npm", "run", "dev"]
        assert request.npm_docker_info.uses_docker is True
        assert request.npm_docker_info.services == ("api",)


@pytest.mark.skipif(sys.platform == "win32", reason="requires sh")
class TestRunCommand:
    """End-to-end fan-out through real processes."""

    @pytest.mark.asyncio
    async def test_sequential_reports_missing_repository(
        self, app_runner: AppRunner, make_repo: Callable[..., Path]
    ) -> None:
        make_repo("svc-a")
        make_repo("svc-c")

        result = await app_runner.run_command(
            "sh:echo ok", ["svc-a", "svc-b", "svc-c"], RunOptions(parallel=False)
        )

        assert result.succeeded == ["svc-a", "svc-c"]
        assert isinstance(result.failed["svc-b"], RepositoryNotFoundError)
        assert app_runner.log_dir.is_dir()

    @pytest.mark.asyncio
    async def test_parallel(self, app_runner: AppRunner, make_repo: Callable[..., Path]) -> None:
        for name in ("svc-a", "svc-b"):
            make_repo(name)

        result = await app_runner.run_command("sh:pwd", ["svc-a", "svc-b"], RunOptions(parallel=True))

        assert result.ok
        assert sorted(result.succeeded) == ["svc-a", "svc-b"]
        log = app_runner.log_manager.latest_log_file("svc-b")
        assert log is not None
        assert "svc-b" in log.read_text(encoding="utf-8")


class TestShowLogs:
    """Log lookup through the runner uses the workspace repositories."""

    @pytest.mark.asyncio
    async def test_prefix_sibling_not_shown(
        self, app_runner: AppRunner, make_repo: Callable[..., Path], console: Console
    ) -> None:
        make_repo("api", files=["go.mod"])
        make_repo("api-gateway", files=["go.mod"])
        app_runner.log_dir.mkdir(parents=True)
        (app_runner.log_dir / "api-dev-1.log").write_text("[STDOUT] from-api\n", encoding="utf-8")
        (app_runner.log_dir / "api-gateway-dev-2.log").write_text(
            "[STDOUT] from-gateway\n", encoding="utf-8"
        )

        found = await app_runner.show_logs("api")

        text = console.file.getvalue()
        assert found is True
        assert "from-api" in text
        assert "from-gateway" not in text


class TestDelegation:
    """Stop/kill/status/logs are forwarded to the managers."""

    @pytest.mark.asyncio
    async def test_stop_and_kill(self, workspace: Path) -> None:
        process_manager = MagicMock(spec=ProcessManager)
        process_manager.stop_all = AsyncMock()
        process_manager.stop_repositories = AsyncMock()
        process_manager.kill_all = AsyncMock()
        runner = AppRunner(
            workspace,
            process_manager,
            MagicMock(spec=DockerDetector),
            MagicMock(spec=CommandResolver),
            MagicMock(spec=LogManager),
            MagicMock(spec=RepositoryManager),
        )

        await runner.stop_all()
        await runner.stop_repositories(["svc-a"])
        await runner.kill_all(force=True)

        process_manager.stop_all.assert_awaited_once()
        process_manager.stop_repositories.assert_awaited_once_with(["svc-a"])
        process_manager.kill_all.assert_awaited_once_with(True)


class TestFromConfig:
    """Default wiring from a loaded config."""

    def test_wires_runner_settings(self, tmp_path: Path, console: Console) -> None:
        config = load_config_from_dict(
            {
                "workspace": {"path": str(tmp_path / "ws"), "repositories": ["a"]},
                "runner": {
                    "logs_dir": str(tmp_path / "my-logs"),
                    "startup_delay": 2.5,
                    "stop_timeout": 9,
                    "shell_heuristics": True,
                },
            }
        )

        runner = AppRunner.from_config(config, console=console)

        assert runner.workspace_path == tmp_path / "ws"
        assert runner.log_dir == tmp_path / "my-logs"
        assert runner.process_manager.startup_delay == 2.5
        assert runner.process_manager.sigterm_wait == 9
        assert runner.command_resolver.shell_heuristics is True
        assert runner.process_manager.command_resolver is runner.command_resolver
        assert runner.log_manager.log_dir == runner.log_dir

    def test_default_log_dir(self, tmp_path: Path, isolated_config_dir: Path) -> None:
        config = load_config_from_dict({"workspace": {"path": str(tmp_path)}})

        runner = AppRunner.from_config(config)

        assert runner.log_dir == isolated_config_dir / "logs"
