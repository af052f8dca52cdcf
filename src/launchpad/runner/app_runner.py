"""Orchestration entry point for running commands across a workspace."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path

from rich.console import Console

from launchpad.core.config import LaunchpadConfig
from launchpad.runner.command_resolver import CommandResolver
from launchpad.runner.docker_detector import DockerDetector
from launchpad.runner.log_manager import LogManager
from launchpad.runner.package_manager import PackageManagerDetector
from launchpad.runner.process_manager import ProcessManager
from launchpad.runner.repository_manager import RepositoryInfo, RepositoryManager
from launchpad.runner.types import BatchResult, CommandRequest, RunningProcess, RunOptions

logger = logging.getLogger(__name__)


class AppRunner:
    """Runs lifecycle commands in the repositories of one workspace.

    All collaborators are passed in; use from_config() to build the
    default set from a LaunchpadConfig.

    Attributes:
        workspace_path: Directory containing the repositories.
        process_manager: Spawns and tracks processes.
        docker_detector: Compose file and script probes.
        command_resolver: Logical command to argv.
        log_manager: Log viewing.
        repository_manager: Workspace listing.

    """

    def __init__(
        self,
        workspace_path: Path,
        process_manager: ProcessManager,
        docker_detector: DockerDetector,
        command_resolver: CommandResolver,
        log_manager: LogManager,
        repository_manager: RepositoryManager,
    ) -> None:
        self.workspace_path = Path(workspace_path)
        self.process_manager = process_manager
        self.docker_detector = docker_detector
        self.command_resolver = command_resolver
        self.log_manager = log_manager
        self.repository_manager = repository_manager

    @classmethod
    def from_config(
        cls,
        config: LaunchpadConfig,
        console: Console | None = None,
        config_dir: Path | None = None,
    ) -> AppRunner:
        """Build an AppRunner with default collaborators.

        Args:
            config: Loaded configuration.
            console: Shared console for all managers.
            config_dir: Base directory for the default log location.

        """
        console = console or Console()
        log_dir = config.runner.resolved_logs_dir(config_dir)
        package_managers = PackageManagerDetector()
        resolver = CommandResolver(
            package_managers, shell_heuristics=config.runner.shell_heuristics
        )
        return cls(
            workspace_path=config.workspace.path,
            process_manager=ProcessManager(
                log_dir,
                resolver,
                console=console,
                sigterm_wait=config.runner.stop_timeout,
                startup_delay=config.runner.startup_delay,
            ),
            docker_detector=DockerDetector(),
            command_resolver=resolver,
            log_manager=LogManager(log_dir, console=console),
            repository_manager=RepositoryManager(
                config.workspace.path, package_managers, console=console
            ),
        )

    @property
    def log_dir(self) -> Path:
        return self.process_manager.log_dir

    def ensure_log_dir(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)

    async def run_command(
        self,
        command: str,
        repositories: Iterable[str],
        options: RunOptions,
    ) -> BatchResult:
        """Run a logical command in every named repository.

        Args:
            command: Logical command (``dev``, ``build``, ``sh:...``).
            repositories: Repository directory names.
            options: Run options; ``parallel`` selects the fan-out.

        Returns:
            BatchResult of the fan-out. Per-repository errors are collected,
            never raised.

        """
        self.ensure_log_dir()
        repos = list(repositories)
        logger.info("Running %s on %d repositories (parallel=%s)", command, len(repos), options.parallel)

        if options.parallel:
            tasks = {repo: self.run_single_command(command, repo, options) for repo in repos}
            return await self.process_manager.run_parallel(tasks, command, len(repos))

        async def run_one(repo: str) -> RunningProcess:
            return await self.run_single_command(command, repo, options)

        return await self.process_manager.run_sequential(repos, run_one, command)

    async def run_single_command(
        self,
        command: str,
        repo: str,
        options: RunOptions,
    ) -> RunningProcess:
        """Detect, resolve and run a command in one repository.

        File and ``--version`` probes run in a worker thread so parallel
        fan-out does not block the event loop.

        Raises:
            RunnerError: Any failure of the repository task.

        """
        repo_path = self.workspace_path / repo
        request = await asyncio.to_thread(self.build_request, command, repo, repo_path, options)
        return await self.process_manager.run_single_command(request)

    def build_request(
        self,
        command: str,
        repo: str,
        repo_path: Path,
        options: RunOptions,
    ) -> CommandRequest:
        docker_info = self.docker_detector.detect_docker_compose(repo_path)
        npm_docker_info = self.docker_detector.detect_npm_docker_usage(repo_path, command)
        argv = self.command_resolver.resolve_command(command, options, docker_info, repo_path)
        return CommandRequest(
            argv=argv,
            repo=repo,
            repo_path=repo_path,
            command=command,
            options=options,
            docker_info=docker_info,
            npm_docker_info=npm_docker_info,
        )

    async def stop_all(self) -> BatchResult:
        return await self.process_manager.stop_all()

    async def stop_repositories(self, repositories: Iterable[str]) -> BatchResult:
        return await self.process_manager.stop_repositories(repositories)

    async def kill_all(self, force: bool = False) -> BatchResult:
        return await self.process_manager.kill_all(force)

    def show_status(self) -> None:
        self.process_manager.show_status()

    async def show_logs(
        self,
        repo: str,
        follow: bool = False,
        lines: int | None = None,
        command: str | None = None,
    ) -> bool:
        return await self.log_manager.show_logs(
            repo,
            follow=follow,
            lines=lines,
            command=command,
            known_repos=self.find_repositories(),
        )

    def get_running_processes(self) -> list[RunningProcess]:
        return self.process_manager.get_running_processes()

    async def wait_all(self) -> None:
        await self.process_manager.wait_all()

    def list_repositories(self, detailed: bool = False) -> list[RepositoryInfo]:
        return self.repository_manager.list_repositories(detailed)

    def find_repositories(self) -> list[str]:
        return self.repository_manager.find_repositories()
