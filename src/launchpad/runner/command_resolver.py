"""Logical command -> argument vector resolution.

Resolution order (first match wins):
1. Shell escape: ``sh:<cmd>`` runs ``sh -c <cmd>``. With shell heuristics
   enabled, commands containing shell operators or common shell verbs are
   treated the same way.
2. Docker Compose: repositories with a compose file get
   ``compose -f <file> ...`` (spawned as ``docker compose ...``).
3. Package manager: ``<mgr> run <script>`` via the detected manager.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from launchpad.runner.package_manager import PackageManagerDetector
from launchpad.runner.types import DockerComposeInfo, PackageManager, RunOptions

logger = logging.getLogger(__name__)

SHELL_PREFIX = "sh:"

LONG_RUNNING_COMMANDS = frozenset({"dev", "start", "serve", "watch"})

SHELL_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"^\s*echo\s+"),
    re.compile(r"^\s*printenv\b"),
    re.compile(r"^\s*env\b"),
    re.compile(r"^\s*cat\s+"),
    re.compile(r"^\s*ls\b"),
    re.compile(r"^\s*pwd\b"),
    re.compile(r"\|\s*grep"),
    re.compile(r"&&"),
    re.compile(r"\|\|"),
    re.compile(r";"),
    re.compile(r">"),
    re.compile(r"<"),
]


def is_shell_command(command: str) -> bool:
    """Heuristically decide whether a command is a raw shell command."""
    return any(pattern.search(command) for pattern in SHELL_PATTERNS)


def executable_argv(argv: list[str]) -> list[str]:
    """Turn a resolved argv into the one to spawn.

    Compose argv starts with the ``compose`` sub-command of the docker CLI.
    """
    if argv and argv[0] == "compose":
        return ["docker", *argv]
    return list(argv)


def _run_script(manager: PackageManager, script: str) -> list[str]:
    return [manager.value, "run", script]


def _test_invocation(manager: PackageManager) -> list[str]:
    if manager == PackageManager.NPM:
        return ["npm", "test"]
    return _run_script(manager, "test")


class CommandResolver:
    """Maps a logical command to the concrete argv for one repository.

    Attributes:
        package_managers: Detector used for package manager sub-commands.
        shell_heuristics: Also treat commands that look like shell
            pipelines as shell commands (``sh:`` always works).

    """

    def __init__(
        self,
        package_managers: PackageManagerDetector,
        shell_heuristics: bool = False,
    ) -> None:
        self.package_managers = package_managers
        self.shell_heuristics = shell_heuristics

    def resolve_command(
        self,
        command: str,
        options: RunOptions,
        docker_info: DockerComposeInfo,
        repo_path: Path | None = None,
    ) -> list[str]:
        """Resolve a logical command to an argument vector.

        Args:
            command: Logical command or script name (``sh:`` for raw shell).
            options: Run options (environment, watch, fix, volumes).
            docker_info: Compose detection result for the repository.
            repo_path: Repository directory; used to pick the package
                manager. npm is assumed when None.

        Returns:
            Argument vector. Compose vectors start with ``compose``; see
            executable_argv().

        """
        if command.startswith(SHELL_PREFIX) or (
            self.shell_heuristics and is_shell_command(command)
        ):
            return self.resolve_shell_command(command)

        if docker_info.is_docker_compose and docker_info.compose_file:
            return self.resolve_compose_command(
                command, options, docker_info.compose_file, repo_path
            )

        return self.resolve_package_manager_command(command, options, repo_path)

    def resolve_shell_command(self, command: str) -> list[str]:
        body = command[len(SHELL_PREFIX) :] if command.startswith(SHELL_PREFIX) else command
        return ["sh", "-c", body]

    def resolve_compose_command(
        self,
        command: str,
        options: RunOptions,
        compose_file: str,
        repo_path: Path | None = None,
    ) -> list[str]:
        base = ["compose", "-f", compose_file]

        if command == "dev":
            return [*base, "up", "--build"]
        if command == "start":
            if options.environment == "dev":
                return [*base, "up", "--build"]
            if options.environment == "prod":
                return [*base, "up", "-d"]
            return [*base, "up"]
        if command == "build":
            return [*base, "build"]
        if command == "test":
            argv = [*base, "run", "--rm", "app", *_test_invocation(self._manager(repo_path))]
            if options.watch:
                argv += ["--", "--watch"]
            return argv
        if command == "stop":
            return [*base, "stop"]
        if command == "down":
            argv = [*base, "down"]
            if options.volumes:
                argv += ["--volumes", "--remove-orphans"]
            return argv
        if command == "logs":
            return [*base, "logs", "-f"]
        return [*base, "run", "--rm", "app", *_run_script(self._manager(repo_path), command)]

    def resolve_package_manager_command(
        self,
        command: str,
        options: RunOptions,
        repo_path: Path | None = None,
    ) -> list[str]:
        if command == "install":
            if repo_path is None:
                return ["npm", "install"]
            return list(self.package_managers.best_available(repo_path).install_command)

        manager = self._manager(repo_path)

        if command == "dev":
            return _run_script(manager, "dev")
        if command == "start":
            if options.environment == "dev":
                return _run_script(manager, "dev")
            if manager == PackageManager.NPM:
                return ["npm", "start"]
            return _run_script(manager, "start")
        if command == "build":
            if options.environment == "dev":
                return _run_script(manager, "build:dev")
            return _run_script(manager, "build")
        if command == "test":
            argv = _test_invocation(manager)
            if options.watch:
                argv += ["--", "--watch"]
            return argv
        if command == "lint":
            argv = _run_script(manager, "lint")
            if options.fix:
                argv += ["--", "--fix"]
            return argv
        return _run_script(manager, command)

    def is_long_running_command(self, command: str) -> bool:
        """True for commands that keep running until stopped (dev servers)."""
        return command in LONG_RUNNING_COMMANDS

    def _manager(self, repo_path: Path | None) -> PackageManager:
        if repo_path is None:
            return PackageManager.NPM
        return self.package_managers.best_available(repo_path).manager
