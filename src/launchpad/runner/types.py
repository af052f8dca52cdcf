"""Value objects and process state for the runner.

RunningProcess is the only mutable type here; it is owned by
ProcessManager and keyed by ProcessKey in its tracking map.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import NamedTuple


@dataclass(frozen=True)
class RunOptions:
    """Options of one CLI invocation, passed through resolution and spawning.

    Attributes:
        environment: Target environment ("dev", "prod", ...). Unknown values
            fall through to the default branch of each command.
        parallel: Spawn all repositories without waiting for each other.
        watch: Watch mode; also makes any command long-running.
        fix: Pass ``--fix`` to lint.
        volumes: Remove volumes and orphans on compose ``down``.

    """

    environment: str = "dev"
    parallel: bool = False
    watch: bool = False
    fix: bool = False
    volumes: bool = False


@dataclass(frozen=True)
class DockerComposeInfo:
    """Whether a repository is Docker-Compose-based, and via which file."""

    is_docker_compose: bool = False
    compose_file: str | None = None


@dataclass(frozen=True)
class NpmDockerInfo:
    """Docker Compose usage hidden behind a package.json script."""

    uses_docker: bool = False
    docker_command: str | None = None
    services: tuple[str, ...] | None = None
    compose_file: str | None = None


class PackageManager(StrEnum):
    """Node.js package managers launchpad knows how to drive."""

    NPM = "npm"
    PNPM = "pnpm"
    YARN = "yarn"
    BUN = "bun"


@dataclass(frozen=True)
class PackageManagerInfo:
    """Detected package manager.

    Attributes:
        manager: Package manager to invoke.
        lock_file: Diagnostic label describing how it was chosen.
        install_command: Canonical install argv.

    """

    manager: PackageManager
    lock_file: str
    install_command: tuple[str, ...]


class ProcessKey(NamedTuple):
    """Composite key of the tracking map."""

    repo: str
    command: str


class ProcessState(StrEnum):
    """Lifecycle of a tracked process.

    Valid transitions:
        SPAWNING → RUNNING (process created)
        SPAWNING → ERRORED (spawn failure)
        RUNNING → COMPLETED (exit code 0)
        RUNNING → FAILED (non-zero exit)
        RUNNING → STOPPED (graceful stop)
        RUNNING → KILLED (forced kill or stop escalation)

    Every state after RUNNING is terminal and removes the tracking entry.
    """

    SPAWNING = "spawning"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ERRORED = "errored"
    STOPPED = "stopped"
    KILLED = "killed"


TERMINAL_STATES = frozenset(
    {
        ProcessState.COMPLETED,
        ProcessState.FAILED,
        ProcessState.ERRORED,
        ProcessState.STOPPED,
        ProcessState.KILLED,
    }
)


@dataclass
class CommandRequest:
    """Everything ProcessManager needs to run one command in one repository."""

    argv: list[str]
    repo: str
    repo_path: Path
    command: str
    options: RunOptions
    docker_info: DockerComposeInfo = field(default_factory=DockerComposeInfo)
    npm_docker_info: NpmDockerInfo = field(default_factory=NpmDockerInfo)


@dataclass
class RunningProcess:
    """A spawned command tracked by ProcessManager.

    Attributes:
        repo: Repository name.
        command: Logical command (``dev``, ``build``, ...).
        pid: OS process id.
        process: asyncio subprocess handle.
        start_time: Spawn time (UTC).
        log_file: Per-run log file.
        repo_path: Working directory of the process.
        argv: Argument vector that was executed.
        is_docker_compose: Repository is Compose-based.
        compose_file: Compose file of the repository or script.
        npm_uses_docker: The package.json script drives docker compose.
        docker_services: Services named in that script.
        state: Current lifecycle state.
        exit_code: Exit code once the process has exited.

    """

    repo: str
    command: str
    pid: int
    process: asyncio.subprocess.Process
    start_time: datetime
    log_file: Path
    repo_path: Path
    argv: list[str] = field(default_factory=list)
    is_docker_compose: bool = False
    compose_file: str | None = None
    npm_uses_docker: bool = False
    docker_services: tuple[str, ...] | None = None
    state: ProcessState = ProcessState.SPAWNING
    exit_code: int | None = None
    exited: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def key(self) -> ProcessKey:
        return ProcessKey(self.repo, self.command)

    @property
    def is_alive(self) -> bool:
        """True while the OS process has not been reaped."""
        return self.process.returncode is None

    @property
    def uses_docker(self) -> bool:
        return self.is_docker_compose or self.npm_uses_docker

    def uptime(self, now: datetime | None = None) -> float:
        """Seconds since spawn."""
        current = now or datetime.now(UTC)
        return max(0.0, (current - self.start_time).total_seconds())


@dataclass
class BatchResult:
    """Outcome of running one command across several repositories.

    Attributes:
        command: Logical command that was run.
        succeeded: Repositories whose task finished (or started) cleanly.
        failed: Repository name to the error its task raised.

    """

    command: str
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, BaseException] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def format_uptime(seconds: float) -> str:
    """Render an uptime as ``1h 2m 3s`` / ``2m 3s`` / ``3s``."""
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
