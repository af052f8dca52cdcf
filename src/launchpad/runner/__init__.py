"""Command resolution and process lifecycle for workspace repositories."""

from launchpad.runner.app_runner import AppRunner
from launchpad.runner.command_resolver import CommandResolver, executable_argv
from launchpad.runner.docker_detector import DockerDetector
from launchpad.runner.log_manager import LogManager
from launchpad.runner.package_manager import PackageManagerDetector
from launchpad.runner.process_manager import ProcessManager
from launchpad.runner.repository_manager import RepositoryManager
from launchpad.runner.types import (
    BatchResult,
    CommandRequest,
    DockerComposeInfo,
    NpmDockerInfo,
    PackageManager,
    PackageManagerInfo,
    ProcessKey,
    ProcessState,
    RunningProcess,
    RunOptions,
)

__all__ = [
    "AppRunner",
    "BatchResult",
    "CommandRequest",
    "CommandResolver",
    "DockerComposeInfo",
    "DockerDetector",
    "LogManager",
    "NpmDockerInfo",
    "PackageManager",
    "PackageManagerDetector",
    "PackageManagerInfo",
    "ProcessKey",
    "ProcessManager",
    "ProcessState",
    "RepositoryManager",
    "RunOptions",
    "RunningProcess",
    "executable_argv",
]
