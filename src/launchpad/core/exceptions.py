"""Exception hierarchy for launchpad.

All errors raised by launchpad derive from LaunchpadError so the CLI layer
can catch them in one place. Per-repository failures carry the repository
and logical command so batch reports can attribute them.
"""

__all__ = [
    "CommandFailedError",
    "ConfigError",
    "LaunchpadError",
    "ProcessAlreadyRunningError",
    "RepositoryNotFoundError",
    "RunnerError",
    "SpawnError",
    "StopError",
]


class LaunchpadError(Exception):
    """Base exception for all launchpad errors."""


class ConfigError(LaunchpadError):
    """Configuration file is missing, unreadable or invalid."""


class RunnerError(LaunchpadError):
    """Failure of a single repository task.

    Attributes:
        repo: Repository name the failure belongs to.
        command: Logical command that was being run.

    """

    def __init__(self, message: str, *, repo: str = "", command: str = "") -> None:
        super().__init__(message)
        self.repo = repo
        self.command = command


class RepositoryNotFoundError(RunnerError):
    """Target repository directory does not exist."""


class SpawnError(RunnerError):
    """The OS could not create the process (missing binary, permission)."""


class CommandFailedError(RunnerError):
    """Process ran but exited with a non-zero code.

    Attributes:
        exit_code: Exit code reported by the process. Negative values are
            the number of the signal that terminated it.

    """

    def __init__(
        self,
        message: str,
        *,
        exit_code: int,
        repo: str = "",
        command: str = "",
    ) -> None:
        super().__init__(message, repo=repo, command=command)
        self.exit_code = exit_code


class StopError(RunnerError):
    """Signal delivery or `docker compose stop` failed."""


class ProcessAlreadyRunningError(RunnerError):
    """A live process is already tracked for the same repo and command."""
