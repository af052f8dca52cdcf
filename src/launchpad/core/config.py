"""Configuration models and YAML loader.

The config file describes one workspace (a directory holding many
independently checked-out repositories) and the tunables of the process
runner. Example ``config.yaml``:

    workspace:
      name: payments
      path: ~/code/payments
      repositories: [svc-a, svc-b, web]
    runner:
      startup_delay: 1.0
      stop_timeout: 5.0
      shell_heuristics: false
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from launchpad.core.exceptions import ConfigError
from launchpad.core.paths import get_config_file, get_logs_dir

logger = logging.getLogger(__name__)

DEFAULT_STARTUP_DELAY = 1.0
DEFAULT_STOP_TIMEOUT = 5.0


class WorkspaceConfig(BaseModel):
    """Workspace location and the repositories it tracks.

    Attributes:
        name: Display name of the workspace.
        path: Directory containing one sub-directory per repository.
        repositories: Repository directory names used by ``--all``.

    """

    model_config = ConfigDict(frozen=True)

    name: str = "workspace"
    path: Path
    repositories: list[str] = Field(default_factory=list)

    @field_validator("path", mode="before")
    @classmethod
    def expand_user(cls, v: Any) -> Any:
        """Allow ``~`` in the workspace path."""
        if isinstance(v, str):
            return Path(v).expanduser()
        if isinstance(v, Path):
            return v.expanduser()
        return v

    @field_validator("repositories", mode="before")
    @classmethod
    def coerce_none_to_empty_list(cls, v: Any) -> list[str]:
        """YAML parses an empty ``repositories:`` key as None."""
        if v is None:
            return []
        return list(v)

    def repo_path(self, repo: str) -> Path:
        """Return the checkout directory of a repository."""
        return self.path / repo


class RunnerConfig(BaseModel):
    """Process runner tunables.

    Attributes:
        logs_dir: Directory for per-run log files (default: config dir/logs).
        startup_delay: Seconds after spawn before a long-running command is
            reported as started.
        stop_timeout: Seconds between SIGTERM and SIGKILL on stop.
        shell_heuristics: Treat commands containing shell operators or
            common shell verbs as raw shell commands, in addition to the
            explicit ``sh:`` prefix.

    """

    model_config = ConfigDict(frozen=True)

    logs_dir: Path | None = None
    startup_delay: float = Field(default=DEFAULT_STARTUP_DELAY, ge=0)
    stop_timeout: float = Field(default=DEFAULT_STOP_TIMEOUT, gt=0)
    shell_heuristics: bool = False

    @field_validator("logs_dir", mode="before")
    @classmethod
    def expand_logs_dir(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    def resolved_logs_dir(self, config_dir: Path | None = None) -> Path:
        """Return the configured log directory or the default one."""
        return self.logs_dir or get_logs_dir(config_dir)


class LaunchpadConfig(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(frozen=True)

    workspace: WorkspaceConfig
    runner: RunnerConfig = Field(default_factory=RunnerConfig)

    @field_validator("runner", mode="before")
    @classmethod
    def coerce_none_to_defaults(cls, v: Any) -> Any:
        if v is None:
            return {}
        return v


def load_config(path: Path | None = None) -> LaunchpadConfig:
    """Load and validate the config file.

    Args:
        path: Config file path; defaults to the XDG location.

    Returns:
        Validated LaunchpadConfig.

    Raises:
        ConfigError: If the file is missing, is not valid YAML, or fails
            validation.

    """
    config_path = path or get_config_file()
    if not config_path.is_file():
        raise ConfigError(
            f"No configuration found at {config_path}. Create it with a 'workspace' section."
        )

    try:
        with config_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {config_path}: {e}") from e

    return load_config_from_dict(data, source=str(config_path))


def load_config_from_dict(data: Any, source: str = "<dict>") -> LaunchpadConfig:
    """Validate an already-parsed config mapping.

    Raises:
        ConfigError: If data is not a mapping or fails validation.

    """
    if not isinstance(data, dict):
        raise ConfigError(f"Config {source} must be a mapping, got {type(data).__name__}")

    try:
        config = LaunchpadConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {source}:\n{e}") from e

    logger.debug(
        "Loaded config from %s: workspace=%s (%d repositories)",
        source,
        config.workspace.path,
        len(config.workspace.repositories),
    )
    return config
