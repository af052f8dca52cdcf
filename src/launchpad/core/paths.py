"""Config and log directory resolution.

Follows the XDG base directory layout on POSIX systems:

    $LAUNCHPAD_CONFIG_DIR             explicit override
    $XDG_CONFIG_HOME/launchpad        when XDG_CONFIG_HOME is set
    ~/.config/launchpad               default

Run logs live in a ``logs`` directory below the config directory unless
the runner config points elsewhere.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

APP_NAME = "launchpad"
CONFIG_DIR_ENV = "LAUNCHPAD_CONFIG_DIR"
CONFIG_FILE_NAME = "config.yaml"
LOGS_DIR_NAME = "logs"


def get_config_dir() -> Path:
    """Return the launchpad configuration directory (not created)."""
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()

    if sys.platform != "win32":
        xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
        if xdg_config_home:
            return Path(xdg_config_home) / APP_NAME
        return Path.home() / ".config" / APP_NAME

    return Path.home() / f".{APP_NAME}"


def get_config_file() -> Path:
    """Return the default config file path."""
    return get_config_dir() / CONFIG_FILE_NAME


def get_logs_dir(config_dir: Path | None = None) -> Path:
    """Return the default run log directory.

    Args:
        config_dir: Base directory; defaults to get_config_dir().

    """
    return (config_dir or get_config_dir()) / LOGS_DIR_NAME
