"""Docker Compose detection.

Two independent signals:
- the repository ships a compose file (it is Compose-based), and
- a package.json script behind the logical command invokes docker compose
  (the repository uses Docker indirectly).
"""

import logging
import re
from pathlib import Path

from launchpad.runner.package_manager import read_package_json
from launchpad.runner.types import DockerComposeInfo, NpmDockerInfo

logger = logging.getLogger(__name__)

# Order matters: first existing file wins.
COMPOSE_FILES: list[str] = [
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
    "docker-compose.dev.yml",
    "docker-compose.development.yml",
]

DEFAULT_COMPOSE_FILE = "docker-compose.yml"

# Logical command -> package.json scripts that may implement it.
SCRIPT_CANDIDATES: dict[str, list[str]] = {
    "dev": ["dev", "start:dev", "develop"],
    "start": ["start", "serve", "dev"],
    "build": ["build", "build:prod", "build:dev"],
    "test": ["test", "test:unit", "test:integration"],
    "lint": ["lint", "lint:check"],
}

COMPOSE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"docker-compose"),
    re.compile(r"docker compose"),
    re.compile(r"compose"),
]

_COMPOSE_FILE_ARG = re.compile(r"(?:-f|--file)\s+(\S+)")
_NON_SERVICE_TOKENS = frozenset({"up", "down", "build"})
_SHELL_OPERATORS = frozenset({"&&", "||", ";", "|"})


def script_candidates(command: str) -> list[str]:
    """Return the package.json script names that may implement a command."""
    return SCRIPT_CANDIDATES.get(command, [command])


def script_uses_docker_compose(script: str) -> bool:
    return any(pattern.search(script) for pattern in COMPOSE_PATTERNS)


def parse_compose_script(script: str) -> tuple[str, tuple[str, ...] | None]:
    """Extract the compose file and service names from a script body.

    Args:
        script: Script body, e.g. ``docker compose -f dev.yml up -d api db``.

    Returns:
        Tuple of (compose_file, services). compose_file defaults to
        docker-compose.yml; services is None unless names follow ``up``.
        Names stop at the first shell operator (``&&``, ``||``, ``;``, ``|``).

    """
    match = _COMPOSE_FILE_ARG.search(script)
    compose_file = match.group(1) if match else DEFAULT_COMPOSE_FILE

    parts = script.split()
    if "up" not in parts:
        return compose_file, None

    services: list[str] = []
    for part in parts[parts.index("up") + 1 :]:
        if part in _SHELL_OPERATORS:
            break
        name = part.rstrip(";")
        if name and not name.startswith("-") and name not in _NON_SERVICE_TOKENS:
            services.append(name)
        if part.endswith(";"):
            break
    return compose_file, tuple(services) or None


class DockerDetector:
    """Read-only probes for Docker Compose usage in a repository."""

    def detect_docker_compose(self, repo_path: Path) -> DockerComposeInfo:
        """Find the compose file of a repository.

        Args:
            repo_path: Repository checkout directory.

        Returns:
            DockerComposeInfo with the first matching file of COMPOSE_FILES,
            or is_docker_compose=False if there is none.

        """
        repo_path = Path(repo_path)
        for filename in COMPOSE_FILES:
            if (repo_path / filename).is_file():
                return DockerComposeInfo(is_docker_compose=True, compose_file=filename)
        return DockerComposeInfo(is_docker_compose=False)

    def detect_npm_docker_usage(self, repo_path: Path, command: str) -> NpmDockerInfo:
        """Check whether the script behind a logical command runs docker compose.

        Args:
            repo_path: Repository checkout directory.
            command: Logical command (``dev``, ``build``, or a script name).

        Returns:
            NpmDockerInfo; uses_docker=False when package.json is missing,
            invalid, or no candidate script mentions compose.

        """
        package_json = read_package_json(Path(repo_path))
        if package_json is None:
            return NpmDockerInfo()

        scripts = package_json.get("scripts")
        if not isinstance(scripts, dict):
            return NpmDockerInfo()

        for name in script_candidates(command):
            script = scripts.get(name)
            if isinstance(script, str) and script and script_uses_docker_compose(script):
                compose_file, services = parse_compose_script(script)
                logger.debug("Script %r in %s drives docker compose", name, repo_path)
                return NpmDockerInfo(
                    uses_docker=True,
                    docker_command=script,
                    services=services,
                    compose_file=compose_file,
                )

        return NpmDockerInfo()
