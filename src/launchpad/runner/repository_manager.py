"""Workspace repository discovery and listing."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from launchpad.runner.package_manager import PackageManagerDetector, read_package_json

logger = logging.getLogger(__name__)

REPOSITORY_INDICATORS = (
    "package.json",
    ".git",
    "Dockerfile",
    "docker-compose.yml",
    "requirements.txt",
    "Gemfile",
    "go.mod",
)

DOCKER_FILES = (
    "Dockerfile",
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
)

SKIPPED_DIRS = frozenset({"node_modules"})
MAX_LISTED_SCRIPTS = 5


@dataclass
class RepositoryInfo:
    """What ``list`` shows about one repository."""

    name: str
    path: Path
    has_package_json: bool = False
    description: str | None = None
    version: str | None = None
    docker_files: list[str] = field(default_factory=list)
    scripts: list[str] = field(default_factory=list)
    package_manager: str | None = None
    size_bytes: int | None = None


def format_size(size_bytes: float) -> str:
    """Render a byte count as ``1.5 KB``, ``12 MB``, ..."""
    units = ["B", "KB", "MB", "GB"]
    size = float(size_bytes)
    unit = 0
    while size >= 1024 and unit < len(units) - 1:
        size /= 1024
        unit += 1
    return f"{round(size, 2):g} {units[unit]}"


def directory_size(path: Path) -> int:
    """Total size of regular files below path, skipping hidden dirs and node_modules."""
    total = 0
    for root, dirs, files in os.walk(path):
        dirs[:] = [d for d in dirs if not d.startswith(".") and d not in SKIPPED_DIRS]
        for name in files:
            if name.startswith("."):
                continue
            try:
                total += (Path(root) / name).lstat().st_size
            except OSError:
                continue
    return total


def is_repository(path: Path) -> bool:
    return any((path / indicator).exists() for indicator in REPOSITORY_INDICATORS)


class RepositoryManager:
    """Lists the repositories checked out in a workspace directory.

    Attributes:
        workspace_path: Directory with one sub-directory per repository.
        package_managers: Detector used for the detailed listing.
        console: Rich console for output.

    """

    def __init__(
        self,
        workspace_path: Path,
        package_managers: PackageManagerDetector | None = None,
        console: Console | None = None,
    ) -> None:
        self.workspace_path = Path(workspace_path)
        self.package_managers = package_managers or PackageManagerDetector()
        self.console = console or Console()

    def find_repositories(self) -> list[str]:
        """Return sorted names of workspace directories that look like repositories."""
        try:
            entries = list(self.workspace_path.iterdir())
        except OSError as e:
            logger.debug("Cannot read workspace %s: %s", self.workspace_path, e)
            return []

        return sorted(
            entry.name
            for entry in entries
            if entry.is_dir()
            and not entry.name.startswith(".")
            and entry.name not in SKIPPED_DIRS
            and is_repository(entry)
        )

    def describe(self, repo: str, detailed: bool = False) -> RepositoryInfo:
        """Collect listing information for one repository.

        Args:
            repo: Repository directory name.
            detailed: Also collect Docker files, scripts, package manager
                and directory size.

        """
        repo_path = self.workspace_path / repo
        info = RepositoryInfo(name=repo, path=repo_path)

        package_json = read_package_json(repo_path)
        if package_json is not None:
            info.has_package_json = True
            description = package_json.get("description")
            version = package_json.get("version")
            info.description = description if isinstance(description, str) else None
            info.version = version if isinstance(version, str) else None

        if not detailed:
            return info

        info.docker_files = [name for name in DOCKER_FILES if (repo_path / name).exists()]
        if package_json is not None:
            scripts = package_json.get("scripts")
            if isinstance(scripts, dict):
                info.scripts = list(scripts)
            info.package_manager = str(self.package_managers.detect(repo_path).manager)
        info.size_bytes = directory_size(repo_path)
        return info

    def list_repositories(self, detailed: bool = False) -> list[RepositoryInfo]:
        """Print the workspace repositories and return what was printed."""
        repositories = self.find_repositories()

        self.console.print("\n[cyan]Available Repositories[/cyan]")
        self.console.print("[dim]" + "─" * 30 + "[/dim]")

        if not repositories:
            self.console.print("[yellow]No repositories found in workspace.[/yellow]")
            return []

        infos = [self.describe(repo, detailed) for repo in repositories]
        for info in infos:
            self._print_info(info, detailed)

        self.console.print(f"\n[dim]Total: {len(infos)} repositories[/dim]")
        return infos

    def _print_info(self, info: RepositoryInfo, detailed: bool) -> None:
        self.console.print(f"\n[bold]{escape(info.name)}[/bold]")
        if not info.has_package_json:
            self.console.print("[dim]   (No package.json found)[/dim]")
        if info.description:
            self.console.print(f"[dim]   {escape(info.description)}[/dim]")
        if info.version:
            self.console.print(f"[dim]   Version: {escape(info.version)}[/dim]")
        if not detailed:
            return

        if info.docker_files:
            self.console.print(f"[dim]   Docker: {', '.join(info.docker_files)}[/dim]")
        if info.scripts:
            shown = ", ".join(info.scripts[:MAX_LISTED_SCRIPTS])
            more = "..." if len(info.scripts) > MAX_LISTED_SCRIPTS else ""
            self.console.print(f"[dim]   Scripts: {escape(shown)}{more}[/dim]")
        if info.package_manager:
            self.console.print(f"[dim]   Package manager: {info.package_manager}[/dim]")
        if info.size_bytes is not None:
            self.console.print(f"[dim]   Size: {format_size(info.size_bytes)}[/dim]")
