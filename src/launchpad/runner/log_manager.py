"""Viewing of per-run log files written by ProcessManager.

Log files are named ``<repo>-<command>-<unix_millis>.log`` and contain one
``[STDOUT] `` or ``[STDERR] `` tagged line per line of process output.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from collections.abc import Iterable
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from launchpad.runner.process_manager import safe_log_part

logger = logging.getLogger(__name__)

FOLLOW_POLL_INTERVAL = 0.5  # seconds

_TIMESTAMP_SUFFIX = re.compile(r"-(\d+)\.log$")
_TAGS = {"[STDOUT]": "dim", "[STDERR]": "red"}


def extract_timestamp(path: Path) -> int:
    """Return the unix millis embedded in a log file name, or 0."""
    match = _TIMESTAMP_SUFFIX.search(path.name)
    return int(match.group(1)) if match else 0


def format_line(line: str) -> str:
    """Convert a tagged log line to console markup."""
    for tag, style in _TAGS.items():
        if line.startswith(tag):
            content = line[len(tag) :].strip()
            return f"[{style}]{escape(content)}[/{style}]"
    return escape(line)


class LogManager:
    """Finds and prints the log files of a repository.

    Attributes:
        log_dir: Directory ProcessManager writes log files into.
        console: Rich console for output.
        poll_interval: Seconds between size checks when following.

    """

    def __init__(
        self,
        log_dir: Path,
        console: Console | None = None,
        poll_interval: float = FOLLOW_POLL_INTERVAL,
    ) -> None:
        self.log_dir = Path(log_dir)
        self.console = console or Console()
        self.poll_interval = poll_interval

    def find_log_files(
        self,
        repo: str,
        command: str | None = None,
        known_repos: Iterable[str] = (),
    ) -> list[Path]:
        """List log files of a repository, optionally for one command.

        Args:
            repo: Repository name.
            command: Restrict to logs of one logical command.
            known_repos: Other repository names of the workspace. Files of
                a repository whose name extends ``<repo>-`` (``api-gateway``
                for ``api``) are excluded.

        """
        if not self.log_dir.is_dir():
            return []

        repo_part = safe_log_part(repo)
        prefix = f"{repo_part}-"
        shadowing = [
            f"{other}-"
            for other in {safe_log_part(name) for name in known_repos}
            if other != repo_part and other.startswith(prefix)
        ]
        if command:
            prefix += f"{safe_log_part(command)}-"
        return sorted(
            path
            for path in self.log_dir.iterdir()
            if path.is_file()
            and path.name.startswith(prefix)
            and not any(path.name.startswith(other) for other in shadowing)
            and _TIMESTAMP_SUFFIX.search(path.name)
        )

    def latest_log_file(
        self,
        repo: str,
        command: str | None = None,
        known_repos: Iterable[str] = (),
    ) -> Path | None:
        """Return the newest log file by embedded timestamp."""
        files = self.find_log_files(repo, command, known_repos)
        if not files:
            return None
        return max(files, key=extract_timestamp)

    async def show_logs(
        self,
        repo: str,
        follow: bool = False,
        lines: int | None = None,
        command: str | None = None,
        known_repos: Iterable[str] = (),
    ) -> bool:
        """Print the newest log of a repository.

        Args:
            repo: Repository name.
            follow: Keep printing appended lines until cancelled.
            lines: Only print the last N lines.
            command: Restrict to logs of one logical command.
            known_repos: Workspace repository names, used to tell ``api``
                apart from ``api-gateway``.

        Returns:
            False if no log file exists for the repository.

        """
        latest = self.latest_log_file(repo, command, known_repos)
        if latest is None:
            self.console.print(f"[yellow]No log files found for repository '{escape(repo)}'.[/yellow]")
            return False

        self.console.print(f"\n[cyan]Showing logs for {escape(repo)}: {escape(str(latest))}[/cyan]\n")
        offset = self.display_log_file(latest, lines)
        if follow:
            try:
                await self.follow_log_file(latest, offset)
            except asyncio.CancelledError:
                self.console.print("\n[yellow]Stopped following logs.[/yellow]")
                raise
        return True

    def display_log_file(self, path: Path, lines: int | None = None) -> int:
        """Print a log file and return the byte offset reached."""
        with path.open("rb") as f:
            data = f.read()
        text = data.decode("utf-8", errors="replace")
        content = [line for line in text.splitlines() if line.strip()]
        if lines is not None:
            content = list(deque(content, maxlen=lines)) if lines > 0 else []
        for line in content:
            self.console.print(format_line(line), highlight=False)
        return len(data)

    async def follow_log_file(self, path: Path, offset: int = 0) -> None:
        """Print lines appended to a log file, polling until cancelled."""
        pending = b""
        while True:
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                logger.debug("Log file %s disappeared while following", path)
                return
            if size < offset:
                # Truncated; start over.
                offset = 0
            if size > offset:
                with path.open("rb") as f:
                    f.seek(offset)
                    chunk = f.read(size - offset)
                offset += len(chunk)
                pending += chunk
                *complete, pending = pending.split(b"\n")
                for raw in complete:
                    line = raw.decode("utf-8", errors="replace")
                    if line.strip():
                        self.console.print(format_line(line), highlight=False)
            await asyncio.sleep(self.poll_interval)
