"""Package manager detection for Node.js repositories.

Detection order:
1. Lock files, first match wins:
   pnpm-lock.yaml -> pnpm, yarn.lock -> yarn, bun.lockb -> bun,
   package-lock.json -> npm
2. ``packageManager`` field of package.json (``"pnpm@8.15.0"``)
3. npm

best_available() then checks the detected binary is runnable and falls
back to the first installed manager of pnpm, yarn, npm, bun. Nothing in
this module raises: missing evidence degrades to npm.
"""

import json
import logging
import subprocess
from pathlib import Path

from launchpad.runner.types import PackageManager, PackageManagerInfo

logger = logging.getLogger(__name__)

LOCK_FILES: list[tuple[str, PackageManager]] = [
    ("pnpm-lock.yaml", PackageManager.PNPM),
    ("yarn.lock", PackageManager.YARN),
    ("bun.lockb", PackageManager.BUN),
    ("package-lock.json", PackageManager.NPM),
]

FALLBACK_ORDER: list[PackageManager] = [
    PackageManager.PNPM,
    PackageManager.YARN,
    PackageManager.NPM,
    PackageManager.BUN,
]

VERSION_PROBE_TIMEOUT = 10  # seconds


def read_package_json(repo_path: Path) -> dict | None:
    """Parse ``package.json`` of a repository, or None if absent/invalid."""
    pkg_path = repo_path / "package.json"
    try:
        data = json.loads(pkg_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.debug("Ignoring unreadable %s: %s", pkg_path, exc)
        return None
    return data if isinstance(data, dict) else None


def parse_package_manager_field(value: str) -> PackageManager | None:
    """Map a ``packageManager`` field (``name@version``) to a manager."""
    name = value.split("@", 1)[0].strip()
    try:
        return PackageManager(name)
    except ValueError:
        return None


def package_manager_info(manager: PackageManager, lock_file: str) -> PackageManagerInfo:
    return PackageManagerInfo(
        manager=manager,
        lock_file=lock_file,
        install_command=(manager.value, "install"),
    )


class PackageManagerDetector:
    """Chooses the package manager used to run scripts in a repository.

    Availability probes (``<manager> --version``) are remembered for the
    lifetime of the detector so a batch over many repositories spawns each
    probe at most once.
    """

    def __init__(self, probe_timeout: float = VERSION_PROBE_TIMEOUT) -> None:
        self.probe_timeout = probe_timeout
        self._availability: dict[PackageManager, bool] = {}

    def detect(self, repo_path: Path) -> PackageManagerInfo:
        """Detect the package manager from lock files and package.json.

        Args:
            repo_path: Repository checkout directory.

        Returns:
            Detected PackageManagerInfo; npm when nothing indicates otherwise.

        """
        repo_path = Path(repo_path)

        for filename, manager in LOCK_FILES:
            if (repo_path / filename).exists():
                return package_manager_info(manager, filename)

        package_json = read_package_json(repo_path)
        if package_json is not None:
            field_value = package_json.get("packageManager")
            if isinstance(field_value, str) and field_value:
                manager = parse_package_manager_field(field_value)
                if manager is not None:
                    return package_manager_info(manager, "package.json packageManager field")
                logger.debug("Unknown packageManager field %r in %s", field_value, repo_path)

        return package_manager_info(PackageManager.NPM, "default (no lock file found)")

    def is_available(self, manager: PackageManager) -> bool:
        """Return True if ``<manager> --version`` runs successfully."""
        cached = self._availability.get(manager)
        if cached is not None:
            return cached

        try:
            subprocess.run(
                [manager.value, "--version"],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.probe_timeout,
                check=True,
            )
            available = True
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("Package manager %s not available: %s", manager, exc)
            available = False

        self._availability[manager] = available
        return available

    def best_available(self, repo_path: Path) -> PackageManagerInfo:
        """Detect the package manager, substituting an installed one if needed.

        Args:
            repo_path: Repository checkout directory.

        Returns:
            The detected manager if runnable, else the first runnable
            fallback, else npm as a last resort (spawning will then fail
            with a clear error).

        """
        detected = self.detect(repo_path)
        if self.is_available(detected.manager):
            return detected

        for manager in FALLBACK_ORDER:
            if manager == detected.manager:
                continue
            if self.is_available(manager):
                logger.info(
                    "%s not installed, using %s for %s",
                    detected.manager,
                    manager,
                    repo_path,
                )
                return package_manager_info(
                    manager, f"{detected.lock_file} (using {manager} as fallback)"
                )

        logger.warning("No package manager available on PATH; defaulting to npm")
        return package_manager_info(
            PackageManager.NPM, "last resort (no package managers available)"
        )
