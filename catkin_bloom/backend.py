"""
Build backends: turn one source package into .deb files.

The scheduler only needs `build(package, target) -> [artifact paths]`.
BloomBackend implements it with bloom-generate + debian/rules; tests plug in
scripted fakes.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol

from .errors import BuildError, CommandError
from .graph import Package
from .process import CommandRunner, run_command

logger = logging.getLogger(__name__)

BUILD_TESTING_MARKER = "$(BUILD_TESTING_ARG)"


@dataclass(frozen=True)
class Target:
    """The platform every package in a run is built for."""

    os_name: str
    os_version: str
    ros_distro: str


class BuildBackend(Protocol):
    def build(self, package: Package, target: Target) -> List[Path]:
        """Build `package`, returning artifact paths; raise on failure."""
        ...


def parse_scanpackages_filenames(output: str) -> List[str]:
    """Pull the `Filename:` entries out of dpkg-scanpackages output."""
    names: List[str] = []
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("Filename: "):
            names.append(line[len("Filename: "):].strip())
    return names


class BloomBackend:
    """
    Build a ROS package into Debian binaries with bloom.

    Every call works in its own temporary directory; only the final copy
    touches `output_dir`, and the copied names come from the package's own
    .deb filenames so concurrent builds never collide.
    """

    def __init__(self, output_dir: Path, runner: Optional[CommandRunner] = None):
        self.output_dir = Path(output_dir)
        self.runner = runner or run_command

    def build(self, package: Package, target: Target) -> List[Path]:
        source = Path(package.path).resolve()

        with tempfile.TemporaryDirectory(prefix=f"catkin-bloom-{package.name}-") as tmp:
            build_root = Path(tmp)
            build_dir = build_root / "build"
            build_dir.mkdir()

            self._run(
                package,
                "bloom-generate failed!",
                [
                    "bloom-generate", "rosdebian",
                    "--os-name", target.os_name,
                    "--os-version", target.os_version,
                    "--ros-distro", target.ros_distro,
                    str(source),
                ],
                cwd=build_dir,
            )

            patch_rules(build_dir / "debian" / "rules", source)

            self._run(
                package,
                f"Failed to do {package.name}",
                ["fakeroot", "debian/rules", "binary"],
                cwd=build_dir,
            )

            scan = self._run(
                package,
                "dpkg-scanpackages failed",
                ["dpkg-scanpackages", "-m", "."],
                cwd=build_root,
            )

            artifacts: List[Path] = []
            for rel in parse_scanpackages_filenames(scan.stdout):
                origin = build_root / rel
                target_path = self.output_dir / rel
                target_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(origin, target_path)
                logger.debug("Copied %s to %s", origin, target_path)
                artifacts.append(target_path)

        return artifacts

    def _run(self, package: Package, message: str, args: List[str], cwd: Path):
        try:
            return self.runner(args, cwd=cwd)
        except CommandError as exc:
            raise BuildError(package.name, message, exc.stdout, exc.stderr) from exc


def patch_rules(rules_path: Path, source: Path) -> None:
    """
    bloom generates debian/ outside the source tree, so point the CMake call
    in debian/rules back at the real sources.
    """
    rules = rules_path.read_text(encoding="utf-8")
    rules = rules.replace(BUILD_TESTING_MARKER, f"{source} {BUILD_TESTING_MARKER}")
    rules_path.write_text(rules, encoding="utf-8")
