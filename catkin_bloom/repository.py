"""
Local Debian repository: rosdep mapping, source registrations, install, index.

Layout of a repository root:
    <root>/package.yaml   rosdep key -> debian package name
    <root>/Packages       apt index over the .deb files in <root>
    <root>/*.deb          build artifacts
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

import yaml

from .errors import CommandError, InstallError
from .graph import Package
from .process import CommandRunner, run_command

logger = logging.getLogger(__name__)

MAPPING_FILE = "package.yaml"
INDEX_FILE = "Packages"

ROSDEP_SOURCES_DIR = Path(
    os.getenv("CATKIN_BLOOM_ROSDEP_SOURCES_DIR", "/etc/ros/rosdep/sources.list.d")
)
APT_SOURCES_DIR = Path(os.getenv("CATKIN_BLOOM_APT_SOURCES_DIR", "/etc/apt/sources.list.d"))


class PackageInstaller(Protocol):
    def install(self, artifacts: Sequence[Path]) -> None:
        ...

    def regenerate_index(self) -> Path:
        ...


def render_mapping(
    packages: Iterable[Package],
    os_name: str,
    ros_distro: str,
    extra_defs: Sequence[Tuple[str, str]] = (),
) -> str:
    """
    Render rosdep definitions, one `name:\\n  <os>: [<deb>]` block per entry.

    Workspace packages come first (in the order given), then `extra_defs`.
    """
    chunks: List[str] = []
    entries = [(pkg.name, pkg.debian_name(ros_distro)) for pkg in packages]
    entries.extend(extra_defs)
    for key, deb in entries:
        chunks.append(
            yaml.safe_dump({key: {os_name: [deb]}}, default_flow_style=None, sort_keys=False)
        )
    return "".join(chunks)


def write_mapping(
    repo_root: Path,
    packages: Iterable[Package],
    os_name: str,
    ros_distro: str,
    extra_defs: Sequence[Tuple[str, str]] = (),
) -> Path:
    """Regenerate <repo_root>/package.yaml from scratch."""
    path = Path(repo_root) / MAPPING_FILE
    path.write_text(render_mapping(packages, os_name, ros_distro, extra_defs), encoding="utf-8")
    logger.info("Wrote rosdep mapping to %s", path)
    return path


def registration_name(index: int, root: Path) -> str:
    return f"99-catkin-bloom-{index}-{Path(root).name or 'unknown'}.list"


def register_repositories(
    roots: Sequence[Path],
    rosdep_sources_dir: Optional[Path] = None,
    apt_sources_dir: Optional[Path] = None,
) -> List[Path]:
    """
    Point rosdep and apt at every repository root.

    `roots[0]` is the primary repository; the rest are extra repositories
    built by earlier runs. Existing registration files are overwritten.
    """
    rosdep_dir = Path(rosdep_sources_dir or ROSDEP_SOURCES_DIR)
    apt_dir = Path(apt_sources_dir or APT_SOURCES_DIR)

    written: List[Path] = []
    for i, root in enumerate(roots):
        try:
            canonical = Path(root).resolve(strict=True)
        except OSError as exc:
            raise InstallError(f"Repository path {root} does not exist: {exc}") from exc
        name = registration_name(i, canonical)

        rosdep_list = rosdep_dir / name
        rosdep_list.write_text(f"yaml file://{canonical}/{MAPPING_FILE}\n", encoding="utf-8")

        apt_list = apt_dir / name
        apt_list.write_text(f"deb [trusted=yes] file://{canonical} /\n", encoding="utf-8")

        logger.debug("Registered %s (%s, %s)", canonical, rosdep_list, apt_list)
        written.extend([rosdep_list, apt_list])
    return written


class DebRepository:
    """Installs .deb batches with dpkg and keeps the apt index of a root current."""

    def __init__(self, root: Path, runner: Optional[CommandRunner] = None):
        self.root = Path(root)
        self.runner = runner or run_command

    def install(self, artifacts: Sequence[Path]) -> None:
        if not artifacts:
            logger.info("Nothing to install")
            return
        try:
            self.runner(["dpkg", "-i", *[str(a) for a in artifacts]])
        except CommandError as exc:
            raise InstallError(f"Failed to install built packages: {exc}") from exc

    def regenerate_index(self) -> Path:
        """Rewrite <root>/Packages from the .deb files currently in the root."""
        try:
            proc = self.runner(["dpkg-scanpackages", "-m", "."], cwd=self.root)
        except CommandError as exc:
            raise InstallError(f"Failed to generate package index: {exc}") from exc

        index = self.root / INDEX_FILE
        index.write_text(proc.stdout, encoding="utf-8")
        return index
