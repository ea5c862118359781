"""Install the non-workspace (system) dependencies of a workspace before building."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .errors import CommandError, InstallError
from .process import CommandRunner, run_command

logger = logging.getLogger(__name__)

NONINTERACTIVE = {"DEBIAN_FRONTEND": "noninteractive"}


def parse_rosdep_check(output: str) -> List[str]:
    """
    `rosdep check` reports missing system packages as `apt\\t<name>` lines.
    """
    names: List[str] = []
    for line in output.splitlines():
        if line.startswith("apt\t"):
            name = line[len("apt\t"):].strip()
            if name:
                names.append(name)
    return names


def update_rosdep(runner: Optional[CommandRunner] = None) -> None:
    """Refresh the rosdep cache so freshly registered sources are picked up."""
    runner = runner or run_command
    logger.info("Run rosdep update")
    proc = runner(["rosdep", "update"], check=False)
    if proc.returncode != 0:
        logger.warning("rosdep update exited with %s:\n%s", proc.returncode, proc.stderr)


def install_dependencies(src: Path, runner: Optional[CommandRunner] = None) -> List[str]:
    """
    Install everything the workspace needs that it does not build itself.

    Plain apt packages are installed in one batch first, then rosdep handles
    whatever is left (pip keys, ...). Returns the apt packages requested.
    """
    runner = runner or run_command
    src_arg = str(src)

    logger.info("Run rosdep check")
    # rosdep check exits non-zero exactly when something is missing.
    check = runner(["rosdep", "check", "--from-paths", src_arg, "--ignore-src"], check=False)
    apt_packages = parse_rosdep_check(check.stdout)

    if apt_packages:
        logger.info("Run apt update")
        update = runner(["apt", "update"], check=False)
        if update.returncode != 0:
            logger.warning("apt update exited with %s:\n%s", update.returncode, update.stderr)

        logger.info("Run apt install (%d packages)", len(apt_packages))
        try:
            runner(["apt", "install", "-y", *apt_packages], env=NONINTERACTIVE)
        except CommandError as exc:
            raise InstallError(f"Failed to do apt install: {exc}") from exc

    logger.info("Run rosdep install")
    try:
        runner(
            ["rosdep", "install", "--from-paths", src_arg, "--ignore-src", "-y"],
            env=NONINTERACTIVE,
        )
    except CommandError as exc:
        raise InstallError(f"Failed to do rosdep install: {exc}") from exc

    return apt_packages
