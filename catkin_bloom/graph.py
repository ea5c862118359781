"""Workspace package table and dependency pruning."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Set


@dataclass
class Package:
    name: str
    path: Path
    depends: Set[str] = field(default_factory=set)

    def debian_name(self, ros_distro: str) -> str:
        return debian_package_name(self.name, ros_distro)


def debian_package_name(name: str, ros_distro: str) -> str:
    """`my_pkg` on melodic -> `ros-melodic-my-pkg`, the name bloom gives the .deb."""
    return f"ros-{ros_distro}-{name.replace('_', '-')}"


def prune_to_workspace(packages: Dict[str, Package]) -> Dict[str, Package]:
    """
    Drop every dependency that is not itself a workspace package.

    System dependencies (cmake, boost, ...) never become edges; after this
    every name in a depends set is a key of `packages`. Mutates in place and
    returns the same table for chaining.
    """
    workspace = set(packages)
    for pkg in packages.values():
        pkg.depends &= workspace
    return packages
