"""Discover ROS packages by scanning a source tree for package.xml manifests."""

from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Set, Tuple

from .errors import ScanError
from .graph import Package

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.xml"


def find_manifests(root: Path) -> Iterator[Path]:
    """Yield every package.xml below `root`, in a stable order."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        if MANIFEST_NAME in filenames:
            yield Path(dirpath) / MANIFEST_NAME


def _is_dependency_tag(tag: str) -> bool:
    # build_depend, exec_depend, test_depend, buildtool_depend, doc_depend,
    # build_export_depend, run_depend, depend, ...
    return tag.endswith("depend")


def read_manifest(path: Path) -> Tuple[Optional[str], Set[str]]:
    """
    Stream one manifest and return (name, raw dependency names).

    Dependency categories are collapsed into a single set. The name is None
    when the manifest has no <name> element.
    """
    name: Optional[str] = None
    depends: Set[str] = set()
    try:
        for _, elem in ET.iterparse(str(path), events=("end",)):
            tag = elem.tag.rsplit("}", 1)[-1]
            if tag == "name" and name is None:
                name = (elem.text or "").strip()
            elif _is_dependency_tag(tag):
                dep = (elem.text or "").strip()
                if dep:
                    depends.add(dep)
    except (ET.ParseError, OSError) as exc:
        raise ScanError(f"Failed to read manifest {path}: {exc}") from exc
    return name, depends


def scan_workspace(root: Path, ignored: Iterable[str] = ()) -> Dict[str, Package]:
    """
    Build the raw package table for a workspace.

    Ignored packages are left out entirely; edges pointing at them are removed
    later by prune_to_workspace like any other non-workspace dependency.
    Manifests without a <name> are skipped (logged at warning level).
    """
    if not Path(root).is_dir():
        raise ScanError(f"Source directory {root} does not exist")

    ignored = set(ignored)
    packages: Dict[str, Package] = {}

    for manifest in find_manifests(root):
        logger.debug("Found %s", manifest)
        name, depends = read_manifest(manifest)

        if name is None:
            logger.warning("Skipping %s: no <name> element", manifest)
            continue
        if not name:
            logger.warning("Skipping %s: <name> element is empty", manifest)
            continue
        if name in ignored:
            logger.debug("Ignoring %s", name)
            continue
        if name in packages:
            logger.warning(
                "Duplicate package %s in %s (already found in %s); keeping the latter",
                name, manifest.parent, packages[name].path,
            )

        packages[name] = Package(name=name, path=manifest.parent, depends=depends)

    return packages
