"""Runtime configuration assembled from CLI flags and an optional YAML file."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import yaml

DEFAULT_OS_NAME = "ubuntu"
DEFAULT_OS_VERSION = "bionic"
DEFAULT_ROS_DISTRO = "melodic"


@dataclass
class RuntimeConfig:
    repo_path: Path
    os_name: str = DEFAULT_OS_NAME
    os_version: str = DEFAULT_OS_VERSION
    ros_distro: str = DEFAULT_ROS_DISTRO
    ignored_pkgs: List[str] = field(default_factory=list)
    only_check: Optional[List[str]] = None
    extra_repos: List[Path] = field(default_factory=list)
    rosdep_defs: List[Tuple[str, str]] = field(default_factory=list)
    src: Path = Path(".")
    jobs: int = 1
    noinstall_deps: bool = False

    @property
    def repo_roots(self) -> List[Path]:
        """Primary repository first, then the extra ones."""
        return [self.repo_path, *self.extra_repos]


def split_list(values: Union[None, str, Iterable[Any]]) -> List[str]:
    """
    Flatten list flags: `--ignore-pkgs a,b --ignore-pkgs c` -> [a, b, c].
    """
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    out: List[str] = []
    for value in values:
        out.extend(part.strip() for part in str(value).split(",") if part.strip())
    return out


def parse_jobs(value: Any) -> int:
    """Worker count; anything missing, unparseable or below 1 means 1."""
    try:
        jobs = int(str(value).strip(), 10)
    except (TypeError, ValueError):
        return 1
    return jobs if jobs >= 1 else 1


def parse_rosdep_defs(values: Iterable[str]) -> List[Tuple[str, str]]:
    """`name=deb-package` pairs; entries without `=` are ignored."""
    defs: List[Tuple[str, str]] = []
    for value in values:
        if "=" not in value:
            continue
        key, deb = value.split("=", 1)
        defs.append((key, deb))
    return defs


def load_config_file(path: Path) -> Dict[str, Any]:
    """
    Read flag defaults from YAML. Keys use the flag spelling with either
    dashes or underscores (`repo-path` / `repo_path`).
    """
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def build_config(options: Dict[str, Any]) -> RuntimeConfig:
    """
    Turn raw option values (argparse namespace vars merged over config file
    values) into a RuntimeConfig. Raises ValueError when repo_path is missing.
    """
    repo_path = options.get("repo_path")
    if not repo_path:
        raise ValueError("--repo-path is required")

    only_check = options.get("only_check")
    return RuntimeConfig(
        repo_path=Path(repo_path),
        os_name=options.get("os_name") or DEFAULT_OS_NAME,
        os_version=options.get("os_version") or DEFAULT_OS_VERSION,
        ros_distro=options.get("ros_distro") or DEFAULT_ROS_DISTRO,
        ignored_pkgs=split_list(options.get("ignore_pkgs")),
        only_check=split_list(only_check) if only_check is not None else None,
        extra_repos=[Path(p) for p in split_list(options.get("extra_repos"))],
        rosdep_defs=parse_rosdep_defs(split_list(options.get("rosdep_defs"))),
        src=Path(options.get("src") or "."),
        jobs=parse_jobs(options.get("jobs")),
        noinstall_deps=bool(options.get("noinstall_deps")),
    )
