"""End-to-end run: scan, order, register, install deps, build, index."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import system_deps
from .backend import BloomBackend, BuildBackend, Target
from .config import RuntimeConfig
from .graph import prune_to_workspace
from .layering import LayerPlan, compute_layers
from .manifest import scan_workspace
from .process import CommandRunner, run_command
from .repository import DebRepository, PackageInstaller, register_repositories, write_mapping
from .scheduler import LayerResult, LayerScheduler, RunReport

logger = logging.getLogger(__name__)


@dataclass
class RunOutcome:
    plan: LayerPlan
    report: RunReport
    index_path: Path


def plan_workspace(config: RuntimeConfig) -> LayerPlan:
    """Scan the source tree and order its packages into layers."""
    packages = scan_workspace(config.src, config.ignored_pkgs)
    prune_to_workspace(packages)
    logger.debug("Workspace: %s", {n: sorted(p.depends) for n, p in packages.items()})
    return compute_layers(packages)


def run(
    config: RuntimeConfig,
    backend: Optional[BuildBackend] = None,
    repository: Optional[PackageInstaller] = None,
    runner: Optional[CommandRunner] = None,
    rosdep_sources_dir: Optional[Path] = None,
    apt_sources_dir: Optional[Path] = None,
    show_progress: bool = True,
) -> RunOutcome:
    """
    Execute a whole run. Errors propagate as CatkinBloomError subclasses
    (or OSError for local filesystem problems); a LayerFailedError leaves
    everything built and installed before the failing layer in place.
    """
    runner = runner or run_command

    # Step 1 - collect and order the workspace
    print("[catkin-bloom] Collecting packages")
    plan = plan_workspace(config)
    if plan.cyclic:
        print(f"[catkin-bloom] WARN: skipping {len(plan.cyclic)} package(s) caught in cycles: "
              f"{', '.join(sorted(plan.cyclic))}")

    # Step 2 - repository metadata
    repo_root = Path(config.repo_path)
    repo_root.mkdir(parents=True, exist_ok=True)

    write_mapping(repo_root, plan.packages(), config.os_name, config.ros_distro, config.rosdep_defs)
    register_repositories(config.repo_roots, rosdep_sources_dir, apt_sources_dir)

    print("[catkin-bloom] Run rosdep update")
    system_deps.update_rosdep(runner)

    # Step 3 - system dependencies
    if not config.noinstall_deps:
        print("[catkin-bloom] Installing dependencies")
        system_deps.install_dependencies(config.src, runner)

    # Step 4 - build layer by layer
    target = Target(config.os_name, config.os_version, config.ros_distro)
    backend = backend or BloomBackend(repo_root, runner)
    repository = repository or DebRepository(repo_root, runner)

    def _reindex(layer: LayerResult) -> None:
        logger.debug("Layer %d installed, refreshing index", layer.index)
        repository.regenerate_index()

    print(f"[catkin-bloom] Building packages ({len(plan)})")
    scheduler = LayerScheduler(
        backend,
        repository,
        target,
        jobs=config.jobs,
        only_check=config.only_check,
        show_progress=show_progress,
        on_layer_installed=_reindex,
    )
    report = scheduler.run(plan.layers)

    # Step 5 - final index
    print("[catkin-bloom] Generating Package manifest")
    index_path = repository.regenerate_index()

    return RunOutcome(plan=plan, report=report, index_path=index_path)
