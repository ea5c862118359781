"""
Layer-by-layer parallel build driver.

Layers run strictly one after another: a layer is built on a bounded thread
pool, and only once every unit has finished and the layer's artifacts are
installed does the next layer start, since bloom resolves in-workspace
dependencies as installed system packages.

A single run-wide failure flag stops *unstarted* units once any build fails.
Units already running are never interrupted, and backend calls have no
timeout: a hung build blocks its worker (and the layer) indefinitely.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Collection, List, Optional, Sequence, Tuple

from tqdm import tqdm

from .backend import BuildBackend, Target
from .errors import LayerFailedError
from .graph import Package
from .repository import PackageInstaller

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    name: str
    artifacts: List[Path] = field(default_factory=list)
    error: Optional[str] = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped


@dataclass
class LayerResult:
    index: int
    results: List[BuildResult] = field(default_factory=list)
    filtered: List[str] = field(default_factory=list)
    installed: bool = False

    @property
    def artifacts(self) -> List[Path]:
        return [a for r in self.results for a in r.artifacts]

    @property
    def failed(self) -> List[str]:
        return [r.name for r in self.results if r.error is not None]


@dataclass
class RunReport:
    layers: List[LayerResult] = field(default_factory=list)

    @property
    def built(self) -> List[str]:
        return [r.name for layer in self.layers for r in layer.results if r.ok]

    @property
    def failed(self) -> List[str]:
        return [name for layer in self.layers for name in layer.failed]

    @property
    def skipped(self) -> List[str]:
        return [r.name for layer in self.layers for r in layer.results if r.skipped]

    @property
    def artifacts(self) -> List[Path]:
        return [a for layer in self.layers if layer.installed for a in layer.artifacts]


class LayerScheduler:
    """
    Build ordered layers with `backend`, installing each one through `installer`.

    `only_check` restricts which packages are built (None builds everything);
    filtered packages are neither built nor treated as failures.
    `on_layer_installed` is called after each successful install, e.g. to
    refresh the repository index.
    """

    def __init__(
        self,
        backend: BuildBackend,
        installer: PackageInstaller,
        target: Target,
        jobs: int = 1,
        only_check: Optional[Collection[str]] = None,
        show_progress: bool = True,
        on_layer_installed: Optional[Callable[[LayerResult], None]] = None,
    ):
        self.backend = backend
        self.installer = installer
        self.target = target
        self.jobs = max(1, int(jobs))
        self.only_check = set(only_check) if only_check is not None else None
        self.show_progress = show_progress
        self.on_layer_installed = on_layer_installed

    def eligible(self, layer: Sequence[Package]) -> Tuple[List[Package], List[str]]:
        if self.only_check is None:
            return list(layer), []
        keep = [p for p in layer if p.name in self.only_check]
        dropped = [p.name for p in layer if p.name not in self.only_check]
        return keep, dropped

    def run(self, layers: Sequence[Sequence[Package]]) -> RunReport:
        """
        Build every layer in order. Raises LayerFailedError (carrying the
        report so far) as soon as a layer finishes with a failed unit;
        installs from earlier layers are left in place.
        """
        report = RunReport()
        failed = threading.Event()
        total = sum(len(self.eligible(layer)[0]) for layer in layers)

        with ThreadPoolExecutor(max_workers=self.jobs, thread_name_prefix="catkin-bloom") as pool, \
                tqdm(total=total, desc="Building packages", unit="pkg", disable=not self.show_progress) as bar:
            for index, layer in enumerate(layers):
                if self.show_progress:
                    bar.write(f"Layer {index}")
                result = self._run_layer(pool, bar, failed, index, layer)
                report.layers.append(result)

                if failed.is_set():
                    raise LayerFailedError(index, result.failed, report=report)

                self.installer.install(result.artifacts)
                result.installed = True
                if self.on_layer_installed is not None:
                    self.on_layer_installed(result)

        return report

    def _run_layer(
        self,
        pool: ThreadPoolExecutor,
        bar: tqdm,
        failed: threading.Event,
        index: int,
        layer: Sequence[Package],
    ) -> LayerResult:
        members, filtered = self.eligible(layer)
        logger.info("Layer %d: building %d package(s)", index, len(members))
        if filtered:
            logger.debug("Layer %d: not checking %s", index, ", ".join(filtered))

        futures: List[Future] = [pool.submit(self._build_one, pkg, failed) for pkg in members]
        for fut in as_completed(futures):
            res = fut.result()
            if not res.skipped:
                bar.update(1)

        return LayerResult(
            index=index,
            results=[fut.result() for fut in futures],
            filtered=filtered,
        )

    def _build_one(self, package: Package, failed: threading.Event) -> BuildResult:
        # Checked when the unit gets a worker, not when it was queued.
        if failed.is_set():
            logger.debug("Skipping %s: an earlier build failed", package.name)
            return BuildResult(name=package.name, skipped=True)

        try:
            artifacts = self.backend.build(package, self.target)
        except Exception as exc:
            failed.set()
            logger.error("%s: %s", package.name, exc)
            return BuildResult(name=package.name, error=str(exc))

        logger.info("Built %s (%d artifact(s))", package.name, len(artifacts))
        return BuildResult(name=package.name, artifacts=list(artifacts))
