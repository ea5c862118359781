"""Exception types raised by the build pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from .scheduler import RunReport


class CatkinBloomError(Exception):
    """Base class for every error that aborts a run."""


class ScanError(CatkinBloomError):
    """A package manifest could not be read or parsed."""


class CommandError(CatkinBloomError):
    """An external command exited with a non-zero status."""

    def __init__(self, args: Sequence[str], returncode: int, stdout: str = "", stderr: str = ""):
        self.cmd = list(args)
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        super().__init__(
            f"`{' '.join(self.cmd)}` exited with {returncode}\n"
            f"stdout:\n{self.stdout}\n\nstderr:\n{self.stderr}"
        )


class BuildError(CatkinBloomError):
    """The build backend failed for a single package."""

    def __init__(self, package: str, message: str, stdout: str = "", stderr: str = ""):
        self.package = package
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        text = f"{package}: {message}"
        if self.stdout or self.stderr:
            text += f"\nstdout:\n{self.stdout}\n\nstderr:\n{self.stderr}"
        super().__init__(text)


class InstallError(CatkinBloomError):
    """Installing artifacts or system dependencies, or indexing the repository, failed."""


class LayerFailedError(CatkinBloomError):
    """At least one package of a layer failed; no further layers are attempted."""

    def __init__(self, layer_index: int, failed: List[str], report: Optional["RunReport"] = None):
        self.layer_index = layer_index
        self.failed = sorted(failed)
        # RunReport covering every layer attempted, including this one.
        self.report = report
        super().__init__(
            f"Error building layer {layer_index}: failed packages: {', '.join(self.failed) or '(none)'}"
        )
