"""Thin wrapper around subprocess for the external tools we drive."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Union

from .errors import CommandError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# (args, cwd, env, check) -> CompletedProcess; tests substitute their own.
CommandRunner = Callable[..., "subprocess.CompletedProcess[str]"]


def run_command(
    args: Sequence[PathLike],
    *,
    cwd: Optional[PathLike] = None,
    env: Optional[Dict[str, str]] = None,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """
    Run a command to completion, capturing stdout/stderr as text.
    Bytes that are not valid UTF-8 are replaced rather than raising.

    `env` entries are layered on top of the current environment. With
    `check=True` a non-zero exit raises CommandError carrying both streams.
    """
    argv = [str(a) for a in args]
    merged_env = None
    if env:
        merged_env = {**os.environ, **env}

    logger.debug("run: %s (cwd=%s)", " ".join(argv), cwd or ".")
    proc = subprocess.run(
        argv,
        cwd=str(cwd) if cwd is not None else None,
        env=merged_env,
        text=True,
        encoding="utf-8",
        errors="replace",
        capture_output=True,
        check=False,
    )
    logger.debug("stdout:\n%s\n\nstderr:\n%s", proc.stdout, proc.stderr)

    if check and proc.returncode != 0:
        raise CommandError(argv, proc.returncode, proc.stdout, proc.stderr)
    return proc
