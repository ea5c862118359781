from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import yaml

from . import __version__, pipeline
from .config import build_config, load_config_file
from .errors import CatkinBloomError, LayerFailedError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="catkin-bloom",
        description="Build every ROS package of a workspace into a local Debian repository.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--os-name", help="Target OS name (default: ubuntu).")
    p.add_argument("--os-version", help="Target OS release codename (default: bionic).")
    p.add_argument("--ros-distro", help="ROS distribution (default: melodic).")
    p.add_argument(
        "--ignore-pkgs", nargs="+", action="extend",
        help="Packages to leave out of the workspace (comma or space separated).",
    )
    p.add_argument(
        "--only-check", nargs="+", action="extend",
        help="Only build these packages; the rest are assumed already built.",
    )
    p.add_argument("-r", "--repo-path", help="Output repository directory (required).")
    p.add_argument(
        "-n", "--noinstall-deps", action="store_true", default=None,
        help="Skip installing system dependencies with apt/rosdep.",
    )
    p.add_argument(
        "-D", "--rosdep-defs", nargs="+", action="extend",
        help="Extra rosdep definitions as name=debian-package.",
    )
    p.add_argument(
        "-e", "--extra-repos", nargs="+", action="extend",
        help="Additional repository roots to register alongside --repo-path.",
    )
    p.add_argument("-j", "--jobs", help="Parallel builds per layer (default: 1).")
    p.add_argument("--config", help="YAML file with defaults for any of the options above.")
    p.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    p.add_argument("src", nargs="?", help="Workspace source directory (default: .).")
    return p


def merge_options(args: argparse.Namespace) -> Dict[str, Any]:
    """Config file values, overridden by every flag given on the command line."""
    options: Dict[str, Any] = {}
    if args.config:
        options.update(load_config_file(Path(args.config)))
    for key, value in vars(args).items():
        if key in {"config", "verbose", "no_progress"}:
            continue
        if value is not None:
            options[key] = value
    return options


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    setup_logging(args.verbose)

    try:
        config = build_config(merge_options(args))
    except (OSError, ValueError, yaml.YAMLError) as e:
        parser.error(str(e))

    logger.debug("%s", config)

    try:
        outcome = pipeline.run(config, show_progress=not args.no_progress)
    except LayerFailedError as e:
        print(f"[catkin-bloom] ERROR: {e}", file=sys.stderr)
        if e.report is not None:
            done = [layer.index for layer in e.report.layers if layer.installed]
            print(
                f"[catkin-bloom] Repository left at layer {done[-1] if done else '(none)'}",
                file=sys.stderr,
            )
        return 1
    except (CatkinBloomError, OSError) as e:
        print(f"[catkin-bloom] ERROR: {e}", file=sys.stderr)
        return 1

    print(
        f"[catkin-bloom] Done: {len(outcome.report.built)} built, "
        f"{len(outcome.plan.cyclic)} skipped (cycles), index at {outcome.index_path}"
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
