"""Partition the pruned package table into dependency layers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Set

from .graph import Package

logger = logging.getLogger(__name__)


@dataclass
class LayerPlan:
    """
    Build plan produced by compute_layers.

    `layers[i]` holds packages whose workspace dependencies all live in
    `layers[:i]`; members of one layer can be built in parallel. `cyclic`
    maps every package that could not be ordered to the dependencies it was
    still waiting on.
    """

    layers: List[List[Package]] = field(default_factory=list)
    cyclic: Dict[str, Set[str]] = field(default_factory=dict)

    def packages(self) -> Iterator[Package]:
        for layer in self.layers:
            yield from layer

    def __len__(self) -> int:
        return sum(len(layer) for layer in self.layers)


def compute_layers(packages: Dict[str, Package]) -> LayerPlan:
    """
    Repeatedly drain every package with no remaining dependencies.

    Expects a table already passed through prune_to_workspace. The input
    packages are not modified; dependency sets are copied into a working
    table that shrinks as layers are drained. Whatever is left when a pass
    drains nothing belongs to (or depends on) a cycle.
    """
    remaining: Dict[str, Set[str]] = {name: set(pkg.depends) for name, pkg in packages.items()}
    plan = LayerPlan()

    while True:
        drained = sorted(name for name, deps in remaining.items() if not deps)
        if not drained:
            break

        logger.debug("Layer %d: %s", len(plan.layers), ", ".join(drained))
        for name in drained:
            del remaining[name]

        drained_names = set(drained)
        for deps in remaining.values():
            deps -= drained_names

        plan.layers.append([packages[name] for name in drained])

    if remaining:
        plan.cyclic = {name: set(deps) for name, deps in remaining.items()}
        logger.warning(
            "Found packages with cycles: %s",
            "; ".join(
                f"{name} -> {', '.join(sorted(deps))}" for name, deps in sorted(remaining.items())
            ),
        )

    return plan
