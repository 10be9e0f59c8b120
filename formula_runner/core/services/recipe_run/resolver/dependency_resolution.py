"""
L2 Resolver — Dependency resolution.

Turns a recipe's declared dependencies into an ordered installation
plan.  Locations come from the installed set first, then from the
host's lookup collaborator; nothing is installed or modified here.
"""

from __future__ import annotations

import logging
import shutil
from collections import deque
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

from formula_runner.core.errors import Cycle, Unsatisfiable
from formula_runner.core.models.plan import (
    InstallationPlan,
    InstalledLocation,
    ResolvedDependency,
)
from formula_runner.core.models.recipe import Dependency, Recipe
from formula_runner.core.services.recipe_run.domain.dag import find_cycle, topological_order
from formula_runner.core.services.recipe_run.domain.version_constraint import (
    check_version_constraint,
)

logger = logging.getLogger(__name__)


class DependencyLookup(Protocol):
    """Host-supplied repository lookup."""

    def lookup(self, name: str) -> InstalledLocation | None:
        """Return where ``name`` lives, or None if the host has no such package."""


class MappingLookup:
    """Lookup over a fixed ``name → location`` mapping."""

    def __init__(self, packages: Mapping[str, InstalledLocation]):
        self._packages = dict(packages)

    def lookup(self, name: str) -> InstalledLocation | None:
        return self._packages.get(name)


class PathLookup:
    """Lookup that treats an executable on PATH as an installed package."""

    def __init__(self, path: str | None = None):
        self._path = path

    def lookup(self, name: str) -> InstalledLocation | None:
        found = shutil.which(name, path=self._path)
        if found is None:
            return None
        return InstalledLocation(name=name, path=Path(found))


def resolve(
    recipe: Recipe,
    installed: Mapping[str, InstalledLocation] | None = None,
    lookup: DependencyLookup | None = None,
) -> InstallationPlan:
    """Resolve ``recipe``'s dependencies into an installation plan.

    The graph holds the recipe itself plus every declared dependency,
    extended through each location's own ``depends_on``.  Transitive
    dependencies inherit the kind of the dependency that pulled them
    in; when a name is reached twice the first sighting wins.

    Args:
        recipe: The parsed recipe.
        installed: Packages already present, by name.
        lookup: Fallback for names not in ``installed``.

    Returns:
        Plan in install order: for every edge "A depends on B", B comes
        before A.  Ties follow declaration order.

    Raises:
        Unsatisfiable: A name cannot be located, or its known version
            violates the declared constraint.
        Cycle: The graph (including the recipe itself) has a cycle.
    """
    installed = installed or {}
    root = recipe.name

    nodes: list[str] = [root]
    requires: dict[str, list[str]] = {root: [d.name for d in recipe.dependencies]}
    declared: dict[str, Dependency] = {}
    locations: dict[str, InstalledLocation] = {}
    transitive: set[str] = set()

    queue: deque[tuple[Dependency, bool]] = deque((d, False) for d in recipe.dependencies)
    while queue:
        dep, is_transitive = queue.popleft()
        if dep.name in declared or dep.name == root:
            continue

        location = _locate(dep.name, installed, lookup)
        if location is None:
            raise Unsatisfiable(dep.name, "not installed and not found by lookup")

        if dep.version and location.version:
            check = check_version_constraint(location.version, dep.version)
            if not check["valid"]:
                raise Unsatisfiable(dep.name, check["message"])

        declared[dep.name] = dep
        locations[dep.name] = location
        nodes.append(dep.name)
        requires[dep.name] = list(location.depends_on)
        if is_transitive:
            transitive.add(dep.name)

        for child in location.depends_on:
            queue.append((Dependency(name=child, kind=dep.kind), True))

    order, cyclic = topological_order(nodes, requires)
    if cyclic:
        members = find_cycle(nodes, requires) or cyclic
        logger.warning("Dependency cycle in '%s': %s", root, " → ".join(members))
        raise Cycle(members)

    entries = tuple(
        ResolvedDependency(
            dependency=declared[name],
            location=locations[name],
            transitive=name in transitive,
        )
        for name in order
        if name != root
    )
    logger.info("Resolved %d dependencies for '%s'", len(entries), root)
    return InstallationPlan(recipe=root, entries=entries)


def _locate(
    name: str,
    installed: Mapping[str, InstalledLocation],
    lookup: DependencyLookup | None,
) -> InstalledLocation | None:
    if name in installed:
        return installed[name]
    if lookup is not None:
        found = lookup.lookup(name)
        if found is not None:
            logger.debug("Located '%s' via lookup at %s", name, found.path)
        return found
    return None
