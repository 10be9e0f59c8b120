"""
Installation plan models — what the resolver hands to the build.

An ``InstalledLocation`` is whatever the host package manager knows
about an already-available package.  The resolver turns the recipe's
declared dependencies into an ordered ``InstallationPlan`` of them.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from formula_runner.core.models.recipe import Dependency


class InstalledLocation(BaseModel):
    """A package that exists somewhere on this machine."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: Path
    version: str | None = None
    depends_on: tuple[str, ...] = ()

    @property
    def bin_dir(self) -> Path:
        """Directory to put on PATH for this package.

        Executables resolved via PATH point at a file; prefixes point at
        a directory with a ``bin`` inside.
        """
        if self.path.is_file():
            return self.path.parent
        return self.path / "bin"


class ResolvedDependency(BaseModel):
    """A declared (or transitive) dependency bound to a location."""

    model_config = ConfigDict(frozen=True)

    dependency: Dependency
    location: InstalledLocation
    transitive: bool = False

    @property
    def name(self) -> str:
        return self.dependency.name


class InstallationPlan(BaseModel):
    """Dependencies in install order: every entry precedes its dependents."""

    model_config = ConfigDict(frozen=True)

    recipe: str
    entries: tuple[ResolvedDependency, ...] = Field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def names(self) -> list[str]:
        return [e.name for e in self.entries]

    def build_path_entries(self) -> list[str]:
        """PATH directories contributed by build-time dependencies."""
        seen: list[str] = []
        for entry in self.entries:
            if entry.dependency.kind != "build":
                continue
            bin_dir = str(entry.location.bin_dir)
            if bin_dir not in seen:
                seen.append(bin_dir)
        return seen

    def to_dict(self) -> dict:
        return {
            "recipe": self.recipe,
            "entries": [
                {
                    "name": e.name,
                    "kind": e.dependency.kind,
                    "version": e.location.version,
                    "path": str(e.location.path),
                    "transitive": e.transitive,
                }
                for e in self.entries
            ],
        }
