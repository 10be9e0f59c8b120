"""
Engine settings — loaded from formula-runner.yml.

Everything here has a default, so a missing config file is the same
as an empty one.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from formula_runner.core.models.plan import InstalledLocation


class InstalledPackage(BaseModel):
    """An entry of the ``installed:`` section."""

    path: Path
    version: str | None = None
    depends_on: list[str] = Field(default_factory=list)


class EngineSettings(BaseModel):
    """Knobs the host can set without touching formulas."""

    prefix: Path | None = None            # default install prefix
    workdir_root: Path | None = None      # parent dir for build trees
    state_dir: Path | None = None         # audit ledger location

    build_timeout: float | None = None    # per step; None = wait forever
    verify_timeout: float = 60.0          # per assertion
    verify_policy: Literal["report", "rollback"] = "report"

    use_path_lookup: bool = True
    installed: dict[str, InstalledPackage] = Field(default_factory=dict)
    variables: dict[str, str] = Field(default_factory=dict)

    def installed_locations(self) -> dict[str, InstalledLocation]:
        """The ``installed:`` section as resolver input."""
        return {
            name: InstalledLocation(
                name=name,
                path=pkg.path,
                version=pkg.version,
                depends_on=tuple(pkg.depends_on),
            )
            for name, pkg in self.installed.items()
        }
