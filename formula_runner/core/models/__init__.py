"""
Domain models — recipe, plan, run results and settings.

All models are re-exported here for convenient access:

    from formula_runner.core.models import Recipe, InstallationPlan, RunReport
"""

from formula_runner.core.models.plan import (
    InstallationPlan,
    InstalledLocation,
    ResolvedDependency,
)
from formula_runner.core.models.recipe import (
    BuildStep,
    Dependency,
    InstallAction,
    Recipe,
    TestAssertion,
)
from formula_runner.core.models.run import (
    AssertionResult,
    BuildResult,
    RunReport,
    RunState,
    StagedFile,
    StagedSet,
    StepOutcome,
    VerificationReport,
)
from formula_runner.core.models.settings import EngineSettings, InstalledPackage

__all__ = [
    # run.py
    "AssertionResult",
    "BuildResult",
    # recipe.py
    "BuildStep",
    "Dependency",
    # settings.py
    "EngineSettings",
    "InstallAction",
    # plan.py
    "InstallationPlan",
    "InstalledLocation",
    "InstalledPackage",
    "Recipe",
    "ResolvedDependency",
    "RunReport",
    "RunState",
    "StagedFile",
    "StagedSet",
    "StepOutcome",
    "TestAssertion",
    "VerificationReport",
]
