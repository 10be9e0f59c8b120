"""
L4 Execution — Build executor.

Runs a recipe's build steps, in order, inside one working directory.
The recipe's environment overrides are handed to each child process
only; the engine's own environment is left untouched, so nothing
leaks past the build.  The first failing step ends the build.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from formula_runner.core.errors import BuildError, StepFailed, StepTimeout
from formula_runner.core.models.recipe import Recipe
from formula_runner.core.models.run import BuildResult, StepOutcome
from formula_runner.core.services.recipe_run.execution.subprocess_runner import (
    CommandRunner,
    run_command,
)

logger = logging.getLogger(__name__)


def step_environment(
    recipe: Recipe,
    index: int,
    extra_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Overrides for build step ``index``: extra < recipe < step."""
    env: dict[str, str] = dict(extra_env or {})
    env.update(recipe.env)
    env.update(recipe.build[index].env)
    return env


def execute(
    recipe: Recipe,
    workdir: Path | str,
    *,
    runner: CommandRunner = run_command,
    timeout: float | None = None,
    extra_env: Mapping[str, str] | None = None,
) -> BuildResult:
    """Run every build step of ``recipe`` in ``workdir``.

    Args:
        recipe: The recipe to build.
        workdir: Build tree; must already exist.
        runner: Command runner (``run_command`` or a test double).
        timeout: Per-step deadline in seconds; None waits forever.
        extra_env: Overrides from the caller (e.g. PATH for build
            dependencies).  Recipe and step overrides win over these.

    Returns:
        BuildResult with one StepOutcome per step.

    Raises:
        StepFailed: A step exited non-zero; later steps did not run.
        StepTimeout: A step exceeded ``timeout``.
        BuildError: ``workdir`` is not a directory.
    """
    workdir = Path(workdir)
    if not workdir.is_dir():
        raise BuildError(f"Build directory does not exist: {workdir}")

    result = BuildResult(workdir=workdir)
    total = len(recipe.build)

    for index, step in enumerate(recipe.build):
        logger.info("Build %s [%d/%d]: %s", recipe.name, index + 1, total, step.display)

        outcome = runner(
            step.command,
            cwd=str(workdir),
            env_overrides=step_environment(recipe, index, extra_env),
            timeout=timeout,
        )
        output = outcome.get("output", "") or ""

        if outcome.get("timed_out"):
            logger.error("Build step %d of '%s' timed out", index, recipe.name)
            raise StepTimeout(index, timeout or 0, output)

        if not outcome.get("ok"):
            status = outcome.get("exit_status")
            if outcome.get("error"):
                output = f"{output}{outcome['error']}\n"
            logger.error(
                "Build step %d of '%s' failed (exit %s): %s",
                index, recipe.name, status, step.display,
            )
            raise StepFailed(index, status if status is not None else -1, output)

        result.steps.append(StepOutcome(
            index=index,
            command=step.display,
            exit_status=outcome.get("exit_status", 0) or 0,
            output=output,
            duration_ms=outcome.get("elapsed_ms", 0) or 0,
        ))

    logger.info("Build of '%s' finished: %d steps", recipe.name, total)
    return result
