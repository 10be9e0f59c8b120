"""
L4 Execution — Post-install verification.

Runs a recipe's smoke tests against the freshly staged files and
matches their combined output.  Verification is diagnostic: every
assertion runs and gets an entry in the report, whatever happened to
the ones before it.  Nothing here raises for a failing test.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from collections.abc import Iterable
from pathlib import Path

from formula_runner.core.models.recipe import TestAssertion
from formula_runner.core.models.run import AssertionResult, StagedSet, VerificationReport
from formula_runner.core.services.recipe_run.execution.subprocess_runner import (
    CommandRunner,
    run_command,
)

logger = logging.getLogger(__name__)


def matches(assertion: TestAssertion, output: str) -> bool:
    """Whether ``output`` satisfies the assertion's pattern."""
    if assertion.match == "regex":
        return re.search(assertion.expect, output, re.MULTILINE) is not None
    return assertion.expect in output


def resolve_invocation(prefix: Path, argv: tuple[str, ...]) -> list[str]:
    """Point a relative ``argv[0]`` at the staged copy when there is one.

    ``bin/tool`` becomes ``<prefix>/bin/tool``; a bare ``tool`` is left
    alone and found through PATH (which has ``<prefix>/bin`` first).
    """
    first, rest = argv[0], list(argv[1:])
    candidate = prefix / first
    if not os.path.isabs(first) and "/" in first and candidate.exists():
        return [str(candidate), *rest]
    return [first, *rest]


def verify(
    staged: StagedSet,
    assertions: Iterable[TestAssertion],
    *,
    runner: CommandRunner = run_command,
    timeout: float | None = 60.0,
) -> VerificationReport:
    """Run every assertion and collect the results.

    Each test runs in a scratch directory with ``<prefix>/bin`` first
    on PATH.

    Args:
        staged: What the stager put into the prefix.
        assertions: Smoke tests, in declaration order.
        runner: Command runner (``run_command`` or a test double).
        timeout: Per-assertion deadline in seconds.

    Returns:
        Report with exactly one entry per assertion.
    """
    report = VerificationReport()
    env = {"PATH": f"{staged.prefix / 'bin'}{os.pathsep}$PATH"}

    with tempfile.TemporaryDirectory(prefix="formula-test-") as scratch:
        for index, assertion in enumerate(assertions):
            result = _run_one(index, assertion, staged.prefix, scratch, env, runner, timeout)
            report.results.append(result)
            logger.info(
                "%s test %d: %s",
                "✓" if result.passed else "✗", index, assertion.display,
            )

    if not report.all_passed:
        logger.warning(
            "Verification of '%s': %d of %d assertions failed",
            staged.owner, report.failed, report.total,
        )
    return report


def _run_one(
    index: int,
    assertion: TestAssertion,
    prefix: Path,
    cwd: str,
    env: dict[str, str],
    runner: CommandRunner,
    timeout: float | None,
) -> AssertionResult:
    argv = resolve_invocation(prefix, assertion.run)
    outcome = runner(argv, cwd=cwd, env_overrides=env, timeout=timeout)
    output = outcome.get("output", "") or ""
    exit_status = outcome.get("exit_status")

    error: str | None = None
    if outcome.get("timed_out"):
        error = f"timed out after {timeout}s"
    elif outcome.get("error"):
        error = f"could not run: {outcome['error']}"
    elif not matches(assertion, output):
        error = f"output does not match {assertion.match} {assertion.expect!r}"
    elif assertion.exit_status is not None and exit_status != assertion.exit_status:
        error = f"exit status {exit_status}, expected {assertion.exit_status}"

    return AssertionResult(
        index=index,
        invocation=assertion.display,
        expect=assertion.expect,
        match=assertion.match,
        passed=error is None,
        output=output,
        exit_status=exit_status,
        error=error,
    )
