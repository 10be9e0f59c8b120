"""
L5 Orchestration — Run one formula end-to-end.

    Parsed → Resolved → Built → Staged → Verified → Done
                 ↘         ↘        ↘         ↘
                              Failed{phase, cause}

Phases run strictly in order and each only sees the committed result
of the one before.  Any phase error moves the run to ``Failed``; files
staged by this run are rolled back first.  Nothing is retried.
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
import uuid
from collections.abc import Iterator, Mapping
from datetime import UTC, datetime
from pathlib import Path

from formula_runner.core.errors import (
    BuildError,
    InstallError,
    ParseError,
    RecipeError,
    VerificationFailure,
)
from formula_runner.core.models.plan import InstallationPlan, InstalledLocation
from formula_runner.core.models.recipe import Recipe
from formula_runner.core.models.run import RunReport, RunState
from formula_runner.core.models.settings import EngineSettings
from formula_runner.core.persistence.audit import AuditEntry, AuditWriter
from formula_runner.core.services.recipe_run.data.recipe_parser import parse
from formula_runner.core.services.recipe_run.data.template import render_template
from formula_runner.core.services.recipe_run.execution.build_executor import execute
from formula_runner.core.services.recipe_run.execution.source import (
    SourceFetcher,
    unpack_source,
    verify_digest,
)
from formula_runner.core.services.recipe_run.execution.stager import (
    commit_stage,
    rollback_stage,
    stage,
)
from formula_runner.core.services.recipe_run.execution.subprocess_runner import (
    CommandRunner,
    run_command,
)
from formula_runner.core.services.recipe_run.execution.verifier import verify
from formula_runner.core.services.recipe_run.resolver.dependency_resolution import (
    DependencyLookup,
    resolve,
)

logger = logging.getLogger(__name__)

_FORWARD = [
    RunState.PARSED,
    RunState.RESOLVED,
    RunState.BUILT,
    RunState.STAGED,
    RunState.VERIFIED,
    RunState.DONE,
]


def generate_operation_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"


def _advance(report: RunReport, state: RunState) -> None:
    """Move to the next state; anything but the immediate successor is a bug."""
    current = _FORWARD.index(report.state)
    if _FORWARD.index(state) != current + 1:
        raise RuntimeError(f"Illegal transition {report.state.value} → {state.value}")
    report.state = state
    report.history.append(state)
    logger.debug("%s: %s", report.recipe, state.value)


def _fail(report: RunReport, cause: RecipeError) -> None:
    if report.state.terminal:
        raise RuntimeError(f"Run already ended in {report.state.value}")
    report.phase = cause.phase
    report.cause = cause
    report.state = RunState.FAILED
    report.history.append(RunState.FAILED)
    logger.error("%s failed in %s: %s", report.recipe, cause.phase, cause)


@contextlib.contextmanager
def _build_tree(workdir: Path | str | None, root: Path | None, name: str) -> Iterator[Path]:
    """The given workdir, or a temporary one removed after the run."""
    if workdir is not None:
        path = Path(workdir)
        path.mkdir(parents=True, exist_ok=True)
        yield path
        return
    if root is not None:
        root.mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory(prefix=f"{name}-build-", dir=root) as tmp:
        yield Path(tmp)


def _rollback_open_stage(report: RunReport) -> None:
    """Undo files staged by this run unless they were already committed."""
    if report.staged is not None and not report.staged.committed:
        errors = rollback_stage(report.staged)
        report.rolled_back = not errors


def _dependency_env(plan: InstallationPlan) -> dict[str, str]:
    """PATH entries for build dependencies, ahead of the inherited PATH."""
    dirs = plan.build_path_entries()
    if not dirs:
        return {}
    return {"PATH": os.pathsep.join([*dirs, "$PATH"])}


def run_recipe(
    recipe: Recipe,
    *,
    prefix: Path | str,
    installed: Mapping[str, InstalledLocation] | None = None,
    lookup: DependencyLookup | None = None,
    fetcher: SourceFetcher | None = None,
    workdir: Path | str | None = None,
    runner: CommandRunner = run_command,
    settings: EngineSettings | None = None,
    audit: AuditWriter | None = None,
) -> RunReport:
    """Resolve, build, stage and verify ``recipe``.

    Args:
        recipe: Parsed recipe.
        prefix: Install prefix.
        installed: Packages already present, by name.
        lookup: Host repository lookup for everything else.
        fetcher: Source fetcher.  When given, the source is fetched,
            checked against ``recipe.sha256`` and unpacked into the build
            tree before any build step runs.  When None the build runs
            on whatever ``workdir`` already holds.
        workdir: Build tree.  Default: a temporary directory.
        runner: Command runner for build and test commands.
        settings: Timeouts and verification policy.
        audit: Ledger to record the run in.

    Returns:
        RunReport ending in ``DONE`` or ``FAILED`` (with phase + cause).
    """
    settings = settings or EngineSettings()
    prefix = Path(prefix)
    report = RunReport(recipe=recipe.name, operation_id=generate_operation_id())
    logger.info("Running formula '%s' into %s (%s)", recipe.name, prefix, report.operation_id)

    with _build_tree(workdir, settings.workdir_root, recipe.name) as tree:
        try:
            report.plan = resolve(recipe, installed, lookup)
            _advance(report, RunState.RESOLVED)

            if fetcher is not None:
                data = fetcher.fetch(recipe.url)
                verify_digest(recipe, data)
                try:
                    unpack_source(data, tree, recipe.url)
                except OSError as e:
                    raise BuildError(f"Cannot lay out source in {tree}: {e}") from e

            report.build = execute(
                recipe,
                tree,
                runner=runner,
                timeout=settings.build_timeout,
                extra_env=_dependency_env(report.plan),
            )
            _advance(report, RunState.BUILT)

            report.staged = stage(
                report.build, recipe.install, prefix, owner=recipe.name, commit=False,
            )
            _advance(report, RunState.STAGED)

            report.verification = verify(
                report.staged, recipe.test, runner=runner, timeout=settings.verify_timeout,
            )
            _advance(report, RunState.VERIFIED)

            if not report.verification.all_passed and settings.verify_policy == "rollback":
                raise VerificationFailure(report.verification.failed, report.verification.total)

            try:
                commit_stage(report.staged)
            except OSError as e:
                raise InstallError(f"Cannot commit install of '{recipe.name}': {e}") from e
            _advance(report, RunState.DONE)

        except RecipeError as e:
            _rollback_open_stage(report)
            _fail(report, e)
        except BaseException:
            # host collaborators (runner, fetcher, lookup) or an interrupt
            _rollback_open_stage(report)
            raise

    report.ended_at = datetime.now(UTC).isoformat()
    if audit is not None:
        audit.write(_audit_entry(report, prefix))
    logger.info("Formula '%s' finished: %s", recipe.name, report.status)
    return report


def run_formula_file(
    path: Path | str,
    *,
    variables: Mapping[str, str] | None = None,
    prefix: Path | str,
    audit: AuditWriter | None = None,
    **kwargs,
) -> RunReport:
    """Render, parse and run the formula at ``path``.

    A formula that does not parse ends the run in ``Failed{parse}``
    without touching anything.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        return _parse_failure(path, ParseError(f"Cannot read {path}: {e}"), prefix, audit)

    try:
        recipe = parse(render_template(text, dict(variables or {})))
    except ParseError as e:
        return _parse_failure(path, e, prefix, audit)

    return run_recipe(recipe, prefix=prefix, audit=audit, **kwargs)


def _parse_failure(
    path: Path,
    error: ParseError,
    prefix: Path | str,
    audit: AuditWriter | None,
) -> RunReport:
    logger.error("Cannot load formula %s: %s", path, error)
    report = RunReport(
        recipe=path.stem,
        operation_id=generate_operation_id(),
        state=RunState.FAILED,
        history=[RunState.FAILED],
        phase=error.phase,
        cause=error,
    )
    report.ended_at = datetime.now(UTC).isoformat()
    if audit is not None:
        audit.write(_audit_entry(report, Path(prefix)))
    return report


def _audit_entry(report: RunReport, prefix: Path) -> AuditEntry:
    verification = report.verification
    return AuditEntry(
        operation_id=report.operation_id,
        recipe=report.recipe,
        prefix=str(prefix),
        state=report.state.value,
        status=report.status,
        phase=report.phase,
        error=str(report.cause) if report.cause else None,
        files_staged=report.staged.paths if report.staged else [],
        assertions_total=verification.total if verification else 0,
        assertions_failed=verification.failed if verification else 0,
        rolled_back=report.rolled_back,
        context={"history": [s.value for s in report.history]},
    )
