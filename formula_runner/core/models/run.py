"""
Run results — what each phase produces and what the run reports.

These are created fresh for every orchestrator run and dropped after
it.  Phases only ever read the result of the phase before them.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from formula_runner.core.errors import RecipeError
from formula_runner.core.models.plan import InstallationPlan


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


# ── Build ───────────────────────────────────────────────────────


@dataclass
class StepOutcome:
    """One build step that ran to completion."""

    index: int
    command: str
    exit_status: int
    output: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


@dataclass
class BuildResult:
    """All build steps succeeded in ``workdir``."""

    workdir: Path
    steps: list[StepOutcome] = field(default_factory=list)

    @property
    def output(self) -> str:
        return "".join(s.output for s in self.steps)

    def to_dict(self) -> dict:
        return {
            "workdir": str(self.workdir),
            "steps": [
                {
                    "index": s.index,
                    "command": s.command,
                    "exit_status": s.exit_status,
                    "duration_ms": s.duration_ms,
                }
                for s in self.steps
            ],
        }


# ── Stage ───────────────────────────────────────────────────────


@dataclass
class StagedFile:
    """A file copied from the build tree into the prefix."""

    relative: str          # path under the prefix, POSIX style
    dest: Path
    source: Path
    mode: int = 0o644


@dataclass
class StagedSet:
    """Everything one recipe put into one prefix."""

    owner: str
    prefix: Path
    files: list[StagedFile] = field(default_factory=list)

    # Filesystem changes made so far; replayed backwards on rollback
    journal: list[dict] = field(default_factory=list)
    committed: bool = False

    @property
    def paths(self) -> list[str]:
        return sorted(f.relative for f in self.files)

    def to_dict(self) -> dict:
        return {
            "owner": self.owner,
            "prefix": str(self.prefix),
            "files": self.paths,
            "committed": self.committed,
        }


# ── Verify ──────────────────────────────────────────────────────


@dataclass
class AssertionResult:
    """Outcome of one smoke test."""

    index: int
    invocation: str
    expect: str
    match: str
    passed: bool
    output: str = ""
    exit_status: int | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "invocation": self.invocation,
            "expect": self.expect,
            "match": self.match,
            "passed": self.passed,
            "exit_status": self.exit_status,
            "error": self.error,
            "output": self.output,
        }


@dataclass
class VerificationReport:
    """One entry per assertion, in declaration order."""

    results: list[AssertionResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def all_passed(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }


# ── Run ─────────────────────────────────────────────────────────


class RunState(str, enum.Enum):
    """Orchestrator states.  Transitions only ever move forward."""

    PARSED = "parsed"
    RESOLVED = "resolved"
    BUILT = "built"
    STAGED = "staged"
    VERIFIED = "verified"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (RunState.DONE, RunState.FAILED)


@dataclass
class RunReport:
    """Result of running one recipe end-to-end."""

    recipe: str
    operation_id: str = ""
    state: RunState = RunState.PARSED
    history: list[RunState] = field(default_factory=lambda: [RunState.PARSED])

    phase: str | None = None            # set when FAILED
    cause: RecipeError | None = None    # set when FAILED

    plan: InstallationPlan | None = None
    build: BuildResult | None = None
    staged: StagedSet | None = None
    verification: VerificationReport | None = None
    rolled_back: bool = False

    started_at: str = field(default_factory=_now_iso)
    ended_at: str = ""

    @property
    def ok(self) -> bool:
        return self.state == RunState.DONE

    @property
    def status(self) -> str:
        if self.state != RunState.DONE:
            return "failed"
        if self.verification and not self.verification.all_passed:
            return "partial"
        return "ok"

    def to_dict(self) -> dict:
        return {
            "recipe": self.recipe,
            "operation_id": self.operation_id,
            "state": self.state.value,
            "status": self.status,
            "history": [s.value for s in self.history],
            "phase": self.phase,
            "failure": self.cause.to_dict() if self.cause else None,
            "plan": self.plan.to_dict() if self.plan else None,
            "build": self.build.to_dict() if self.build else None,
            "staged": self.staged.to_dict() if self.staged else None,
            "verification": self.verification.to_dict() if self.verification else None,
            "rolled_back": self.rolled_back,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
        }
