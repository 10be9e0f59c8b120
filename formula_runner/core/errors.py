"""
Error taxonomy — one exception family per pipeline phase.

Every error carries the ``phase`` it originated in so the orchestrator
can report ``Failed{phase, cause}`` without guessing.  Failing smoke
tests are collected into the report; ``VerificationFailure`` only
exists for the rollback policy.
"""

from __future__ import annotations


class RecipeError(Exception):
    """Base class for every error raised while running a formula."""

    phase: str = "unknown"

    def to_dict(self) -> dict:
        return {
            "phase": self.phase,
            "kind": type(self).__name__,
            "message": str(self),
        }


# ── Parse ───────────────────────────────────────────────────────


class ParseError(RecipeError):
    """Formula text is malformed or misses required fields."""

    phase = "parse"


# ── Resolve ─────────────────────────────────────────────────────


class ResolutionError(RecipeError):
    """Dependency set cannot be turned into an installation plan."""

    phase = "resolve"


class Cycle(ResolutionError):
    """The dependency graph contains a cycle."""

    def __init__(self, members: list[str]):
        self.members = list(members)
        super().__init__(f"Dependency cycle detected: {', '.join(self.members)}")


class Unsatisfiable(ResolutionError):
    """A dependency cannot be located, or its version does not fit."""

    def __init__(self, name: str, reason: str = "not found"):
        self.name = name
        self.reason = reason
        super().__init__(f"Dependency '{name}' is unsatisfiable: {reason}")


# ── Build ───────────────────────────────────────────────────────


class BuildError(RecipeError):
    """A build step (or its precondition) failed."""

    phase = "build"


class StepFailed(BuildError):
    """A build step exited non-zero; the remaining steps were not run."""

    def __init__(self, index: int, exit_status: int, output: str = ""):
        self.index = index
        self.exit_status = exit_status
        self.output = output
        super().__init__(f"Build step {index} failed (exit {exit_status})")

    def to_dict(self) -> dict:
        d = super().to_dict()
        d.update(index=self.index, exit_status=self.exit_status, output=self.output)
        return d


class StepTimeout(BuildError):
    """A build step exceeded the deadline set by the caller."""

    def __init__(self, index: int, timeout: float, output: str = ""):
        self.index = index
        self.timeout = timeout
        self.output = output
        super().__init__(f"Build step {index} timed out after {timeout}s")


class ChecksumMismatch(BuildError):
    """Fetched source bytes do not match the formula's sha256."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"sha256 mismatch: expected {expected}, got {actual}")


# ── Install ─────────────────────────────────────────────────────


class InstallError(RecipeError):
    """Staging build outputs into the prefix failed (already rolled back)."""

    phase = "stage"


class MissingSource(InstallError):
    """An install action names a path the build did not produce."""

    def __init__(self, source: str):
        self.source = source
        super().__init__(f"Build output not found: {source}")


class DestinationConflict(InstallError):
    """The destination exists and belongs to someone else."""

    def __init__(self, dest: str, owner: str | None = None):
        self.dest = dest
        self.owner = owner
        detail = f" (owned by {owner})" if owner else ""
        super().__init__(f"Refusing to overwrite {dest}{detail}")


# ── Verify ──────────────────────────────────────────────────────


class VerificationFailure(RecipeError):
    """One or more smoke tests failed.

    Only raised into a report by the orchestrator when the verification
    policy asks for rollback; the runner itself just records results.
    """

    phase = "verify"

    def __init__(self, failed: int, total: int):
        self.failed = failed
        self.total = total
        super().__init__(f"{failed} of {total} test assertions failed")
