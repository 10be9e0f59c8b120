"""
Recipe model — the in-memory form of one formula.

A recipe is loaded once from a formula file and never changes after
that: every model here is frozen.  Structural rules (required fields,
digest shape, relative install paths) are enforced at load time;
anything that depends on the build tree is checked later by the stager.
"""

from __future__ import annotations

import re
import shlex
from pathlib import PurePosixPath
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DependencyKind = Literal["build", "runtime"]
MatchMode = Literal["substring", "regex"]

_SHA256_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def _stringify_env(value: Any) -> Any:
    """YAML turns ``BREW_INSTALL: 1`` into an int; environments want strings."""
    if isinstance(value, dict):
        return {str(k): "" if v is None else str(v) for k, v in value.items()}
    return value


def _relative_path(value: str, what: str) -> str:
    path = PurePosixPath(value)
    if not value or path.is_absolute() or ".." in path.parts:
        raise ValueError(f"{what} must be a relative path inside its tree: {value!r}")
    return str(path)


class Dependency(BaseModel):
    """A named package the recipe needs, at build time or at runtime."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    kind: DependencyKind = "runtime"
    version: str | None = None      # constraint, e.g. ">=1.21"

    @property
    def is_build(self) -> bool:
        return self.kind == "build"


class BuildStep(BaseModel):
    """One build command plus the environment it needs."""

    model_config = ConfigDict(frozen=True)

    command: str | tuple[str, ...]
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("env", mode="before")
    @classmethod
    def _normalize_env(cls, v: Any) -> Any:
        return _stringify_env(v)

    @field_validator("command")
    @classmethod
    def _non_empty(cls, v: str | tuple[str, ...]) -> str | tuple[str, ...]:
        if not v or (isinstance(v, str) and not v.strip()):
            raise ValueError("build command must not be empty")
        return v

    @property
    def display(self) -> str:
        """The command as a user would type it."""
        if isinstance(self.command, str):
            return self.command
        return shlex.join(self.command)


class InstallAction(BaseModel):
    """Copy ``source`` (in the build tree) to ``dest`` (in the prefix)."""

    model_config = ConfigDict(frozen=True)

    source: str
    dest: str

    @field_validator("source")
    @classmethod
    def _check_source(cls, v: str) -> str:
        return _relative_path(v, "install source")

    @field_validator("dest")
    @classmethod
    def _check_dest(cls, v: str) -> str:
        return _relative_path(v, "install destination")


class TestAssertion(BaseModel):
    """Run the installed artifact and match its combined output."""

    __test__ = False  # not a pytest class

    model_config = ConfigDict(frozen=True)

    run: tuple[str, ...] = Field(min_length=1)
    expect: str
    match: MatchMode = "substring"
    exit_status: int | None = None

    @model_validator(mode="after")
    def _check_pattern(self) -> TestAssertion:
        if self.match == "regex":
            try:
                re.compile(self.expect)
            except re.error as e:
                raise ValueError(f"invalid regular expression {self.expect!r}: {e}") from e
        return self

    @property
    def display(self) -> str:
        return shlex.join(self.run)


class Recipe(BaseModel):
    """A complete formula: metadata, dependencies, build, install, tests."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    description: str = ""
    homepage: str = ""
    url: str = Field(min_length=1)
    sha256: str
    version: str | None = None

    env: dict[str, str] = Field(default_factory=dict)
    dependencies: tuple[Dependency, ...] = ()
    build: tuple[BuildStep, ...] = Field(min_length=1)
    install: tuple[InstallAction, ...] = ()
    test: tuple[TestAssertion, ...] = ()

    @field_validator("env", mode="before")
    @classmethod
    def _normalize_env(cls, v: Any) -> Any:
        return _stringify_env(v)

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        # used as a file name for receipts and build directories
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"name must be a plain package name without path separators, got {v!r}")
        return v

    @field_validator("sha256")
    @classmethod
    def _check_sha256(cls, v: str) -> str:
        if not _SHA256_RE.match(v):
            raise ValueError(f"sha256 must be a 64-character hex digest, got {v!r}")
        return v.lower()

    def build_dependencies(self) -> list[Dependency]:
        return [d for d in self.dependencies if d.is_build]
