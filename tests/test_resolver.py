"""
Tests for dependency resolution — installation plans, cycles and
unsatisfiable dependencies.
"""

import textwrap
from pathlib import Path

import pytest

from formula_runner.core.errors import Cycle, Unsatisfiable
from formula_runner.core.models.plan import InstalledLocation
from formula_runner.core.services.recipe_run import MappingLookup, PathLookup, parse, resolve


def _recipe(deps: str, name: str = "app"):
    return parse(textwrap.dedent(f"""\
        name: {name}
        url: https://example/app.tar
        sha256: {"0" * 64}
        build: [make]
        dependencies:
    """) + textwrap.indent(textwrap.dedent(deps), "  "))


def _loc(name: str, *depends_on: str, version: str | None = None) -> InstalledLocation:
    return InstalledLocation(
        name=name, path=Path("/opt") / name, version=version, depends_on=depends_on,
    )


class TestResolve:
    def test_no_dependencies(self, aws_sso_recipe):
        recipe = aws_sso_recipe.model_copy(update={"dependencies": ()})
        plan = resolve(recipe)
        assert len(plan) == 0
        assert plan.recipe == "aws-sso-cli"

    def test_direct_dependency(self, aws_sso_recipe, go_installed):
        plan = resolve(aws_sso_recipe, go_installed)
        assert plan.names == ["go"]
        entry = plan.entries[0]
        assert entry.dependency.kind == "build"
        assert entry.location.version == "1.21.5"
        assert entry.transitive is False

    def test_transitive_dependencies_ordered_first(self):
        recipe = _recipe("""\
            - lib
            - zlib
        """)
        installed = {
            "lib": _loc("lib", "libc"),
            "zlib": _loc("zlib", "libc"),
            "libc": _loc("libc"),
        }
        plan = resolve(recipe, installed)
        names = plan.names
        assert sorted(names) == ["lib", "libc", "zlib"]
        for entry in plan.entries:
            for dep in entry.location.depends_on:
                assert names.index(dep) < names.index(entry.name)
        libc = next(e for e in plan.entries if e.name == "libc")
        assert libc.transitive is True

    def test_transitive_inherits_kind(self):
        recipe = _recipe("- go: build\n")
        plan = resolve(recipe, {"go": _loc("go", "gcc"), "gcc": _loc("gcc")})
        assert [(e.name, e.dependency.kind) for e in plan.entries] == [
            ("gcc", "build"), ("go", "build"),
        ]

    def test_lookup_fallback(self):
        recipe = _recipe("- go: build\n")
        plan = resolve(recipe, {}, MappingLookup({"go": _loc("go")}))
        assert plan.names == ["go"]

    def test_installed_wins_over_lookup(self):
        recipe = _recipe("- go\n")
        plan = resolve(
            recipe,
            {"go": _loc("go", version="1.22")},
            MappingLookup({"go": _loc("go", version="1.10")}),
        )
        assert plan.entries[0].location.version == "1.22"

    def test_path_lookup(self, tmp_path: Path):
        tool = tmp_path / "mytool"
        tool.write_text("#!/bin/sh\n")
        tool.chmod(0o755)
        found = PathLookup(str(tmp_path)).lookup("mytool")
        assert found is not None
        assert found.path == tool
        assert PathLookup(str(tmp_path)).lookup("absent-tool") is None

    def test_build_path_entries(self, tmp_path: Path):
        go_root = tmp_path / "go"
        (go_root / "bin").mkdir(parents=True)
        compiler = tmp_path / "cc"
        compiler.write_text("")
        recipe = _recipe("""\
            - go: build
            - cc: build
            - zlib
        """)
        plan = resolve(recipe, {
            "go": InstalledLocation(name="go", path=go_root),
            "cc": InstalledLocation(name="cc", path=compiler),
            "zlib": _loc("zlib"),
        })
        assert plan.build_path_entries() == [str(go_root / "bin"), str(tmp_path)]


class TestResolveFailures:
    def test_unsatisfiable(self):
        recipe = _recipe("- missing\n")
        with pytest.raises(Unsatisfiable) as exc:
            resolve(recipe, {})
        assert exc.value.name == "missing"
        assert exc.value.phase == "resolve"

    def test_unsatisfiable_transitive(self):
        recipe = _recipe("- lib\n")
        with pytest.raises(Unsatisfiable, match="libc"):
            resolve(recipe, {"lib": _loc("lib", "libc")})

    def test_version_constraint_violated(self):
        recipe = _recipe('- go: {kind: build, version: ">=1.21"}\n')
        with pytest.raises(Unsatisfiable, match="does not satisfy"):
            resolve(recipe, {"go": _loc("go", version="1.20.1")})

    def test_version_unknown_is_accepted(self):
        recipe = _recipe('- go: {kind: build, version: ">=1.21"}\n')
        assert resolve(recipe, {"go": _loc("go")}).names == ["go"]

    def test_cycle_between_dependencies(self):
        recipe = _recipe("- a\n")
        with pytest.raises(Cycle) as exc:
            resolve(recipe, {"a": _loc("a", "b"), "b": _loc("b", "a")})
        assert {"a", "b"} <= set(exc.value.members)

    def test_cycle_through_recipe(self):
        """A dependency that needs the formula being built."""
        recipe = _recipe("- helper\n")
        with pytest.raises(Cycle) as exc:
            resolve(recipe, {"helper": _loc("helper", "app")})
        assert "app" in exc.value.members
