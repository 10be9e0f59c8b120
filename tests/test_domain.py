"""
Tests for the pure domain layer — graph ordering, version constraints
and rollback plans.
"""

import pytest

from formula_runner.core.services.recipe_run.domain.dag import find_cycle, topological_order
from formula_runner.core.services.recipe_run.domain.rollback import (
    generate_commit,
    generate_rollback,
)
from formula_runner.core.services.recipe_run.domain.version_constraint import (
    check_version_constraint,
)


class TestTopologicalOrder:
    def test_dependencies_come_first(self):
        nodes = ["app", "lib", "libc", "zlib"]
        requires = {"app": ["lib", "zlib"], "lib": ["libc"], "zlib": ["libc"]}
        order, cyclic = topological_order(nodes, requires)
        assert cyclic == []
        assert order.index("libc") < order.index("lib") < order.index("app")
        assert order.index("zlib") < order.index("app")
        assert sorted(order) == sorted(nodes)

    def test_ties_follow_declaration_order(self):
        order, _ = topological_order(["c", "a", "b"], {})
        assert order == ["c", "a", "b"]

    def test_unknown_names_ignored(self):
        order, cyclic = topological_order(["a"], {"a": ["ghost"]})
        assert order == ["a"]
        assert cyclic == []

    def test_cycle_reported(self):
        nodes = ["root", "a", "b", "c"]
        requires = {"root": ["a"], "a": ["b"], "b": ["a"], "c": []}
        order, cyclic = topological_order(nodes, requires)
        assert order == ["c"]
        assert set(cyclic) == {"root", "a", "b"}


class TestFindCycle:
    def test_concrete_cycle(self):
        cycle = find_cycle(["root", "a", "b"], {"root": ["a"], "a": ["b"], "b": ["a"]})
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"a", "b"}

    def test_self_loop(self):
        assert find_cycle(["a"], {"a": ["a"]}) == ["a", "a"]

    def test_acyclic(self):
        assert find_cycle(["a", "b"], {"a": ["b"]}) == []


class TestVersionConstraint:
    @pytest.mark.parametrize("available,constraint", [
        ("1.21.5", ">=1.21"),
        ("1.21.0", "1.21"),
        ("2.0", ">1.9.9"),
        ("1.2.3", "==1.2.3"),
        ("1.2", "=1.2.0"),
        ("1.4.0", "<2"),
        ("1.4.0", "<=1.4"),
        ("1.4.7", "~=1.4.2"),
        ("1.9", "~=1.4"),
        ("v1.22.1", ">=v1.21"),
    ])
    def test_satisfied(self, available, constraint):
        assert check_version_constraint(available, constraint)["valid"] is True

    @pytest.mark.parametrize("available,constraint", [
        ("1.20.9", ">=1.21"),
        ("2.0.0", "<2"),
        ("1.2.4", "==1.2.3"),
        ("1.5.0", "~=1.4.2"),
        ("2.0", "~=1.4"),
    ])
    def test_violated(self, available, constraint):
        result = check_version_constraint(available, constraint)
        assert result["valid"] is False
        assert available in result["message"]

    def test_unparseable_is_not_a_failure(self):
        result = check_version_constraint("devel", ">=1.0")
        assert result["valid"] is True
        assert result["parse_error"] is True


class TestRollbackPlan:
    def test_reverse_order_and_undo_ops(self):
        journal = [
            {"op": "mkdir", "path": "/p/bin"},
            {"op": "create", "path": "/p/bin/a"},
            {"op": "replace", "path": "/p/bin/b", "backup": "/p/bin/.b.bak"},
        ]
        assert generate_rollback(journal) == [
            {"op": "restore", "path": "/p/bin/b", "backup": "/p/bin/.b.bak"},
            {"op": "remove", "path": "/p/bin/a"},
            {"op": "rmdir", "path": "/p/bin"},
        ]

    def test_unknown_ops_skipped(self):
        assert generate_rollback([{"op": "chmod", "path": "/p/x"}]) == []

    def test_commit_drops_backups_only(self):
        journal = [
            {"op": "create", "path": "/p/bin/a"},
            {"op": "replace", "path": "/p/bin/b", "backup": "/p/bin/.b.bak"},
        ]
        assert generate_commit(journal) == [{"op": "remove", "path": "/p/bin/.b.bak"}]
