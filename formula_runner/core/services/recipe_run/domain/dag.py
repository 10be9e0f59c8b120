"""
L1 Domain — Dependency graph ordering (pure).

Topological sort with deterministic tie-breaking and cycle reporting.
No I/O, no subprocess.
"""

from __future__ import annotations

import heapq


def topological_order(
    nodes: list[str],
    requires: dict[str, list[str]],
) -> tuple[list[str], list[str]]:
    """Order ``nodes`` so that every node comes after what it requires.

    Kahn's algorithm.  When several nodes are ready at once, the one
    that appears first in ``nodes`` goes first, so the result only
    depends on declaration order.

    Args:
        nodes: All node names, in declaration/discovery order.
        requires: ``node → [nodes it depends on]``.  Names missing from
            ``nodes`` are ignored.

    Returns:
        ``(order, cyclic)``.  ``cyclic`` lists the nodes that could not be
        ordered because they sit on (or behind) a cycle; it is empty when
        the graph is a DAG.
    """
    position = {name: i for i, name in enumerate(nodes)}
    in_degree: dict[str, int] = {name: 0 for name in nodes}
    # Adjacency: dep → nodes that depend on it
    dependents: dict[str, list[str]] = {name: [] for name in nodes}

    for node in nodes:
        for dep in dict.fromkeys(requires.get(node, [])):
            if dep not in position:
                continue
            in_degree[node] += 1
            dependents[dep].append(node)

    ready = [position[n] for n, deg in in_degree.items() if deg == 0]
    heapq.heapify(ready)
    order: list[str] = []

    while ready:
        node = nodes[heapq.heappop(ready)]
        order.append(node)
        for successor in dependents[node]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                heapq.heappush(ready, position[successor])

    cyclic = [n for n in nodes if in_degree[n] > 0]
    return order, cyclic


def find_cycle(nodes: list[str], requires: dict[str, list[str]]) -> list[str]:
    """Return one concrete cycle as ``[a, b, ..., a]``, or ``[]``.

    Used to give a readable error message after ``topological_order``
    reported leftovers.
    """
    known = set(nodes)
    state: dict[str, int] = {}   # 1 = on stack, 2 = done
    stack: list[str] = []

    def visit(node: str) -> list[str]:
        state[node] = 1
        stack.append(node)
        for dep in requires.get(node, []):
            if dep not in known:
                continue
            if state.get(dep) == 1:
                return stack[stack.index(dep):] + [dep]
            if dep not in state:
                found = visit(dep)
                if found:
                    return found
        stack.pop()
        state[node] = 2
        return []

    for node in nodes:
        if node not in state:
            found = visit(node)
            if found:
                return found
    return []
