"""Dependency ordering for resources and apply operations."""

from __future__ import annotations

import heapq
from typing import TYPE_CHECKING

from aws_provisioner.engine.errors import DependencyCycleError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class DependencyGraph:
    """Nodes plus "depends on" edges, ordered with priority tie-breaks.

    Edges pointing outside the node set are dropped, so callers can pass
    raw ``depends_on`` lists without filtering them first. Among nodes that
    are ready at the same time, the lower priority value comes first, then
    the lexicographically smaller address.
    """

    def __init__(
        self,
        nodes: Iterable[str],
        dependencies: Mapping[str, Iterable[str]],
        priorities: Mapping[str, int] | None = None,
    ) -> None:
        self._nodes = frozenset(nodes)
        self._priorities = dict(priorities or {})
        self._edges: dict[str, frozenset[str]] = {
            node: frozenset(d for d in dependencies.get(node, ()) if d in self._nodes)
            for node in self._nodes
        }

    def dependencies_of(self, node: str) -> frozenset[str]:
        return self._edges[node]

    def _key(self, node: str) -> tuple[int, str]:
        return (self._priorities.get(node, 0), node)

    def _kahn(self, edges: Mapping[str, frozenset[str]]) -> list[str]:
        waiting = {n: len(deps) for n, deps in edges.items()}
        unblocks: dict[str, list[str]] = {n: [] for n in edges}
        for node, deps in edges.items():
            for dep in deps:
                unblocks[dep].append(node)

        ready = [self._key(n) for n, count in waiting.items() if count == 0]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            _, node = heapq.heappop(ready)
            order.append(node)
            for nxt in unblocks[node]:
                waiting[nxt] -= 1
                if waiting[nxt] == 0:
                    heapq.heappush(ready, self._key(nxt))

        if len(order) != len(edges):
            raise DependencyCycleError(self._find_cycle(set(edges) - set(order)))
        return order

    def _find_cycle(self, candidates: set[str]) -> list[str]:
        """Return one cycle (as a path) among *candidates*, for error reporting."""
        for start in sorted(candidates):
            path: list[str] = []
            on_path: set[str] = set()
            node: str | None = start
            while node is not None and node not in on_path:
                path.append(node)
                on_path.add(node)
                node = next((d for d in sorted(self._edges[node]) if d in candidates), None)
            if node is not None:
                return [*path[path.index(node) :], node]
        return sorted(candidates)

    def topological_order(self) -> list[str]:
        """Dependencies before dependents (create/update order)."""
        return self._kahn(self._edges)

    def reverse_topological_order(self) -> list[str]:
        """Dependents before dependencies (delete order)."""
        inverted: dict[str, set[str]] = {n: set() for n in self._nodes}
        for node, deps in self._edges.items():
            for dep in deps:
                inverted[dep].add(node)
        return self._kahn({n: frozenset(d) for n, d in inverted.items()})
