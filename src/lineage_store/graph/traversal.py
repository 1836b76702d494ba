"""
Scoped lineage traversal over a named graph snapshot.

All walks are breadth-first, visit neighbours in adjacency insertion order and
keep a visited set, so they terminate on cyclic graphs and give the same
answer for the same graph. Every walk runs under a hop and wall-clock budget;
running out raises `TraversalBudgetExceeded` with what was collected so far.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from ..errors import TraversalBudgetExceeded, VertexNotFoundError
from ..settings import LineageStoreSettings, settings as default_settings
from .constants import GLOSSARY_EDGE_LABELS, LINEAGE_EDGE_LABELS
from .models import CyclePolicy, Edge, EdgeKey, GraphName, Scope, Subgraph, View
from .store import GraphRegistry, GraphSnapshot
from .views import ContainmentCollapse

logger = logging.getLogger(__name__)

# guid -> (edge, guid on the other side) pairs that a walk may follow
Step = Callable[[str], Iterable[tuple[Edge, str]]]


@dataclass(slots=True)
class _Walk:
    visited: dict[str, None] = field(default_factory=dict)
    edges: dict[EdgeKey, Edge] = field(default_factory=dict)
    terminals: list[str] = field(default_factory=list)
    # guid -> guid it was discovered from; start vertices have no entry
    parent: dict[str, str] = field(default_factory=dict)

    def closes_cycle(self, source: str, target: str) -> bool:
        """True if `target` is `source` or one of its ancestors in the discovery tree."""
        current: str | None = source
        while current is not None:
            if current == target:
                return True
            current = self.parent.get(current)
        return False

    def to_subgraph(self, snapshot: GraphSnapshot) -> Subgraph:
        return Subgraph(
            vertices=[snapshot.vertices[g] for g in self.visited],
            edges=list(self.edges.values()),
            terminals=list(self.terminals),
        )


@dataclass(slots=True)
class _Budget:
    max_hops: int
    deadline: float
    time_budget_s: float

    def check_time(self, walk: _Walk, snapshot: GraphSnapshot) -> None:
        if time.monotonic() > self.deadline:
            raise TraversalBudgetExceeded(
                f"traversal exceeded its time budget of {self.time_budget_s}s",
                partial=walk.to_subgraph(snapshot),
                action="lineage traversal",
                user_action="narrow the scope or raise LINEAGE_STORE_TIME_BUDGET_S",
            )

    def check_depth(self, depth: int, walk: _Walk, snapshot: GraphSnapshot) -> None:
        if depth > self.max_hops:
            raise TraversalBudgetExceeded(
                f"traversal exceeded its hop budget of {self.max_hops}",
                partial=walk.to_subgraph(snapshot),
                action="lineage traversal",
                user_action="narrow the scope or raise LINEAGE_STORE_MAX_HOPS",
            )


class TraversalEngine:
    """Computes scoped lineage subgraphs from the graphs held by a `GraphRegistry`."""

    def __init__(
        self,
        registry: GraphRegistry,
        *,
        settings: LineageStoreSettings | None = None,
        collapse: ContainmentCollapse | None = None,
        max_hops: int | None = None,
        time_budget_s: float | None = None,
        cycle_policy: CyclePolicy | str | None = None,
    ):
        cfg = settings or registry.settings or default_settings
        self.registry = registry
        self.collapse = collapse or ContainmentCollapse()
        self.max_hops = max_hops if max_hops is not None else cfg.max_hops
        self.time_budget_s = time_budget_s if time_budget_s is not None else cfg.time_budget_s
        self.cycle_policy = CyclePolicy(cycle_policy or cfg.cycle_policy)

    def lineage(
        self,
        graph_name: GraphName | str,
        scope: Scope | str,
        view: View | str,
        guid: str,
        *,
        version: int | None = None,
    ) -> Subgraph:
        graph_name, scope, view = GraphName(graph_name), Scope(scope), View(view)
        snapshot = self.registry.view(graph_name, version=version)
        if not snapshot.has_vertex(guid):
            raise VertexNotFoundError(guid, graph_name.value, action=f"{scope.value} lineage query")

        t0 = time.perf_counter()
        try:
            structural = self.traverse(snapshot, scope, guid)
        except TraversalBudgetExceeded as e:
            if e.partial is not None:
                e.partial = self.collapse.collapse(e.partial, snapshot, view)
            raise
        if not structural.edges:
            return Subgraph()
        result = self.collapse.collapse(structural, snapshot, view)
        logger.debug(
            "%s %s %s from %s: %d vertices, %d edges in %.1fms",
            graph_name.value,
            scope.value,
            view.value,
            guid,
            len(result.vertices),
            len(result.edges),
            (time.perf_counter() - t0) * 1000.0,
        )
        return result

    def traverse(self, snapshot: GraphSnapshot, scope: Scope | str, guid: str) -> Subgraph:
        """Structural traversal only, before any view collapsing."""
        budget = _Budget(
            max_hops=self.max_hops,
            deadline=time.monotonic() + self.time_budget_s,
            time_budget_s=self.time_budget_s,
        )
        scope = Scope(scope)
        if scope is Scope.SOURCE_AND_DESTINATION:
            return self._source_and_destination(snapshot, guid)
        if scope is Scope.ULTIMATE_SOURCE:
            return self._walk(snapshot, [guid], self._upstream(snapshot), budget).to_subgraph(snapshot)
        if scope is Scope.ULTIMATE_DESTINATION:
            return self._walk(snapshot, [guid], self._downstream(snapshot), budget).to_subgraph(snapshot)
        if scope is Scope.END_TO_END:
            return self._end_to_end(snapshot, guid, budget)
        walk = self._walk(snapshot, [guid], self._glossary(snapshot), budget)
        walk.terminals.clear()
        return walk.to_subgraph(snapshot)

    # ---- steps ------------------------------------------------------------------------

    @staticmethod
    def _upstream(snapshot: GraphSnapshot) -> Step:
        def step(guid: str) -> Iterable[tuple[Edge, str]]:
            return [(e, e.from_guid) for e in snapshot.in_edges(guid) if e.label in LINEAGE_EDGE_LABELS]

        return step

    @staticmethod
    def _downstream(snapshot: GraphSnapshot) -> Step:
        def step(guid: str) -> Iterable[tuple[Edge, str]]:
            return [(e, e.to_guid) for e in snapshot.out_edges(guid) if e.label in LINEAGE_EDGE_LABELS]

        return step

    @staticmethod
    def _glossary(snapshot: GraphSnapshot) -> Step:
        def step(guid: str) -> Iterable[tuple[Edge, str]]:
            out = [(e, e.to_guid) for e in snapshot.out_edges(guid) if e.label in GLOSSARY_EDGE_LABELS]
            inc = [(e, e.from_guid) for e in snapshot.in_edges(guid) if e.label in GLOSSARY_EDGE_LABELS]
            return out + inc

        return step

    # ---- walks ------------------------------------------------------------------------

    def _walk(self, snapshot: GraphSnapshot, starts: list[str], step: Step, budget: _Budget) -> _Walk:
        walk = _Walk()
        for s in starts:
            walk.visited[s] = None
        frontier = list(walk.visited)
        depth = 0
        while frontier:
            depth += 1
            next_frontier: list[str] = []
            for guid in frontier:
                budget.check_time(walk, snapshot)
                hops = list(step(guid))
                if not hops:
                    walk.terminals.append(guid)
                    continue
                for edge, other in hops:
                    if other in walk.visited:
                        if self.cycle_policy is CyclePolicy.INCLUDE or not walk.closes_cycle(guid, other):
                            walk.edges.setdefault(edge.key, edge)
                        continue
                    budget.check_depth(depth, walk, snapshot)
                    walk.visited[other] = None
                    walk.parent[other] = guid
                    walk.edges[edge.key] = edge
                    next_frontier.append(other)
            frontier = next_frontier
        return walk

    def _source_and_destination(self, snapshot: GraphSnapshot, guid: str) -> Subgraph:
        walk = _Walk()
        walk.visited[guid] = None
        hops = [(e, e.from_guid) for e in snapshot.in_edges(guid)]
        hops += [(e, e.to_guid) for e in snapshot.out_edges(guid)]
        for edge, other in hops:
            if other == guid and self.cycle_policy is CyclePolicy.PRUNE:
                continue
            walk.visited[other] = None
            walk.edges.setdefault(edge.key, edge)
        return walk.to_subgraph(snapshot)

    def _end_to_end(self, snapshot: GraphSnapshot, guid: str, budget: _Budget) -> Subgraph:
        up = self._walk(snapshot, [guid], self._upstream(snapshot), budget)
        down = self._walk(snapshot, [guid], self._downstream(snapshot), budget)

        # A fully cyclic neighbourhood has no terminals; fall back to everything reached.
        sources = up.terminals or list(up.visited)
        destinations = down.terminals or list(down.visited)
        forward = self._walk(snapshot, sources, self._downstream(snapshot), budget)
        backward = self._walk(snapshot, destinations, self._upstream(snapshot), budget)
        on_path = forward.visited.keys() & backward.visited.keys()

        result = _Walk()
        for part in (up, down):
            result.visited.update(part.visited)
            for key, edge in part.edges.items():
                result.edges.setdefault(key, edge)
        for g in forward.visited:
            if g in on_path:
                result.visited.setdefault(g, None)
        for key, edge in forward.edges.items():
            if edge.from_guid in on_path and edge.to_guid in on_path:
                result.edges.setdefault(key, edge)
        result.terminals = list(dict.fromkeys(up.terminals + down.terminals))
        return result.to_subgraph(snapshot)
