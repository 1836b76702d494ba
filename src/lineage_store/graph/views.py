from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field

from .constants import COLUMN_RANK, CONTAINMENT_EDGE_LABELS, GRANULARITY, HOST_RANK, TABLE_RANK
from .models import Edge, EdgeKey, LineageEntity, Subgraph, View
from .store import GraphSnapshot

VIEW_RANK: Mapping[View, int] = {
    View.HOST_VIEW: HOST_RANK,
    View.TABLE_VIEW: TABLE_RANK,
    View.COLUMN_VIEW: COLUMN_RANK,
}


@dataclass(frozen=True, slots=True)
class ContainmentCollapse:
    """Collapse vertices finer than the requested view into their containers.

    Rules:
    - A vertex whose type has no granularity rank (processes, ports, terms) is kept.
    - A vertex finer than the view is replaced by its nearest ancestor, reached
      through incoming containment edges, whose rank is at or above the view.
      With no such ancestor the vertex is kept as-is.
    - Edges whose endpoints end up on the same vertex are dropped.
    - Remaining edges are re-pointed and de-duplicated by (from, to, label);
      the first occurrence keeps its properties.
    """

    containment_labels: frozenset[str] = CONTAINMENT_EDGE_LABELS
    granularity: Mapping[str, int] = field(default_factory=lambda: GRANULARITY)

    def rank(self, entity: LineageEntity) -> int | None:
        return self.granularity.get(entity.type_name.lower())

    def container_of(self, snapshot: GraphSnapshot, guid: str, view_rank: int) -> str:
        entity = snapshot.get_vertex(guid)
        if entity is None:
            return guid
        rank = self.rank(entity)
        if rank is None or rank <= view_rank:
            return guid

        seen = {guid}
        queue = deque([guid])
        while queue:
            current = queue.popleft()
            for edge in snapshot.in_edges(current):
                if edge.label not in self.containment_labels or edge.from_guid in seen:
                    continue
                parent = snapshot.get_vertex(edge.from_guid)
                if parent is None:
                    continue
                seen.add(parent.guid)
                parent_rank = self.rank(parent)
                if parent_rank is not None and parent_rank <= view_rank:
                    return parent.guid
                queue.append(parent.guid)
        return guid

    def collapse(self, subgraph: Subgraph, snapshot: GraphSnapshot, view: View) -> Subgraph:
        view_rank = VIEW_RANK[View(view)]
        mapping: dict[str, str] = {}
        vertices: dict[str, LineageEntity] = {}
        for v in subgraph.vertices:
            target = self.container_of(snapshot, v.guid, view_rank)
            mapping[v.guid] = target
            if target not in vertices:
                vertices[target] = snapshot.get_vertex(target) or v

        edges: dict[EdgeKey, Edge] = {}
        for e in subgraph.edges:
            src = mapping.get(e.from_guid, e.from_guid)
            dst = mapping.get(e.to_guid, e.to_guid)
            if src == dst:
                continue
            key = (src, dst, e.label)
            if key not in edges:
                edges[key] = e if key == e.key else Edge(src, dst, e.label, dict(e.properties))

        terminals = list(dict.fromkeys(mapping.get(t, t) for t in subgraph.terminals))
        return Subgraph(vertices=list(vertices.values()), edges=list(edges.values()), terminals=terminals)
