from __future__ import annotations

from collections.abc import Iterator

from .models import Edge, EdgeKey, LineageEntity


class AssetContext:
    """Staging subgraph for one inbound event.

    Holds the vertices and edges touched by a single event plus an adjacency
    index keyed by source GUID. It is populated, merged into a named graph
    and then thrown away.
    """

    __slots__ = ("_vertices", "_edges", "_neighbors")

    def __init__(self) -> None:
        self._vertices: dict[str, LineageEntity] = {}
        self._edges: dict[EdgeKey, Edge] = {}
        self._neighbors: dict[str, dict[EdgeKey, Edge]] = {}

    def add_vertex(self, vertex: LineageEntity) -> bool:
        if vertex.guid in self._vertices:
            return False
        self._vertices[vertex.guid] = vertex
        return True

    def add_edge(self, edge: Edge) -> bool:
        if edge.key in self._edges:
            return False
        self._edges[edge.key] = edge
        self._neighbors.setdefault(edge.from_guid, {})[edge.key] = edge
        return True

    def has_vertex(self, guid: str) -> bool:
        return guid in self._vertices

    def get_vertex(self, guid: str) -> LineageEntity | None:
        return self._vertices.get(guid)

    @property
    def vertices(self) -> list[LineageEntity]:
        return list(self._vertices.values())

    @property
    def edges(self) -> list[Edge]:
        return list(self._edges.values())

    @property
    def neighbors(self) -> dict[str, list[Edge]]:
        return {guid: list(edges.values()) for guid, edges in self._neighbors.items()}

    def __iter__(self) -> Iterator[LineageEntity]:
        return iter(self._vertices.values())

    def __len__(self) -> int:
        return len(self._vertices)

    def __repr__(self) -> str:
        return f"AssetContext(vertices={len(self._vertices)}, edges={len(self._edges)})"
