"""
Named graph storage.

Each named graph is an arena: vertices and edges live in lists addressed by
stable integer slots, with GUID -> slot and edge key -> slot lookup tables.
Entities are immutable; updating a vertex writes a new entity into its slot,
removing one tombstones it. Outgoing and incoming adjacency are projections
of the edge arena and are only touched together with it.

Writers hold the per-graph lock for the duration of one merge. Readers take
the same lock only long enough to obtain an immutable `GraphSnapshot`, which
is cached until the next successful write.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType

from ..errors import HistoryEmptyError, MalformedEventError, StoreUnavailableError, VertexNotFoundError
from ..settings import LineageStoreSettings, settings as default_settings
from .context import AssetContext
from .models import Direction, Edge, EdgeKey, GraphName, LineageEntity

logger = logging.getLogger(__name__)

_NO_EDGES: tuple[Edge, ...] = ()


@dataclass(frozen=True, slots=True)
class GraphSnapshot:
    """Immutable point-in-time view of a named graph."""

    name: GraphName
    version: int
    vertices: Mapping[str, LineageEntity]
    edges: tuple[Edge, ...]
    outgoing: Mapping[str, tuple[Edge, ...]]
    incoming: Mapping[str, tuple[Edge, ...]]

    @classmethod
    def empty(cls, name: GraphName) -> GraphSnapshot:
        return cls(
            name=name,
            version=0,
            vertices=MappingProxyType({}),
            edges=(),
            outgoing=MappingProxyType({}),
            incoming=MappingProxyType({}),
        )

    @classmethod
    def from_elements(
        cls, name: GraphName, vertices: Iterable[LineageEntity], edges: Iterable[Edge], version: int = 0
    ) -> GraphSnapshot:
        vmap: dict[str, LineageEntity] = {}
        for v in vertices:
            vmap[v.guid] = vmap[v.guid].merged_with(v) if v.guid in vmap else v
        emap: dict[EdgeKey, Edge] = {}
        out: dict[str, list[Edge]] = {}
        inc: dict[str, list[Edge]] = {}
        for e in edges:
            if e.key in emap:
                continue
            if e.from_guid not in vmap or e.to_guid not in vmap:
                raise MalformedEventError(
                    f"edge {e.key} references a vertex missing from the graph",
                    action="build graph snapshot",
                )
            emap[e.key] = e
            out.setdefault(e.from_guid, []).append(e)
            inc.setdefault(e.to_guid, []).append(e)
        return cls(
            name=name,
            version=version,
            vertices=MappingProxyType(vmap),
            edges=tuple(emap.values()),
            outgoing=MappingProxyType({k: tuple(v) for k, v in out.items()}),
            incoming=MappingProxyType({k: tuple(v) for k, v in inc.items()}),
        )

    def has_vertex(self, guid: str) -> bool:
        return guid in self.vertices

    def get_vertex(self, guid: str) -> LineageEntity | None:
        return self.vertices.get(guid)

    def out_edges(self, guid: str) -> tuple[Edge, ...]:
        return self.outgoing.get(guid, _NO_EDGES)

    def in_edges(self, guid: str) -> tuple[Edge, ...]:
        return self.incoming.get(guid, _NO_EDGES)

    def neighbors(self, guid: str, direction: Direction | str = Direction.BOTH) -> list[Edge]:
        direction = Direction(direction)
        if direction is Direction.OUTGOING:
            return list(self.out_edges(guid))
        if direction is Direction.INCOMING:
            return list(self.in_edges(guid))
        return list(self.out_edges(guid)) + list(self.in_edges(guid))

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def edge_count(self) -> int:
        return len(self.edges)


@dataclass(slots=True)
class MergeStats:
    vertices_added: int = 0
    vertices_updated: int = 0
    edges_added: int = 0
    edges_skipped: int = 0

    def __iadd__(self, other: MergeStats) -> MergeStats:
        self.vertices_added += other.vertices_added
        self.vertices_updated += other.vertices_updated
        self.edges_added += other.edges_added
        self.edges_skipped += other.edges_skipped
        return self


class NamedGraph:
    """One independently-lifecycled graph (MAIN, BUFFER or MOCK)."""

    def __init__(self, name: GraphName, *, lock_timeout_s: float = 5.0):
        self.name = name
        self.lock_timeout_s = lock_timeout_s
        self._lock = threading.RLock()
        self._reset()

    def _reset(self) -> None:
        self._vertices: list[LineageEntity | None] = []
        self._slots: dict[str, int] = {}
        self._edges: list[Edge | None] = []
        self._edge_slots: dict[EdgeKey, int] = {}
        # vertex slot -> edge slots, insertion ordered
        self._out: dict[int, dict[int, None]] = {}
        self._in: dict[int, dict[int, None]] = {}
        self._version = 0
        self._cached: GraphSnapshot | None = None

    @contextmanager
    def _writing(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.lock_timeout_s):
            raise StoreUnavailableError(
                f"timed out after {self.lock_timeout_s}s waiting for the {self.name.value} write lock",
                action=f"write to graph {self.name.value}",
                system_action="the write was not applied",
                user_action="retry the write",
            )
        try:
            yield
        finally:
            self._lock.release()

    # ---- writes (caller holds the lock) -------------------------------------------------

    def _put_vertex(self, entity: LineageEntity, stats: MergeStats) -> None:
        slot = self._slots.get(entity.guid)
        if slot is None:
            self._slots[entity.guid] = len(self._vertices)
            self._vertices.append(entity)
            stats.vertices_added += 1
            self._version += 1
            return
        current = self._vertices[slot]
        if current is None:
            raise RuntimeError(f"{self.name.value}: live guid {entity.guid!r} points at tombstoned slot {slot}")
        merged = current.merged_with(entity)
        if merged.type_name != current.type_name or merged.properties != current.properties:
            self._vertices[slot] = merged
            stats.vertices_updated += 1
            self._version += 1

    def _put_edge(self, edge: Edge, stats: MergeStats) -> None:
        if edge.key in self._edge_slots:
            stats.edges_skipped += 1
            return
        src = self._slots[edge.from_guid]
        dst = self._slots[edge.to_guid]
        slot = len(self._edges)
        self._edges.append(edge)
        self._edge_slots[edge.key] = slot
        self._out.setdefault(src, {})[slot] = None
        self._in.setdefault(dst, {})[slot] = None
        stats.edges_added += 1
        self._version += 1

    def _drop_edge(self, slot: int) -> None:
        edge = self._edges[slot]
        if edge is None:
            return
        self._out.get(self._slots[edge.from_guid], {}).pop(slot, None)
        self._in.get(self._slots[edge.to_guid], {}).pop(slot, None)
        del self._edge_slots[edge.key]
        self._edges[slot] = None

    def _merge(self, vertices: Iterable[LineageEntity], edges: Iterable[Edge]) -> MergeStats:
        vertices = list(vertices)
        edges = list(edges)
        stats = MergeStats()
        with self._writing():
            incoming = {v.guid for v in vertices}
            for e in edges:
                for guid in (e.from_guid, e.to_guid):
                    if guid not in incoming and guid not in self._slots:
                        raise MalformedEventError(
                            f"edge {e.label} {e.from_guid} -> {e.to_guid} references unknown vertex {guid!r}",
                            action=f"merge into graph {self.name.value}",
                            system_action="nothing from this batch was merged",
                        )
            for v in vertices:
                self._put_vertex(v, stats)
            for e in edges:
                self._put_edge(e, stats)
        logger.debug("merged into %s: %s", self.name.value, stats)
        return stats

    # ---- public write API -------------------------------------------------------------

    def upsert_vertex(self, entity: LineageEntity) -> bool:
        """Insert the vertex, or merge its properties into the existing one. True if newly added."""
        return self._merge([entity], []).vertices_added == 1

    def upsert_edge(self, edge: Edge) -> bool:
        """Insert the edge if absent. Both endpoints must already exist. True if newly added."""
        with self._writing():
            for guid in (edge.from_guid, edge.to_guid):
                if guid not in self._slots:
                    raise VertexNotFoundError(guid, self.name.value, action="upsert edge")
            stats = MergeStats()
            self._put_edge(edge, stats)
        return stats.edges_added == 1

    def merge(self, context: AssetContext) -> MergeStats:
        """Atomically merge a staged subgraph: all of it, or nothing."""
        return self._merge(context.vertices, context.edges)

    def merge_snapshot(self, snapshot: GraphSnapshot) -> MergeStats:
        return self._merge(snapshot.vertices.values(), snapshot.edges)

    def merge_elements(self, vertices: Iterable[LineageEntity], edges: Iterable[Edge]) -> MergeStats:
        """Merge loose elements; edge endpoints may be in the batch or already in this graph."""
        return self._merge(vertices, edges)

    def remove_vertex(self, guid: str) -> bool:
        """Remove a vertex and every edge that references it."""
        with self._writing():
            slot = self._slots.get(guid)
            if slot is None:
                return False
            for edge_slot in list(self._out.pop(slot, {})) + list(self._in.pop(slot, {})):
                self._drop_edge(edge_slot)
            self._vertices[slot] = None
            del self._slots[guid]
            self._version += 1
        logger.debug("removed vertex %s from %s", guid, self.name.value)
        return True

    def clear(self) -> None:
        with self._writing():
            self._reset()

    # ---- reads ------------------------------------------------------------------------

    def view(self) -> GraphSnapshot:
        """Consistent point-in-time snapshot of this graph."""
        with self._lock:
            if self._cached is not None and self._cached.version == self._version:
                return self._cached
            vertices = {v.guid: v for v in self._vertices if v is not None}
            edges = tuple(e for e in self._edges if e is not None)
            outgoing: dict[str, tuple[Edge, ...]] = {}
            incoming: dict[str, tuple[Edge, ...]] = {}
            for slot, edge_slots in self._out.items():
                if edge_slots:
                    outgoing[self._vertices[slot].guid] = tuple(self._edges[s] for s in edge_slots)
            for slot, edge_slots in self._in.items():
                if edge_slots:
                    incoming[self._vertices[slot].guid] = tuple(self._edges[s] for s in edge_slots)
            self._cached = GraphSnapshot(
                name=self.name,
                version=self._version,
                vertices=MappingProxyType(vertices),
                edges=edges,
                outgoing=MappingProxyType(outgoing),
                incoming=MappingProxyType(incoming),
            )
            return self._cached

    def get_vertex(self, guid: str) -> LineageEntity | None:
        return self.view().get_vertex(guid)

    def neighbors(self, guid: str, direction: Direction | str = Direction.BOTH) -> list[Edge]:
        return self.view().neighbors(guid, direction)

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._slots)


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    version: int
    source: GraphName
    snapshot: GraphSnapshot
    taken_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class HistoryGraph:
    """Append-only sequence of full-graph snapshots."""

    name = GraphName.HISTORY

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[HistoryEntry] = []

    def append(self, snapshot: GraphSnapshot, source: GraphName) -> HistoryEntry:
        with self._lock:
            entry = HistoryEntry(version=len(self._entries) + 1, source=source, snapshot=snapshot)
            self._entries.append(entry)
        logger.info(
            "history entry %d taken from %s (%d vertices, %d edges)",
            entry.version,
            source.value,
            snapshot.vertex_count,
            snapshot.edge_count,
        )
        return entry

    def entries(self) -> list[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def entry(self, version: int | None = None) -> HistoryEntry:
        with self._lock:
            if not self._entries:
                raise HistoryEmptyError("no history snapshots have been taken", action="read history")
            if version is None:
                return self._entries[-1]
            if not 1 <= version <= len(self._entries):
                raise HistoryEmptyError(
                    f"history version {version} does not exist (have 1..{len(self._entries)})",
                    action="read history",
                )
            return self._entries[version - 1]

    def view(self, version: int | None = None) -> GraphSnapshot:
        if version is None and not self._entries:
            return GraphSnapshot.empty(GraphName.HISTORY)
        return self.entry(version).snapshot

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class GraphRegistry:
    """Owns the four named graphs. Constructed once and passed to whoever needs it."""

    def __init__(self, settings: LineageStoreSettings | None = None):
        self.settings = settings or default_settings
        self._graphs = {
            name: NamedGraph(name, lock_timeout_s=self.settings.write_lock_timeout_s)
            for name in (GraphName.MAIN, GraphName.BUFFER, GraphName.MOCK)
        }
        self.history = HistoryGraph()

    def graph(self, name: GraphName | str) -> NamedGraph:
        name = GraphName(name)
        if name is GraphName.HISTORY:
            raise ValueError("HISTORY is append-only; use GraphRegistry.snapshot() and GraphRegistry.history")
        return self._graphs[name]

    def view(self, name: GraphName | str, *, version: int | None = None) -> GraphSnapshot:
        name = GraphName(name)
        if name is GraphName.HISTORY:
            return self.history.view(version)
        return self._graphs[name].view()

    def snapshot(self, name: GraphName | str = GraphName.MAIN) -> HistoryEntry:
        """Copy the current state of a live graph into a new HISTORY entry."""
        source = self.graph(name)
        return self.history.append(source.view(), source.name)

    def promote_buffer(self) -> MergeStats:
        """Move everything accumulated in BUFFER into MAIN and empty BUFFER."""
        buffer = self._graphs[GraphName.BUFFER]
        main = self._graphs[GraphName.MAIN]
        with buffer._writing():
            staged = buffer.view()
            stats = main.merge_snapshot(staged)
            buffer._reset()
        logger.info("promoted BUFFER into MAIN: %s", stats)
        return stats

    def reset(self, name: GraphName | str) -> None:
        name = GraphName(name)
        if name is GraphName.HISTORY:
            self.history.clear()
        else:
            self._graphs[name].clear()
