from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal

from ..graph.models import GraphName, Scope, View
from ..graph.serializers import (
    atomic_write_text,
    parse_graphml,
    parse_graphson,
    snapshot_to_graphml,
    snapshot_to_graphson,
    subgraph_to_graphson,
)
from ..graph.store import GraphRegistry, GraphSnapshot, HistoryEntry, MergeStats
from ..graph.traversal import TraversalEngine
from ..ingest.events import ProcessLineageEvent
from ..ingest.ingestor import DeadLetter, EventIngestor, IngestResult
from ..settings import LineageStoreSettings, settings as default_settings

logger = logging.getLogger(__name__)


class LineageGraphService:
    """Query and export API over the lineage graphs.

    Wires one `GraphRegistry` to an ingestor and a traversal engine and renders
    results in GraphSON (queries, exports) or GraphML (dumps).
    """

    def __init__(
        self,
        registry: GraphRegistry | None = None,
        *,
        settings: LineageStoreSettings | None = None,
        ingestor: EventIngestor | None = None,
        engine: TraversalEngine | None = None,
    ):
        self.settings = settings or (registry.settings if registry is not None else default_settings)
        self.registry = registry or GraphRegistry(self.settings)
        self.ingestor = ingestor or EventIngestor(self.registry, settings=self.settings)
        self.engine = engine or TraversalEngine(self.registry, settings=self.settings)

    def add_entity(self, event: ProcessLineageEvent | dict[str, Any] | str | bytes) -> IngestResult:
        return self.ingestor.ingest(event)

    def lineage(
        self,
        graph_name: GraphName | str,
        scope: Scope | str,
        view: View | str,
        guid: str,
        *,
        version: int | None = None,
    ) -> str:
        graph_name, scope, view = GraphName(graph_name), Scope(scope), View(view)
        subgraph = self.engine.lineage(graph_name, scope, view, guid, version=version)
        meta = {"graph": graph_name.value, "scope": scope.value, "view": view.value, "guid": guid}
        return subgraph_to_graphson(subgraph, meta=meta)

    def _snapshot_for(self, graph_name: GraphName, version: int | None) -> tuple[GraphSnapshot, str]:
        if graph_name is GraphName.HISTORY:
            entry = self.registry.history.entry(version)
            return entry.snapshot, f"history-v{entry.version}"
        return self.registry.view(graph_name), graph_name.value.lower()

    def dump_path(self, stem: str) -> Path:
        return Path(self.settings.dump_dir).expanduser() / f"{stem}.graphml"

    def dump_graph(self, graph_name: GraphName | str, *, version: int | None = None) -> None:
        """Write the whole graph as GraphML under `settings.dump_dir`."""
        snapshot, stem = self._snapshot_for(GraphName(graph_name), version)
        atomic_write_text(self.dump_path(stem), snapshot_to_graphml(snapshot))

    def export_graph(
        self,
        graph_name: GraphName | str,
        *,
        version: int | None = None,
        path: str | os.PathLike[str] | None = None,
    ) -> str:
        graph_name = GraphName(graph_name)
        if graph_name is GraphName.HISTORY and version is None and not len(self.registry.history):
            snapshot = GraphSnapshot.empty(GraphName.HISTORY)
        else:
            snapshot, _ = self._snapshot_for(graph_name, version)
        text = snapshot_to_graphson(snapshot)
        if path is not None:
            atomic_write_text(path, text)
        return text

    def import_graph(
        self,
        graph_name: GraphName | str,
        document: str | bytes,
        fmt: Literal["graphson", "graphml"] = "graphson",
    ) -> MergeStats:
        """Merge a GraphSON or GraphML document into a live graph."""
        parse = parse_graphml if fmt == "graphml" else parse_graphson
        vertices, edges = parse(document)
        graph = self.registry.graph(graph_name)
        stats = graph.merge_elements(vertices, edges)
        logger.info("imported %s document into %s: %s", fmt, graph.name.value, stats)
        return stats

    def snapshot(self, graph_name: GraphName | str = GraphName.MAIN) -> HistoryEntry:
        return self.registry.snapshot(graph_name)

    def promote_buffer(self) -> MergeStats:
        return self.registry.promote_buffer()

    def dead_letters(self) -> list[DeadLetter]:
        return self.ingestor.dead_letters.items()
