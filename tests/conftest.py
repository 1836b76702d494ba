from __future__ import annotations

import pytest

from lineage_store.graph import Edge, GraphName, GraphRegistry, LineageEntity, TraversalEngine
from lineage_store.ingest import EventIngestor
from lineage_store.service import LineageGraphService
from lineage_store.settings import LineageStoreSettings


@pytest.fixture()
def settings(tmp_path) -> LineageStoreSettings:
    return LineageStoreSettings(
        dump_dir=str(tmp_path / "dumps"),
        retry_attempts=3,
        retry_initial_wait_s=0.0,
        retry_max_wait_s=0.0,
        write_lock_timeout_s=0.05,
    )


@pytest.fixture()
def registry(settings) -> GraphRegistry:
    reg = GraphRegistry(settings)
    yield reg
    reg.reset(GraphName.MOCK)


@pytest.fixture()
def engine(registry) -> TraversalEngine:
    return TraversalEngine(registry)


@pytest.fixture()
def ingestor(registry) -> EventIngestor:
    return EventIngestor(registry)


@pytest.fixture()
def service(registry, settings) -> LineageGraphService:
    return LineageGraphService(registry, settings=settings)


def add(graph, vertices: list[tuple[str, str]], edges: list[tuple[str, str, str]]) -> None:
    """Load (guid, type) vertices and (from, to, label) edges into a NamedGraph."""
    for guid, type_name in vertices:
        graph.upsert_vertex(LineageEntity(guid, type_name, {"name": guid}))
    for src, dst, label in edges:
        graph.upsert_edge(Edge(src, dst, label))


@pytest.fixture()
def table_graph(registry):
    """T1 (table) holds C1 and C2 (columns); C1 feeds C2."""
    main = registry.graph(GraphName.MAIN)
    add(
        main,
        [("T1", "RelationalTable"), ("C1", "RelationalColumn"), ("C2", "RelationalColumn")],
        [
            ("T1", "C1", "AttributeForSchema"),
            ("T1", "C2", "AttributeForSchema"),
            ("C1", "C2", "LineageMapping"),
        ],
    )
    return main


@pytest.fixture()
def load_graph():
    return add
