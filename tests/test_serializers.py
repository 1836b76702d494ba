from __future__ import annotations

import json
import os
import xml.etree.ElementTree as ET

import pytest

from lineage_store.errors import GraphDumpError, MalformedEventError
from lineage_store.graph import Edge, GraphName, LineageEntity, Subgraph
from lineage_store.graph.serializers import (
    GRAPHML_NS,
    atomic_write_text,
    edge_id,
    parse_graphml,
    parse_graphson,
    snapshot_to_graphml,
    snapshot_to_graphson,
    subgraph_to_graphson,
)


def _populated(registry):
    main = registry.graph(GraphName.MAIN)
    main.upsert_vertex(LineageEntity("t1", "RelationalTable", {"name": "orders", "rows": 12, "ratio": 0.5}))
    main.upsert_vertex(LineageEntity("c1", "RelationalColumn", {"name": "id", "nullable": False}))
    main.upsert_vertex(LineageEntity("c2", "RelationalColumn", {"name": "order_id"}))
    main.upsert_edge(Edge("t1", "c1", "AttributeForSchema"))
    main.upsert_edge(Edge("c1", "c2", "LineageMapping", {"job": "nightly"}))
    return main


def test_graphson_shape(registry) -> None:
    doc = json.loads(snapshot_to_graphson(_populated(registry).view()))

    assert doc["mode"] == "NORMAL"
    assert doc["meta"]["graph"] == "MAIN"
    assert doc["vertices"][0] == {
        "id": "t1",
        "label": "RelationalTable",
        "properties": {"name": "orders", "rows": 12, "ratio": 0.5},
    }
    edge = doc["edges"][1]
    assert (edge["outV"], edge["inV"], edge["label"]) == ("c1", "c2", "LineageMapping")
    assert edge["properties"] == {"job": "nightly"}
    assert edge["id"] == edge_id(Edge("c1", "c2", "LineageMapping"))


def test_subgraph_graphson_carries_terminals_and_meta() -> None:
    sub = Subgraph(vertices=[LineageEntity("a", "Process")], edges=[], terminals=["a"])

    doc = json.loads(subgraph_to_graphson(sub, meta={"scope": "ULTIMATE_SOURCE"}))

    assert doc["meta"] == {"scope": "ULTIMATE_SOURCE", "terminals": ["a"]}
    assert doc["edges"] == []


def test_graphson_round_trip_is_isomorphic(registry) -> None:
    snap = _populated(registry).view()

    vertices, edges = parse_graphson(snapshot_to_graphson(snap))

    assert {(v.guid, v.type_name) for v in vertices} == {(v.guid, v.type_name) for v in snap.vertices.values()}
    assert {v.guid: v.properties for v in vertices} == {g: v.properties for g, v in snap.vertices.items()}
    assert {e.key for e in edges} == {e.key for e in snap.edges}


def test_graphml_document_structure(registry) -> None:
    xml = snapshot_to_graphml(_populated(registry).view())
    root = ET.fromstring(xml)
    ns = {"g": GRAPHML_NS}

    assert xml.startswith("<?xml")
    graph = root.find("g:graph", ns)
    assert graph.attrib["edgedefault"] == "directed"
    assert [n.attrib["id"] for n in graph.findall("g:node", ns)] == ["t1", "c1", "c2"]
    assert len(graph.findall("g:edge", ns)) == 2
    key_types = {k.attrib["attr.name"]: k.attrib["attr.type"] for k in root.findall("g:key", ns) if k.attrib["for"] == "node"}
    assert key_types["rows"] == "long"
    assert key_types["ratio"] == "double"
    assert key_types["nullable"] == "boolean"


def test_graphml_round_trip_keeps_types(registry) -> None:
    snap = _populated(registry).view()

    vertices, edges = parse_graphml(snapshot_to_graphml(snap))

    by_guid = {v.guid: v for v in vertices}
    assert by_guid["t1"].type_name == "RelationalTable"
    assert by_guid["t1"].properties == {"name": "orders", "rows": 12, "ratio": 0.5}
    assert by_guid["c1"].properties == {"name": "id", "nullable": False}
    assert {e.key for e in edges} == {e.key for e in snap.edges}
    assert [e.properties for e in edges if e.label == "LineageMapping"] == [{"job": "nightly"}]


def test_graphml_mixed_property_types_degrade_to_string() -> None:
    from lineage_store.graph.serializers import to_graphml

    xml = to_graphml([LineageEntity("a", "X", {"v": 1}), LineageEntity("b", "X", {"v": "one"})], [])

    vertices, _ = parse_graphml(xml)
    assert [v.properties["v"] for v in vertices] == ["1", "one"]


def test_atomic_write_replaces_file(tmp_path) -> None:
    target = tmp_path / "out" / "main.graphml"

    atomic_write_text(target, "first")
    atomic_write_text(target, "second")

    assert target.read_text(encoding="utf-8") == "second"
    assert os.listdir(target.parent) == ["main.graphml"]


def test_atomic_write_failure_keeps_previous_file(tmp_path, monkeypatch) -> None:
    target = tmp_path / "main.graphml"
    target.write_text("previous", encoding="utf-8")

    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", boom)
    with pytest.raises(GraphDumpError) as exc:
        atomic_write_text(target, "new contents")

    assert exc.value.retryable is True
    assert target.read_text(encoding="utf-8") == "previous"
    assert os.listdir(tmp_path) == ["main.graphml"]


@pytest.mark.parametrize("bad", ["{not json", '{"vertices": [{"label": "X"}]}'])
def test_parse_graphson_rejects_malformed_documents(bad) -> None:
    with pytest.raises(MalformedEventError):
        parse_graphson(bad)


def test_parse_graphml_rejects_malformed_documents() -> None:
    with pytest.raises(MalformedEventError):
        parse_graphml("<graphml><graph>")
