"""
Property-graph interchange formats.

- GraphSON (JSON): query results and whole-graph exports, rendered with pydantic.
- GraphML (XML): whole-graph dumps, rendered with ElementTree.

Both directions are supported so an export can be re-imported. Writes to disk
go through a temp file in the target directory followed by `os.replace`, so a
previous dump is never replaced by a partial one.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from contextlib import suppress
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import GraphDumpError, MalformedEventError
from .models import Edge, LineageEntity, Subgraph
from .store import GraphSnapshot

logger = logging.getLogger(__name__)

GRAPHML_NS = "http://graphml.graphdrawing.org/xmlns"
_EDGE_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "lineage-store/edge")


def edge_id(edge: Edge) -> str:
    """Deterministic id for an edge, derived from its identity triple."""
    return str(uuid.uuid5(_EDGE_NAMESPACE, "\x1f".join(edge.key)))


# ---- GraphSON ---------------------------------------------------------------------------


class GraphSONVertex(BaseModel):
    id: str
    label: str
    properties: dict[str, Any] = Field(default_factory=dict)


class GraphSONEdge(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    label: str
    out_v: str = Field(alias="outV")
    in_v: str = Field(alias="inV")
    properties: dict[str, Any] = Field(default_factory=dict)


class GraphSONDocument(BaseModel):
    mode: str = "NORMAL"
    vertices: list[GraphSONVertex] = Field(default_factory=list)
    edges: list[GraphSONEdge] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


def _graphson(vertices: Iterable[LineageEntity], edges: Iterable[Edge], meta: dict[str, Any] | None) -> str:
    doc = GraphSONDocument(
        vertices=[GraphSONVertex(id=v.guid, label=v.type_name, properties=dict(v.properties)) for v in vertices],
        edges=[
            GraphSONEdge(id=edge_id(e), label=e.label, out_v=e.from_guid, in_v=e.to_guid, properties=dict(e.properties))
            for e in edges
        ],
        meta=meta or {},
    )
    return doc.model_dump_json(by_alias=True)


def subgraph_to_graphson(subgraph: Subgraph, meta: dict[str, Any] | None = None) -> str:
    meta = dict(meta or {})
    meta.setdefault("terminals", list(subgraph.terminals))
    return _graphson(subgraph.vertices, subgraph.edges, meta)


def snapshot_to_graphson(snapshot: GraphSnapshot) -> str:
    meta = {"graph": snapshot.name.value, "version": snapshot.version}
    return _graphson(snapshot.vertices.values(), snapshot.edges, meta)


def parse_graphson(text: str | bytes) -> tuple[list[LineageEntity], list[Edge]]:
    try:
        doc = GraphSONDocument.model_validate_json(text)
    except ValidationError as e:
        raise MalformedEventError(f"invalid GraphSON: {e.error_count()} error(s)", action="import GraphSON") from e
    vertices = [LineageEntity(guid=v.id, type_name=v.label, properties=dict(v.properties)) for v in doc.vertices]
    edges = [Edge(e.out_v, e.in_v, e.label, dict(e.properties)) for e in doc.edges]
    return vertices, edges


# ---- GraphML ----------------------------------------------------------------------------


def _graphml_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "long"
    if isinstance(value, float):
        return "double"
    return "string"


def _graphml_text(value: Any, attr_type: str) -> str:
    if attr_type == "boolean":
        return "true" if value else "false"
    if attr_type in ("long", "double"):
        return repr(value)
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, default=str)


def _graphml_value(text: str | None, attr_type: str) -> Any:
    text = text or ""
    if attr_type == "boolean":
        return text.strip().lower() == "true"
    if attr_type in ("int", "long"):
        return int(text)
    if attr_type in ("float", "double"):
        return float(text)
    return text


def _key_types(items: Iterable[dict[str, Any]]) -> dict[str, str]:
    types: dict[str, str] = {}
    for props in items:
        for name, value in props.items():
            t = _graphml_type(value)
            # mixed types under one name degrade to string
            types[name] = t if types.get(name, t) == t else "string"
    return types


def to_graphml(vertices: Iterable[LineageEntity], edges: Iterable[Edge], graph_id: str = "G") -> str:
    vertices = list(vertices)
    edges = list(edges)
    node_types = _key_types(v.properties for v in vertices)
    edge_types = _key_types(e.properties for e in edges)

    root = ET.Element("graphml", {"xmlns": GRAPHML_NS})
    ET.SubElement(root, "key", {"id": "labelV", "for": "node", "attr.name": "labelV", "attr.type": "string"})
    ET.SubElement(root, "key", {"id": "labelE", "for": "edge", "attr.name": "labelE", "attr.type": "string"})
    for name, t in node_types.items():
        ET.SubElement(root, "key", {"id": f"v.{name}", "for": "node", "attr.name": name, "attr.type": t})
    for name, t in edge_types.items():
        ET.SubElement(root, "key", {"id": f"e.{name}", "for": "edge", "attr.name": name, "attr.type": t})

    graph = ET.SubElement(root, "graph", {"id": graph_id, "edgedefault": "directed"})
    for v in vertices:
        node = ET.SubElement(graph, "node", {"id": v.guid})
        ET.SubElement(node, "data", {"key": "labelV"}).text = v.type_name
        for name, value in v.properties.items():
            ET.SubElement(node, "data", {"key": f"v.{name}"}).text = _graphml_text(value, node_types[name])
    for e in edges:
        el = ET.SubElement(graph, "edge", {"id": edge_id(e), "source": e.from_guid, "target": e.to_guid})
        ET.SubElement(el, "data", {"key": "labelE"}).text = e.label
        for name, value in e.properties.items():
            ET.SubElement(el, "data", {"key": f"e.{name}"}).text = _graphml_text(value, edge_types[name])

    ET.indent(root)
    return ET.tostring(root, encoding="unicode", xml_declaration=True)


def snapshot_to_graphml(snapshot: GraphSnapshot) -> str:
    return to_graphml(snapshot.vertices.values(), snapshot.edges, graph_id=snapshot.name.value)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_graphml(text: str | bytes) -> tuple[list[LineageEntity], list[Edge]]:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise MalformedEventError(f"invalid GraphML: {e}", action="import GraphML") from e

    keys: dict[str, tuple[str, str]] = {}
    for el in root.iter():
        if _local(el.tag) == "key":
            keys[el.attrib["id"]] = (el.attrib.get("attr.name", el.attrib["id"]), el.attrib.get("attr.type", "string"))

    def read_data(el: ET.Element, label_key: str) -> tuple[str, dict[str, Any]]:
        label = ""
        props: dict[str, Any] = {}
        for data in el:
            if _local(data.tag) != "data":
                continue
            key = data.attrib.get("key", "")
            if key == label_key:
                label = data.text or ""
                continue
            name, attr_type = keys.get(key, (key, "string"))
            props[name] = _graphml_value(data.text, attr_type)
        return label, props

    vertices: list[LineageEntity] = []
    edges: list[Edge] = []
    for el in root.iter():
        tag = _local(el.tag)
        if tag == "node":
            label, props = read_data(el, "labelV")
            vertices.append(LineageEntity(guid=el.attrib["id"], type_name=label, properties=props))
        elif tag == "edge":
            label, props = read_data(el, "labelE")
            edges.append(Edge(el.attrib["source"], el.attrib["target"], label, props))
    return vertices, edges


# ---- durable writes ---------------------------------------------------------------------


def atomic_write_text(path: str | os.PathLike[str], text: str) -> Path:
    """Write `text` to `path` via a temp file in the same directory and an atomic rename."""
    target = Path(path)
    tmp: str | None = None
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, target)
    except OSError as e:
        if tmp is not None:
            with suppress(OSError):
                os.unlink(tmp)
        raise GraphDumpError(
            f"failed to write {target}: {e}",
            action="write graph file",
            system_action="the previous file, if any, was left in place",
            user_action="check the target directory and retry",
        ) from e
    logger.info("wrote %s (%d bytes)", target, len(text))
    return target
