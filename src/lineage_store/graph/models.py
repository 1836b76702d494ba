from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def _squash(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "", value).upper()


class _LenientEnum(str, Enum):
    """String enum that parses case- and separator-insensitively.

    `Scope("ultimate-source")`, `Scope("ULTIMATE_SOURCE")` and `Scope("ultimateSource")`
    all resolve to `Scope.ULTIMATE_SOURCE`.
    """

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            key = _squash(value)
            for member in cls:
                if _squash(member.value) == key:
                    return member
        return None


class GraphName(_LenientEnum):
    MAIN = "MAIN"
    BUFFER = "BUFFER"
    MOCK = "MOCK"
    HISTORY = "HISTORY"


class Scope(_LenientEnum):
    SOURCE_AND_DESTINATION = "SOURCE_AND_DESTINATION"
    END_TO_END = "END_TO_END"
    ULTIMATE_SOURCE = "ULTIMATE_SOURCE"
    ULTIMATE_DESTINATION = "ULTIMATE_DESTINATION"
    GLOSSARY = "GLOSSARY"


class View(_LenientEnum):
    HOST_VIEW = "HOST_VIEW"
    TABLE_VIEW = "TABLE_VIEW"
    COLUMN_VIEW = "COLUMN_VIEW"


class Direction(_LenientEnum):
    OUTGOING = "OUTGOING"
    INCOMING = "INCOMING"
    BOTH = "BOTH"


class CyclePolicy(_LenientEnum):
    """How traversals report edges that lead back into already-visited vertices."""

    INCLUDE = "INCLUDE"
    PRUNE = "PRUNE"


@dataclass(frozen=True, slots=True)
class LineageEntity:
    """A vertex. Identity is the GUID; properties are replaced, never mutated in place."""

    guid: str
    type_name: str
    properties: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def merged_with(self, newer: LineageEntity) -> LineageEntity:
        props = dict(self.properties)
        props.update(newer.properties)
        return LineageEntity(guid=self.guid, type_name=newer.type_name or self.type_name, properties=props)


EdgeKey = tuple[str, str, str]


@dataclass(frozen=True, slots=True)
class Edge:
    """A directed, labelled edge. Identity is (from_guid, to_guid, label)."""

    from_guid: str
    to_guid: str
    label: str
    properties: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> EdgeKey:
        return (self.from_guid, self.to_guid, self.label)

    def other(self, guid: str) -> str:
        return self.to_guid if guid == self.from_guid else self.from_guid


@dataclass(slots=True)
class Subgraph:
    """Result of a scoped traversal: vertices and edges, in discovery order."""

    vertices: list[LineageEntity] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    # GUIDs with no further lineage edges in the traversal direction
    terminals: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.vertices and not self.edges

    def guids(self) -> list[str]:
        return [v.guid for v in self.vertices]

    def edge_keys(self) -> list[EdgeKey]:
        return [e.key for e in self.edges]
