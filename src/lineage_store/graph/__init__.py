"""Lineage graph subsystem.

This module provides:
- An arena-backed store for the four named graphs (MAIN, BUFFER, MOCK, HISTORY)
- A per-event staging subgraph (AssetContext)
- Scoped lineage traversal with view-based collapsing
- GraphSON / GraphML rendering and parsing
"""

from .context import AssetContext
from .models import CyclePolicy, Direction, Edge, GraphName, LineageEntity, Scope, Subgraph, View
from .store import GraphRegistry, GraphSnapshot, HistoryEntry, MergeStats, NamedGraph
from .traversal import TraversalEngine
from .views import ContainmentCollapse

__all__ = [
    "AssetContext",
    "ContainmentCollapse",
    "CyclePolicy",
    "Direction",
    "Edge",
    "GraphName",
    "GraphRegistry",
    "GraphSnapshot",
    "HistoryEntry",
    "LineageEntity",
    "MergeStats",
    "NamedGraph",
    "Scope",
    "Subgraph",
    "TraversalEngine",
    "View",
]
