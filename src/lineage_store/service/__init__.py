"""Query/export facade and HTTP surface for the lineage store."""

from .graph_service import LineageGraphService

__all__ = ["LineageGraphService"]
