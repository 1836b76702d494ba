from __future__ import annotations

import os
from dataclasses import asdict
from enum import Enum
from typing import Any, TypeVar

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import Response

from lineage_store import __version__

from ..errors import LineageStoreError, TraversalBudgetExceeded
from ..graph.models import GraphName, Scope, View
from ..graph.serializers import subgraph_to_graphson
from .graph_service import LineageGraphService

E = TypeVar("E", bound=Enum)


def _enum(cls: type[E], value: str) -> E:
    try:
        return cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in cls)
        raise HTTPException(status_code=400, detail=f"invalid {cls.__name__} {value!r}; expected one of {allowed}")


def _fail(e: LineageStoreError) -> HTTPException:
    detail = e.to_dict()
    if isinstance(e, TraversalBudgetExceeded) and e.partial is not None:
        detail["partial"] = subgraph_to_graphson(e.partial)
    return HTTPException(status_code=e.http_code, detail=detail)


def _graphson(text: str) -> Response:
    return Response(content=text, media_type="application/json")


def create_app(service: LineageGraphService | None = None) -> FastAPI:
    app = FastAPI(title="Lineage Store", version=__version__)
    svc = service or LineageGraphService()
    app.state.lineage_service = svc

    @app.get("/health")
    async def health():
        main = svc.registry.view(GraphName.MAIN)
        return {
            "ok": True,
            "host": os.uname().nodename,
            "main": {"vertices": main.vertex_count, "edges": main.edge_count},
            "history": len(svc.registry.history),
            "dead_letters": len(svc.ingestor.dead_letters),
        }

    @app.post("/v1/events")
    def ingest_event(payload: dict[str, Any] = Body(...)):
        result = svc.add_entity(payload)
        return {
            "status": result.status.value,
            "event_id": result.event_id,
            "graph": result.graph.value if result.graph else None,
            "stats": asdict(result.stats) if result.stats else None,
            "error": result.error,
        }

    @app.get("/v1/lineage/{graph}/{scope}/{view}/{guid}")
    def lineage(graph: str, scope: str, view: str, guid: str, version: int | None = None):
        g, s, v = _enum(GraphName, graph), _enum(Scope, scope), _enum(View, view)
        try:
            return _graphson(svc.lineage(g, s, v, guid, version=version))
        except LineageStoreError as e:
            raise _fail(e)

    @app.get("/v1/graphs/{graph}/export")
    def export_graph(graph: str, version: int | None = None):
        try:
            return _graphson(svc.export_graph(_enum(GraphName, graph), version=version))
        except LineageStoreError as e:
            raise _fail(e)

    @app.post("/v1/graphs/{graph}/dump")
    def dump_graph(graph: str, version: int | None = None):
        try:
            svc.dump_graph(_enum(GraphName, graph), version=version)
        except LineageStoreError as e:
            raise _fail(e)
        return {"ok": True}

    @app.post("/v1/graphs/{graph}/snapshot")
    def snapshot(graph: str):
        g = _enum(GraphName, graph)
        if g is GraphName.HISTORY:
            raise HTTPException(status_code=400, detail="cannot snapshot HISTORY into itself")
        entry = svc.snapshot(g)
        return {
            "version": entry.version,
            "source": entry.source.value,
            "taken_at": entry.taken_at.isoformat(),
            "vertices": entry.snapshot.vertex_count,
            "edges": entry.snapshot.edge_count,
        }

    @app.post("/v1/graphs/buffer/promote")
    def promote_buffer():
        try:
            return asdict(svc.promote_buffer())
        except LineageStoreError as e:
            raise _fail(e)

    @app.get("/v1/dead-letters")
    def dead_letters():
        items = [d.to_dict() for d in svc.dead_letters()]
        return {"count": len(items), "items": items}

    return app
