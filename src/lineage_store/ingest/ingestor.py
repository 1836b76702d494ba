"""
Event ingestion: decode, stage into an AssetContext, merge into a named graph.

Each event is handled on its own: a malformed event is logged and skipped, a
graph that stays unavailable past the retry budget sends the event to the
dead-letter queue. Neither stops the feed.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from ..errors import MalformedEventError, StoreUnavailableError
from ..graph.constants import PROCESS_RELATIONSHIP_TYPES
from ..graph.context import AssetContext
from ..graph.models import Edge, GraphName
from ..graph.store import GraphRegistry, MergeStats, NamedGraph
from ..settings import LineageStoreSettings
from .events import ProcessLineageEvent, decode_event

logger = logging.getLogger(__name__)


def store_retry(cfg: LineageStoreSettings):
    return retry(
        reraise=True,
        stop=stop_after_attempt(cfg.retry_attempts),
        wait=wait_exponential_jitter(
            initial=cfg.retry_initial_wait_s,
            max=cfg.retry_max_wait_s,
            jitter=cfg.retry_initial_wait_s,
        ),
        retry=retry_if_exception_type(StoreUnavailableError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


class IngestStatus(str, Enum):
    MERGED = "merged"
    SKIPPED = "skipped"
    DEAD_LETTERED = "dead_lettered"


@dataclass(slots=True)
class IngestResult:
    status: IngestStatus
    event_id: str | None = None
    graph: GraphName | None = None
    stats: MergeStats | None = None
    error: str | None = None
    merge_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class DeadLetter:
    event: ProcessLineageEvent
    graph: GraphName
    error: str
    attempts: int
    failed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event.event_id,
            "graph": self.graph.value,
            "error": self.error,
            "attempts": self.attempts,
            "failed_at": self.failed_at.isoformat(),
        }


class DeadLetterQueue:
    """Events that could not be merged after all retries."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: list[DeadLetter] = []

    def append(self, letter: DeadLetter) -> None:
        with self._lock:
            self._items.append(letter)

    def items(self) -> list[DeadLetter]:
        with self._lock:
            return list(self._items)

    def drain(self) -> list[DeadLetter]:
        with self._lock:
            items, self._items = self._items, []
            return items

    def __len__(self) -> int:
        return len(self._items)


def build_context(event: ProcessLineageEvent) -> AssetContext:
    """Stage the vertices and rule-table edges described by one event."""
    ctx = AssetContext()
    process = event.process.to_entity()
    ctx.add_vertex(process)

    for element in event.elements:
        entity = element.entity.to_entity()
        ctx.add_vertex(entity)
        rel_type = PROCESS_RELATIONSHIP_TYPES.get(entity.type_name)
        if rel_type is None:
            continue
        anchor = element.related_guid or process.guid
        if element.direction == "outgoing":
            ctx.add_edge(Edge(anchor, entity.guid, rel_type))
        else:
            ctx.add_edge(Edge(entity.guid, anchor, rel_type))

    for rel in event.relationships:
        ctx.add_edge(rel.to_edge())
    return ctx


class EventIngestor:
    """Merges decoded lineage events into the registry's graphs, one at a time, in arrival order."""

    def __init__(
        self,
        registry: GraphRegistry,
        *,
        settings: LineageStoreSettings | None = None,
        default_graph: GraphName | str = GraphName.MAIN,
        dead_letters: DeadLetterQueue | None = None,
    ):
        self.registry = registry
        self.settings = settings or registry.settings
        self.default_graph = GraphName(default_graph)
        self.dead_letters = dead_letters if dead_letters is not None else DeadLetterQueue()
        self._merge = store_retry(self.settings)(self._merge_once)

    @staticmethod
    def _merge_once(graph: NamedGraph, ctx: AssetContext) -> MergeStats:
        return graph.merge(ctx)

    def target_for(self, event: ProcessLineageEvent) -> GraphName:
        return GraphName.BUFFER if event.partial else self.default_graph

    def ingest(self, payload: ProcessLineageEvent | dict[str, Any] | str | bytes) -> IngestResult:
        try:
            event = decode_event(payload)
        except MalformedEventError as e:
            logger.warning("skipping malformed lineage event: %s", e)
            return IngestResult(status=IngestStatus.SKIPPED, error=str(e))

        target = self.target_for(event)
        ctx = build_context(event)
        t0 = time.perf_counter()
        try:
            stats = self._merge(self.registry.graph(target), ctx)
        except MalformedEventError as e:
            logger.warning("skipping lineage event %s: %s", event.event_id, e)
            return IngestResult(status=IngestStatus.SKIPPED, event_id=event.event_id, graph=target, error=str(e))
        except StoreUnavailableError as e:
            self.dead_letters.append(
                DeadLetter(event=event, graph=target, error=str(e), attempts=self.settings.retry_attempts)
            )
            logger.error(
                "dead-lettered lineage event %s after %d attempts: %s",
                event.event_id,
                self.settings.retry_attempts,
                e,
            )
            return IngestResult(
                status=IngestStatus.DEAD_LETTERED, event_id=event.event_id, graph=target, error=str(e)
            )

        merge_ms = (time.perf_counter() - t0) * 1000.0
        logger.debug("merged event %s into %s: %s", event.event_id, target.value, stats)
        return IngestResult(
            status=IngestStatus.MERGED, event_id=event.event_id, graph=target, stats=stats, merge_ms=merge_ms
        )

    def ingest_many(self, feed: Iterable[ProcessLineageEvent | dict[str, Any] | str | bytes]) -> list[IngestResult]:
        return [self.ingest(payload) for payload in feed]
