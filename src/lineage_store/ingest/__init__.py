"""Lineage event decoding and ingestion."""

from .events import EntityPayload, EventElement, ProcessLineageEvent, RelationshipPayload, decode_event
from .ingestor import DeadLetter, DeadLetterQueue, EventIngestor, IngestResult, IngestStatus, build_context

__all__ = [
    "DeadLetter",
    "DeadLetterQueue",
    "EntityPayload",
    "EventElement",
    "EventIngestor",
    "IngestResult",
    "IngestStatus",
    "ProcessLineageEvent",
    "RelationshipPayload",
    "build_context",
    "decode_event",
]
