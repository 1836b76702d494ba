from __future__ import annotations

import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import MalformedEventError
from ..graph.models import Edge, LineageEntity

_MODEL_CONFIG = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")


class EntityPayload(BaseModel):
    model_config = _MODEL_CONFIG

    guid: str = Field(min_length=1)
    type_name: str = Field(min_length=1, alias="typeName")
    properties: dict[str, Any] = Field(default_factory=dict)

    def to_entity(self) -> LineageEntity:
        return LineageEntity(guid=self.guid, type_name=self.type_name, properties=dict(self.properties))


class EventElement(BaseModel):
    """A schema/port/term element touched by the process.

    The rule table decides which relationship links it to its anchor: the
    vertex named by `related_guid`, or the process itself when unset.
    """

    model_config = _MODEL_CONFIG

    entity: EntityPayload
    related_guid: str | None = Field(default=None, alias="relatedGuid")
    # outgoing: anchor -> element, incoming: element -> anchor
    direction: Literal["outgoing", "incoming"] = "outgoing"


class RelationshipPayload(BaseModel):
    model_config = _MODEL_CONFIG

    from_guid: str = Field(min_length=1, alias="fromGuid")
    to_guid: str = Field(min_length=1, alias="toGuid")
    label: str = Field(min_length=1)
    properties: dict[str, Any] = Field(default_factory=dict)

    def to_edge(self) -> Edge:
        return Edge(self.from_guid, self.to_guid, self.label, dict(self.properties))


class ProcessLineageEvent(BaseModel):
    """A decoded lineage event describing one process and what it touches."""

    model_config = _MODEL_CONFIG

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="eventId")
    process: EntityPayload
    elements: list[EventElement] = Field(default_factory=list)
    relationships: list[RelationshipPayload] = Field(default_factory=list)
    # partial, multi-step assemblies land in BUFFER until promoted
    partial: bool = False


def decode_event(payload: ProcessLineageEvent | dict[str, Any] | str | bytes) -> ProcessLineageEvent:
    if isinstance(payload, ProcessLineageEvent):
        return payload
    try:
        if isinstance(payload, (str, bytes, bytearray)):
            return ProcessLineageEvent.model_validate_json(payload)
        return ProcessLineageEvent.model_validate(payload)
    except ValidationError as e:
        raise MalformedEventError(
            f"malformed lineage event: {e.error_count()} validation error(s): {e.errors()[0]['msg']}",
            action="decode lineage event",
            system_action="the event was skipped",
        ) from e
