"""Error hierarchy for the lineage store.

Every error carries enough context to be reported over HTTP and acted upon
by an operator: the HTTP code, what was being done, what the system did about
it and what the caller can do.
"""

from __future__ import annotations

from typing import Any


class LineageStoreError(Exception):
    """Base class for all lineage store errors."""

    http_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        action: str | None = None,
        system_action: str | None = None,
        user_action: str | None = None,
        http_code: int | None = None,
        retryable: bool | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.action = action
        self.system_action = system_action
        self.user_action = user_action
        if http_code is not None:
            self.http_code = http_code
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "action": self.action,
            "system_action": self.system_action,
            "user_action": self.user_action,
            "retryable": self.retryable,
        }


class MalformedEventError(LineageStoreError):
    """An inbound lineage event is missing identifying fields or references unknown vertices."""

    http_code = 400


class StoreUnavailableError(LineageStoreError):
    """The target graph could not accept a write right now (e.g. write lock timeout)."""

    http_code = 503
    retryable = True


class VertexNotFoundError(LineageStoreError):
    http_code = 404

    def __init__(self, guid: str, graph_name: str, **kwargs: Any):
        super().__init__(f"vertex {guid!r} not found in graph {graph_name}", **kwargs)
        self.guid = guid
        self.graph_name = graph_name


class HistoryEmptyError(LineageStoreError):
    http_code = 404


class TraversalBudgetExceeded(LineageStoreError):
    """A scoped traversal ran past its hop or time budget.

    `partial` holds the subgraph collected before the traversal was aborted.
    """

    http_code = 422

    def __init__(self, message: str, *, partial: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.partial = partial


class GraphDumpError(LineageStoreError):
    """Writing a graph dump or export to durable storage failed."""

    http_code = 503
    retryable = True
