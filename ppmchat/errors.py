from __future__ import annotations

from typing import List, Optional, Sequence


class ChatError(Exception):
    """Base class for failures that are turned into a chat reply."""


class SchemaFetchError(ChatError):
    def __init__(self, object_type: str, detail: str):
        super().__init__(f"Could not load schema for {object_type}: {detail}")
        self.object_type = object_type
        self.detail = detail


class FieldNotFoundError(ChatError):
    def __init__(self, field: str, object_label: str, alternatives: Sequence):
        super().__init__(f"Field {field!r} not found in {object_label}")
        self.field = field
        self.object_label = object_label
        # AttributeDescriptor list, already in groupable order
        self.alternatives = list(alternatives)


class RecordNotFoundError(ChatError):
    def __init__(self, object_type: str, name: Optional[str]):
        super().__init__(f"No {object_type} record matching {name!r}")
        self.object_type = object_type
        self.name = name


class PlanParseError(ChatError):
    def __init__(self, raw: str, reason: str = "no structured plan in reply"):
        super().__init__(reason)
        self.raw = raw
        self.reason = reason


class DrillDownAmbiguousError(ChatError):
    def __init__(self, requested: Optional[str], options: List[str]):
        super().__init__(f"No chart value matches {requested!r}")
        self.requested = requested
        self.options = list(options)


class RemoteCallError(ChatError):
    """Non-2xx answer (or transport failure) from the remote object API."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        method: str = "GET",
        endpoint: str = "",
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.status = status
        self.method = method
        self.endpoint = endpoint
        self.timed_out = timed_out

    @property
    def is_auth(self) -> bool:
        return self.status in (401, 403)

    @property
    def kind(self) -> str:
        text = str(self).lower()
        if self.status == 404 or "not found" in text:
            return "not_found"
        if self.is_auth or "auth" in text:
            return "auth"
        if self.timed_out or "timeout" in text or "timed out" in text or "connection" in text:
            return "timeout"
        return "other"
