from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ---------------------------
# Schema
# ---------------------------
@dataclass(frozen=True)
class AttributeDescriptor:
    api_name: str
    display_name: str
    data_type: str = "STRING"
    is_required: bool = False
    is_read_only: bool = False
    is_lookup: bool = False
    lookup_type: Optional[str] = None
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None


@dataclass(frozen=True)
class SchemaEntry:
    resource_name: str
    label: str
    plural_label: str
    is_custom: bool = False
    attributes: Tuple[AttributeDescriptor, ...] = ()

    def find_attribute(self, name: str) -> Optional[AttributeDescriptor]:
        """Match by apiName or displayName, ignoring case."""
        key = (name or "").strip().lower()
        if not key:
            return None
        for attr in self.attributes:
            if attr.api_name.lower() == key or attr.display_name.lower() == key:
                return attr
        return None


# ---------------------------
# Conversation memory
# ---------------------------
@dataclass
class QueryMemory:
    object_type: str
    object_label: str
    action: str
    timestamp: str
    filters: Optional[Dict[str, str]] = None
    total_count: Optional[int] = None
    group_by_field: Optional[str] = None
    group_by_display_name: Optional[str] = None
    # field apiName -> [{"label": ..., "value": ...}] sorted by value desc
    chart_data: Optional[Dict[str, List[Dict[str, Any]]]] = None

    def __post_init__(self):
        if (self.group_by_field is None) != (self.chart_data is None):
            raise ValueError("group_by_field and chart_data must be set together")


@dataclass
class Turn:
    timestamp: str
    role: Literal["user", "assistant"]
    message: str
    action: Optional[str] = None
    object_type: Optional[str] = None
    success: Optional[bool] = None


@dataclass
class PageRef:
    object_type: str
    record_id: Optional[str] = None
    record_name: Optional[str] = None
    url: Optional[str] = None


@dataclass
class ConversationState:
    session_id: str
    last_query: Optional[QueryMemory] = None
    current_page: Optional[PageRef] = None
    history: List[Turn] = field(default_factory=list)
    preferences: Dict[str, Any] = field(default_factory=dict)


# ---------------------------
# Plans and suggestions
# ---------------------------
PlanAction = Literal["query", "create", "update", "delete", "analyze", "describe", "help", "drilldown"]


class Plan(BaseModel):
    """One remote operation, as proposed by the reasoning service."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    action: PlanAction
    object_type: str
    method: Literal["GET", "POST", "PATCH", "DELETE"] = "GET"
    endpoint: str = ""
    query_params: Optional[Dict[str, Any]] = None
    body: Optional[Dict[str, Any]] = None
    group_by_field: Optional[str] = None
    filter_field: Optional[str] = None
    filter_value: Optional[str] = None
    explanation: str = Field(default="")

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v):
        return (v or "GET").upper() if isinstance(v, str) or v is None else v

    @field_validator("group_by_field", "filter_field", "filter_value", mode="before")
    @classmethod
    def _stringify(cls, v):
        return None if v is None or v == "" else str(v)

    @field_validator("explanation", mode="before")
    @classmethod
    def _text_or_empty(cls, v):
        return "" if v is None else v


@dataclass(frozen=True)
class Suggestion:
    text: str
    emoji: str
    action: str
    priority: int

    def as_button(self) -> Dict[str, str]:
        return {"label": f"{self.emoji} {self.text}", "value": self.text}
