from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from ppmchat import config
from ppmchat.errors import RemoteCallError, SchemaFetchError
from ppmchat.models import AttributeDescriptor, SchemaEntry
from ppmchat.providers.base import ObjectApi
from ppmchat.utils.matching import best_substring_match

logger = logging.getLogger(__name__)

T = TypeVar("T")

# source keys seen for the same concept across API versions, in preference order
_API_NAME_KEYS = ("name", "attributeName", "apiName", "code")
_DISPLAY_NAME_KEYS = ("displayName", "label", "name")


@dataclass(frozen=True)
class _Cached(Generic[T]):
    value: T
    inserted_at: float

    def fresh(self, now: float, ttl: float) -> bool:
        return now - self.inserted_at < ttl


def _first(attr: Dict[str, Any], keys) -> str:
    for k in keys:
        v = attr.get(k)
        if v:
            return str(v)
    return ""


def _int_or_none(v: Any) -> Optional[int]:
    try:
        return int(v) if v is not None else None
    except (TypeError, ValueError):
        return None


class SchemaCache:
    """
    Discovers queryable object types and caches per-type field metadata.
    Entries are immutable SchemaEntry objects shared by every session.
    """

    def __init__(
        self,
        api: ObjectApi,
        clock: Callable[[], float] = time.monotonic,
        discovery_ttl: float = config.DISCOVERED_OBJECTS_TTL,
        schema_ttl: float = config.SCHEMA_TTL,
    ):
        self.api = api
        self._clock = clock
        self.discovery_ttl = discovery_ttl
        self.schema_ttl = schema_ttl

        self._lock = threading.RLock()
        self._discovered: Optional[_Cached[List[str]]] = None
        self._custom_objects: List[Dict[str, str]] = []
        self._label_to_resource: Dict[str, str] = {}
        self._labels: Dict[str, str] = {}
        self._schemas: Dict[str, _Cached[SchemaEntry]] = {}

    # ---------------------------
    # Discovery
    # ---------------------------
    def discover_object_types(self, force_refresh: bool = False) -> List[str]:
        now = self._clock()
        with self._lock:
            if not force_refresh and self._discovered and self._discovered.fresh(now, self.discovery_ttl):
                return list(self._discovered.value)

        logger.info("Discovering object types...")
        try:
            all_objects = self.api.get("/describe?limit=500")
            custom_objects = self.api.get("/describe?filter=(isCustom = true) and (isSystem = false)&limit=500")
        except RemoteCallError as e:
            logger.error("Object discovery failed, using standard objects: %s", e)
            with self._lock:
                self._discovered = _Cached(list(config.STANDARD_OBJECTS), now)
                self._custom_objects = []
            return list(config.STANDARD_OBJECTS)

        names: List[str] = []
        labels: Dict[str, str] = {}
        label_to_resource: Dict[str, str] = {}
        for obj in all_objects.get("_results") or []:
            resource = obj.get("resourceName")
            if not resource:
                continue
            if resource not in names:
                names.append(resource)
            label = obj.get("label")
            if label:
                labels[resource] = label
                label_to_resource[label.lower()] = resource

        custom = [
            {"label": obj["label"], "resourceName": obj["resourceName"]}
            for obj in custom_objects.get("_results") or []
            if obj.get("resourceName") and obj.get("label")
        ]

        for std in config.STANDARD_OBJECTS:
            if std not in names:
                names.append(std)

        with self._lock:
            self._discovered = _Cached(names, now)
            self._custom_objects = custom
            self._labels.update(labels)
            self._label_to_resource.update(label_to_resource)

        logger.info("Discovered %d object types (%d custom)", len(names), len(custom))
        return list(names)

    def custom_objects(self) -> List[Dict[str, str]]:
        with self._lock:
            if self._discovered is not None:
                return [dict(o) for o in self._custom_objects]
        self.discover_object_types()
        with self._lock:
            return [dict(o) for o in self._custom_objects]

    # ---------------------------
    # Schema
    # ---------------------------
    def get_schema(self, object_type: str) -> SchemaEntry:
        now = self._clock()
        with self._lock:
            cached = self._schemas.get(object_type)
        if cached and cached.fresh(now, self.schema_ttl):
            return cached.value

        logger.info("Fetching schema for %s...", object_type)
        try:
            response = self.api.get(f"/describe/{object_type}?includeAttributes=true")
        except RemoteCallError as e:
            if cached:
                logger.warning("Schema refresh for %s failed, serving cached copy: %s", object_type, e)
                return cached.value
            raise SchemaFetchError(object_type, str(e)) from e

        entry = self._build_entry(object_type, response)
        with self._lock:
            self._schemas[object_type] = _Cached(entry, now)
            self._labels[object_type] = entry.label
        logger.info("Loaded %d attributes for %s", len(entry.attributes), object_type)
        return entry

    @staticmethod
    def _build_entry(object_type: str, response: Dict[str, Any]) -> SchemaEntry:
        raw_attributes = response.get("attributes") or response.get("_results") or []
        attributes: List[AttributeDescriptor] = []
        seen = set()
        for attr in raw_attributes:
            data_type = str(attr.get("dataType") or "STRING")
            if data_type in config.EXCLUDED_DATA_TYPES:
                continue
            api_name = _first(attr, _API_NAME_KEYS)
            if not api_name or api_name in seen:
                continue
            seen.add(api_name)
            attributes.append(AttributeDescriptor(
                api_name=api_name,
                display_name=_first(attr, _DISPLAY_NAME_KEYS) or api_name,
                data_type=data_type,
                is_required=bool(attr.get("isRequired")),
                is_read_only=bool(attr.get("isReadOnly")),
                is_lookup=bool(attr.get("isLookup") or attr.get("lookupType")),
                lookup_type=attr.get("lookupType"),
                max_length=_int_or_none(attr.get("maxLength")),
                precision=_int_or_none(attr.get("precision")),
                scale=_int_or_none(attr.get("scale")),
            ))

        label = str(response.get("label") or object_type)
        return SchemaEntry(
            resource_name=object_type,
            label=label,
            plural_label=str(response.get("pluralLabel") or label),
            is_custom=bool(response.get("isCustom")),
            attributes=tuple(attributes),
        )

    def object_label(self, object_type: str) -> str:
        try:
            entry = self.get_schema(object_type)
        except SchemaFetchError:
            with self._lock:
                return self._labels.get(object_type, object_type)
        return entry.plural_label or entry.label or object_type

    # ---------------------------
    # Field and name resolution
    # ---------------------------
    @staticmethod
    def get_groupable_fields(entry: SchemaEntry) -> List[AttributeDescriptor]:
        def usable(attr: AttributeDescriptor) -> bool:
            if attr.api_name.startswith("_") and attr.api_name != config.IDENTITY_FIELD:
                return False
            if attr.is_read_only and not attr.is_lookup:
                return False
            if attr.data_type not in config.GROUPABLE_DATA_TYPES and not attr.is_lookup:
                return False
            return True

        def sort_key(attr: AttributeDescriptor):
            if attr.api_name in config.PRIORITY_FIELDS:
                return (0, config.PRIORITY_FIELDS.index(attr.api_name), "")
            if attr.is_lookup:
                return (1, 0, attr.display_name.lower())
            return (2, 0, attr.display_name.lower())

        return sorted((a for a in entry.attributes if usable(a)), key=sort_key)

    def resolve_object_name(self, text: str) -> Optional[str]:
        with self._lock:
            discovered = list(self._discovered.value) if self._discovered else []
            label_to_resource = dict(self._label_to_resource)

        if text in discovered:
            return text
        lower = (text or "").strip().lower()
        if not lower:
            return None
        if lower in label_to_resource:
            return label_to_resource[lower]

        best = best_substring_match(lower, label_to_resource)
        return label_to_resource[best] if best else None
