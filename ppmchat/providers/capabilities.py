from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from ppmchat import config
from ppmchat.errors import RemoteCallError
from ppmchat.providers.base import ObjectApi, PermissionProvider, ToolAvailability

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capabilities:
    can_read: bool = False
    can_write: bool = False
    can_delete: bool = False
    has_projects: bool = False
    has_tasks: bool = False
    has_resources: bool = False
    has_custom_objects: bool = False
    custom_object_codes: List[str] = field(default_factory=list)
    validated_at: float = 0.0

    def as_dict(self) -> dict:
        return {
            "canRead": self.can_read,
            "canWrite": self.can_write,
            "canDelete": self.can_delete,
            "hasProjects": self.has_projects,
            "hasTasks": self.has_tasks,
            "hasResources": self.has_resources,
            "hasCustomObjects": self.has_custom_objects,
            "customObjectCount": len(self.custom_object_codes),
        }


class StaticToolAvailability(ToolAvailability):
    def __init__(self, caps: Capabilities):
        self._caps = caps

    def capabilities(self) -> Capabilities:
        return self._caps


class ProbingToolAvailability(ToolAvailability):
    """
    Learns what the remote system actually exposes by probing it.
    Results are reused for CAPABILITIES_TTL seconds.
    """

    def __init__(self, api: ObjectApi, ttl: float = config.CAPABILITIES_TTL, clock: Callable[[], float] = time.time):
        self.api = api
        self.ttl = ttl
        self._clock = clock
        self._caps = Capabilities()
        self._lock = threading.Lock()

    def _probe(self, endpoint: str) -> Optional[dict]:
        try:
            return self.api.get(endpoint)
        except RemoteCallError as e:
            logger.info("Capability probe %s failed: %s", endpoint, e)
            return None

    def refresh(self) -> Capabilities:
        projects = self._probe("/projects?fields=_internalId&limit=1")
        tasks = self._probe("/tasks?fields=_internalId&limit=1")
        resources = self._probe("/resources?fields=_internalId&limit=1")
        custom = self._probe("/customObjectMetadata")

        codes = [o.get("resourceName") for o in ((custom or {}).get("_results") or []) if o.get("resourceName")]
        can_read = projects is not None
        caps = Capabilities(
            can_read=can_read,
            # write/delete are governed by session permissions; the server account is assumed to hold them
            can_write=can_read,
            can_delete=can_read,
            has_projects=projects is not None,
            has_tasks=tasks is not None,
            has_resources=resources is not None,
            has_custom_objects=bool(codes),
            custom_object_codes=codes,
            validated_at=self._clock(),
        )
        with self._lock:
            self._caps = caps
        logger.info(
            "Capabilities validated: read=%s projects=%s tasks=%s resources=%s custom=%d",
            caps.can_read, caps.has_projects, caps.has_tasks, caps.has_resources, len(codes),
        )
        return caps

    def needs_refresh(self) -> bool:
        with self._lock:
            return self._clock() - self._caps.validated_at > self.ttl

    def capabilities(self) -> Capabilities:
        if self.needs_refresh():
            return self.refresh()
        with self._lock:
            return self._caps


PERMISSION_PRESETS: Dict[str, List[str]] = {
    "readonly": ["read"],
    "analyst": ["read", "analyze", "export"],
    "editor": ["read", "analyze", "write"],
    "manager": ["read", "analyze", "write", "export", "custom_objects", "projects", "tasks"],
    "admin": [
        "read", "analyze", "write", "delete", "export", "admin",
        "custom_objects", "projects", "tasks", "resources", "financials",
    ],
}


class PresetPermissionProvider(PermissionProvider):
    """Session id -> role preset. Unknown sessions may only read."""

    def __init__(self, roles: Optional[Dict[str, str]] = None, default: Iterable[str] = ("read",)):
        self._roles = dict(roles or {})
        self._default = set(default)
        self._lock = threading.Lock()

    def assign(self, session_id: str, role: str) -> None:
        if role not in PERMISSION_PRESETS:
            raise ValueError(f"Unknown role: {role}")
        with self._lock:
            self._roles[session_id] = role

    def permissions_for(self, session_id: str) -> set:
        with self._lock:
            role = self._roles.get(session_id)
        if role is None:
            return set(self._default)
        return set(PERMISSION_PRESETS[role])
