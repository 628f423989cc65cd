from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class ObjectApi(ABC):
    """Remote object API. Authentication is the implementation's business."""

    @abstractmethod
    def get(self, endpoint: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def post(self, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        ...

    @abstractmethod
    def patch(self, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        ...

    @abstractmethod
    def delete(self, endpoint: str) -> Dict[str, Any]:
        ...


class ToolAvailability(ABC):
    @abstractmethod
    def capabilities(self):
        """Return the current Capabilities flags."""


class PermissionProvider(ABC):
    @abstractmethod
    def permissions_for(self, session_id: str) -> set:
        ...
