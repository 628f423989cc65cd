from dataclasses import dataclass
from typing import Any, Dict, Optional

from ppmchat.conversation.store import ConversationStore
from ppmchat.providers.base import ObjectApi, PermissionProvider, ToolAvailability
from ppmchat.schema.cache import SchemaCache
from ppmchat.utils.deeplinks import DeepLinkBuilder


@dataclass
class Services:
    api: ObjectApi
    schema: SchemaCache
    store: ConversationStore
    links: DeepLinkBuilder
    tools: ToolAvailability
    permissions: PermissionProvider


def result(success: bool, reply: str, chart_data: Optional[Dict[str, Any]] = None,
           deep_link: Optional[str] = None) -> Dict[str, Any]:
    return {"success": success, "reply": reply, "chart_data": chart_data, "deep_link": deep_link}
