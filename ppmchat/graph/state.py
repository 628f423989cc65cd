from typing import Any, Optional, TypedDict

from ppmchat.models import Plan


class ChatState(TypedDict, total=False):
    session_id: str
    message: str

    # deterministic classification
    intent: Optional[str]
    extracted_value: Optional[str]
    route: str                      # help|link|followup|catalog|plan

    # reasoning-service plan
    plan: Plan

    # outputs
    action: str
    object_type: Optional[str]
    result: dict[str, Any]
    trace: list[dict]
