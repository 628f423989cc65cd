from typing import Any, Dict, List, Optional

from ppmchat.errors import (
    ChatError,
    DrillDownAmbiguousError,
    FieldNotFoundError,
    PlanParseError,
    RecordNotFoundError,
    RemoteCallError,
    SchemaFetchError,
)

# (hint, alternative actions) per RemoteCallError kind
_REMOTE_HINTS = {
    "not_found": (
        "The requested item was not found in Clarity.",
        ["List all projects", "Show custom objects"],
    ),
    "auth": (
        "Clarity rejected the request. Check that the API token or session is still valid.",
        ["Help"],
    ),
    "timeout": (
        "Clarity did not answer in time.",
        ["Try a smaller query", "How many projects are there?"],
    ),
    "other": (
        "Clarity returned an error.",
        ["List all projects", "Show project distribution by status"],
    ),
}


def build_response(
    result: Dict[str, Any],
    timestamp: str,
    suggestions: Optional[List[Dict[str, str]]] = None,
) -> Dict[str, Any]:
    return {
        "success": bool(result.get("success")),
        "reply": result.get("reply") or "",
        "chartData": result.get("chart_data"),
        "suggestions": suggestions or [],
        "deepLink": result.get("deep_link"),
        "timestamp": timestamp,
    }


def _alternatives(actions: List[str]) -> str:
    return "\n\n**You could try:**\n" + "\n".join(f"• {a}" for a in actions)


def error_reply(exc: BaseException) -> str:
    """Human-readable reply for any failure that reached the entry point."""
    if isinstance(exc, FieldNotFoundError):
        lines = [f'❌ Field "{exc.field}" was not found in {exc.object_label}.']
        if exc.alternatives:
            lines += ["", "**You can group by:**"]
            lines += [f"• {a.display_name} (`{a.api_name}`)" for a in exc.alternatives]
        return "\n".join(lines)

    if isinstance(exc, RecordNotFoundError):
        if not exc.name:
            return f"❓ Which {exc.object_type} record do you mean? Please include its name or code."
        return f'❌ Could not find "{exc.name}" in {exc.object_type}. Check the spelling and try again.'

    if isinstance(exc, DrillDownAmbiguousError):
        head = (
            f'🤔 I couldn\'t match "{exc.requested}" to a value in the last chart.'
            if exc.requested else "🤔 I couldn't tell which value from the last chart you meant."
        )
        return head + "\n\n**Available values:**\n" + "\n".join(f"• {o}" for o in exc.options)

    if isinstance(exc, PlanParseError):
        return "😕 I couldn't turn that into a Clarity request. Please rephrase and try again." + _alternatives(
            ["List all projects", "Show project distribution by status"]
        )

    if isinstance(exc, SchemaFetchError):
        return (
            f"⚠️ Could not load the fields of {exc.object_type}. Clarity may be unreachable; try again shortly."
        )

    if isinstance(exc, RemoteCallError):
        hint, actions = _REMOTE_HINTS[exc.kind]
        detail = f"\n\n_{str(exc)[:200]}_" if exc.kind == "other" else ""
        return f"⚠️ {hint}{detail}" + _alternatives(actions)

    if isinstance(exc, ChatError):
        return f"⚠️ {exc}"

    return "⚠️ Something went wrong while handling that request. Please try again." + _alternatives(
        ["Help", "List all projects"]
    )
