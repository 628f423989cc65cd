# ppmchat/agents/links.py
from __future__ import annotations

import logging
import re
from typing import Any, Dict

from ppmchat import config
from ppmchat.agents.records import find_record, record_title
from ppmchat.agents.services import Services, result

logger = logging.getLogger(__name__)

_ALL_OBJECTS = re.compile(
    r"link\s+(?:to\s+)?(?:all\s+)?(?:the\s+)?(" + "|".join(config.LINKABLE_OBJECTS) + r")\b"
)
_ALL_OF_CONTEXT = re.compile(r"link\s+to\s+(?:them\s+)?all[\s.!?]*$")
_NAMED = re.compile(r"link\s+to\s+(?:the\s+)?(?:project\s+)?[\"']?(.+?)[\"']?\s*$", re.IGNORECASE)
_TRAILING_PROJECT = re.compile(r"\s+projects?$", re.IGNORECASE)
_GENERIC = {
    "it", "this", "that", "them", "all", "the", "these", "those", "here", "there", "me", "the view", "this view",
}

USAGE = (
    "🔗 Which view should I link to? Try:\n"
    "• \"Link to all projects\"\n"
    "• \"Link to project <name>\"\n"
    "• \"Link to custom objects\"\n"
    "Or run a query first and ask for \"a link to this\"."
)


def run_link(svc: Services, session_id: str, message: str) -> Dict[str, Any]:
    text = (message or "").lower().strip()

    m = _ALL_OBJECTS.search(text)
    if m:
        object_type = m.group(1)
        url = svc.links.list_link(object_type)
        return result(True, f"🔗 {svc.links.markdown(f'All {object_type.capitalize()}', url)}", deep_link=url)

    if _ALL_OF_CONTEXT.search(text):
        return _all_link(svc, session_id)

    if "custom object" in text:
        return _custom_object_links(svc)

    m = _NAMED.search((message or "").strip())
    if m:
        name = _TRAILING_PROJECT.sub("", m.group(1).strip()).strip()
        if name and name.lower() not in _GENERIC:
            return _named_link(svc, name)

    return _context_link(svc, session_id)


def _custom_object_links(svc: Services) -> Dict[str, Any]:
    custom = svc.schema.custom_objects()
    if not custom:
        return result(False, "No custom objects were found in this Clarity instance.")
    lines = [f"🔗 **Custom objects** ({len(custom)})", ""]
    for obj in custom[:5]:
        lines.append(f"• {svc.links.markdown(obj['label'], svc.links.list_link(obj['resourceName']))}")
    if len(custom) > 5:
        lines.append(f"_...and {len(custom) - 5} more_")
    return result(True, "\n".join(lines))


def _named_link(svc: Services, name: str) -> Dict[str, Any]:
    svc.schema.discover_object_types()
    object_type = svc.schema.resolve_object_name(name)
    if object_type:
        url = svc.links.list_link(object_type)
        label = svc.schema.object_label(object_type)
        return result(True, f"🔗 {svc.links.markdown(label, url)}", deep_link=url)

    record = find_record(svc, "projects", name)
    url = svc.links.record_link("projects", record[config.IDENTITY_FIELD])
    return result(True, f"🔗 {svc.links.markdown(record_title(record), url)}", deep_link=url)


def _all_link(svc: Services, session_id: str) -> Dict[str, Any]:
    lq = svc.store.last_query(session_id)
    object_type = lq.object_type if lq else config.DEFAULT_OBJECT
    label = lq.object_label if lq else svc.schema.object_label(object_type)
    url = svc.links.list_link(object_type)
    return result(True, f"🔗 {svc.links.markdown(f'All {label}', url)}", deep_link=url)


def _context_link(svc: Services, session_id: str) -> Dict[str, Any]:
    lq = svc.store.last_query(session_id)
    if lq is None:
        return result(False, USAGE)

    if lq.filters:
        url = svc.links.multi_filter_link(lq.object_type, lq.filters)
        shown = ", ".join(f"{k} = {v}" for k, v in lq.filters.items())
        text = f"{lq.object_label} where {shown}"
    else:
        url = svc.links.list_link(lq.object_type)
        text = f"All {lq.object_label}"
    logger.info("Context link for %s: %s", lq.object_type, url)
    return result(True, f"🔗 {svc.links.markdown(text, url)}", deep_link=url)
