# ppmchat/agents/catalog.py
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Tuple

from ppmchat import config
from ppmchat.agents.services import Services, result
from ppmchat.errors import RemoteCallError
from ppmchat.models import Plan

logger = logging.getLogger(__name__)

KEY_FIELDS = 15
_RANKED = re.compile(r"\b(most|instances?|records?|top)\b")
_NUMBER = re.compile(r"\b(\d+)\b")


def run_describe(svc: Services, plan: Plan) -> Dict[str, Any]:
    entry = svc.schema.get_schema(plan.object_type)
    groupable = svc.schema.get_groupable_fields(entry)
    lookups = [a for a in entry.attributes if a.is_lookup]
    required = [a for a in entry.attributes if a.is_required]

    lines = [
        f"📋 **{entry.plural_label}** (`{entry.resource_name}`)" + (" · custom object" if entry.is_custom else ""),
        "",
        f"• Fields: {len(entry.attributes)}",
        f"• Groupable: {len(groupable)}",
        f"• Lookups: {len(lookups)}",
        f"• Required: {len(required)}",
        "",
        "**Key fields:**",
    ]
    key = [
        a for a in entry.attributes
        if not a.api_name.startswith("_") or a.api_name == config.IDENTITY_FIELD
    ]
    for a in key[:KEY_FIELDS]:
        marker = " 🔗" if a.is_lookup else ""
        lines.append(f"• {a.display_name} (`{a.api_name}`, {a.data_type}){marker}")
    if len(key) > KEY_FIELDS:
        lines.append(f"_...and {len(key) - KEY_FIELDS} more_")
    return result(True, "\n".join(lines), deep_link=svc.links.list_link(plan.object_type))


def run_help(svc: Services, session_id: str) -> Dict[str, Any]:
    caps = svc.tools.capabilities()
    perms = svc.permissions.permissions_for(session_id)

    lines = ["👋 **Hi! I can help you work with Clarity PPM.**", ""]
    if not caps.can_read:
        lines.append("⚠️ I can't reach Clarity right now, so only general help is available.")
        return result(True, "\n".join(lines))

    lines.append("**Ask me things like:**")
    if caps.has_projects:
        lines.append('• "List all projects"')
        lines.append('• "Show project distribution by status"')
    if caps.has_tasks:
        lines.append('• "How many tasks are there?"')
    if caps.has_resources:
        lines.append('• "List resources"')
    if caps.has_custom_objects:
        lines.append(f'• "List custom objects" ({len(caps.custom_object_codes)} available)')
    lines.append('• "Describe the fields of projects"')
    lines.append('• "Give me a link to all projects"')

    if "write" in perms and caps.can_write:
        lines += ["", "**Changes:**", '• "Create a project named \\"Apollo\\""', '• "Update project Apollo set status to Active"']
    if "delete" in perms and caps.can_delete:
        lines.append('• "Delete project Apollo"')

    lines += ["", "After a distribution chart, say \"show me the <value> ones\" to drill down."]
    return result(True, "\n".join(lines))


def _instance_counts(svc: Services, custom: List[Dict[str, str]]) -> List[Tuple[Dict[str, str], int]]:
    counted = []
    for obj in custom:
        try:
            response = svc.api.get(f"/{obj['resourceName']}?fields={config.IDENTITY_FIELD}&limit=1")
        except RemoteCallError as e:
            logger.warning("Could not count %s: %s", obj["resourceName"], e)
            continue
        total = response.get("_totalCount")
        counted.append((obj, int(total) if total is not None else len(response.get("_results") or [])))
    return sorted(counted, key=lambda p: (-p[1], p[0]["label"]))


def run_custom_object_catalog(svc: Services, message: str) -> Dict[str, Any]:
    text = (message or "").lower()
    custom = svc.schema.custom_objects()
    if not custom:
        return result(True, "No custom objects were found in this Clarity instance.")

    if "how many" in text or "count" in text:
        return result(True, f"📦 There are **{len(custom)}** custom object types.")

    number = _NUMBER.search(text)
    if _RANKED.search(text) or number:
        top = int(number.group(1)) if number else 10
        ranked = _instance_counts(svc, custom)[:top]
        lines = [f"📦 **Top {len(ranked)} custom objects by records**", ""]
        for i, (obj, n) in enumerate(ranked, 1):
            lines.append(f"{i}. {obj['label']} (`{obj['resourceName']}`): {n}")
        return result(True, "\n".join(lines))

    lines = [f"📦 **Custom objects** ({len(custom)})", ""]
    lines += [f"• {o['label']} (`{o['resourceName']}`)" for o in custom]
    return result(True, "\n".join(lines))
