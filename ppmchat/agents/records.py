# ppmchat/agents/records.py
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from ppmchat import config
from ppmchat.agents.services import Services, result
from ppmchat.errors import RecordNotFoundError
from ppmchat.models import Plan, QueryMemory

logger = logging.getLogger(__name__)

MAX_LISTED = 15

_LIMIT = re.compile(r"([?&]limit=)(\d+)")
_PLACEHOLDER = re.compile(r"\{(\w+?)Id\}")
_PARENT_SEGMENT = re.compile(r"^/(\w+)/([^/?{}]+)/")
_FILTER_PARAM = re.compile(r"[?&]filter=(.*?)(?=&\w+=|$)")
_EQUALITY = re.compile(r"\(\s*([\w.]+)\s*=\s*'((?:[^']|'')*)'\s*\)")

_PARENT_NAME_PATTERNS = [
    re.compile(r"(?:in|for|of|under)\s+(?:the\s+)?project\s+[\"']?(.+?)[\"']?\s*$", re.IGNORECASE),
    re.compile(r"(?:in|for|of|under)\s+[\"']([^\"']+)[\"']", re.IGNORECASE),
    re.compile(r"project\s+(?:named|called)\s+[\"']?(.+?)[\"']?\s*$", re.IGNORECASE),
    re.compile(r"בפרויקט\s+[\"']?(.+?)[\"']?\s*$"),
]
_OBJECT_WORD = r"(?:project|task|resource|idea|risk|issue|record|item)s?"
_RECORD_NAME_PATTERNS = [
    re.compile(r"[\"']([^\"']+)[\"']"),
    re.compile(r"(?:named|called)\s+(.+?)\s*$", re.IGNORECASE),
    re.compile(
        r"(?:update|delete|remove|rename|close|change)\s+(?:the\s+)?(?:" + _OBJECT_WORD + r"\s+)?(?:named\s+)?"
        r"(.+?)(?:\s+" + _OBJECT_WORD + r")?(?:\s+(?:to|set|with)\b.*)?$",
        re.IGNORECASE,
    ),
]
_NEW_NAME_PATTERNS = [
    re.compile(r"[\"']([^\"']+)[\"']"),
    re.compile(r"(?:named|called)\s+(.+?)\s*$", re.IGNORECASE),
    re.compile(r"בשם\s+(.+?)\s*$"),
]


# ---------------------------
# Helpers
# ---------------------------
def format_field_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        shown = value.get("displayValue") or value.get("code") or value.get("name")
        return str(shown) if shown is not None else json.dumps(value)
    return str(value)


def escape_filter_value(value: str) -> str:
    return str(value).replace("'", "''")


def cap_limit(endpoint: str) -> str:
    return _LIMIT.sub(lambda m: f"{m.group(1)}{min(int(m.group(2)), config.MAX_RESULT_LIMIT)}", endpoint)


def requested_limit(endpoint: str) -> Optional[int]:
    m = _LIMIT.search(endpoint)
    return int(m.group(2)) if m else None


def compose_endpoint(plan: Plan) -> str:
    endpoint = plan.endpoint or f"/{plan.object_type}"
    if not endpoint.startswith("/"):
        endpoint = "/" + endpoint
    if plan.query_params:
        extra = "&".join(f"{k}={v}" for k, v in plan.query_params.items() if v is not None and v != "")
        if extra:
            endpoint += ("&" if "?" in endpoint else "?") + extra
    return cap_limit(endpoint)


def parse_equality_filters(endpoint: str) -> Dict[str, str]:
    """Simple `field = 'value'` terms of the filter expression, unescaped."""
    m = _FILTER_PARAM.search(endpoint or "")
    if not m:
        return {}
    return {f: v.replace("''", "'") for f, v in _EQUALITY.findall(m.group(1))}


def _first_group(patterns, message: str) -> Optional[str]:
    for pattern in patterns:
        m = pattern.search(message or "")
        if m and m.group(1).strip():
            return m.group(1).strip()
    return None


def extract_parent_name(message: str) -> Optional[str]:
    return _first_group(_PARENT_NAME_PATTERNS, message)


def extract_record_name(message: str) -> Optional[str]:
    return _first_group(_RECORD_NAME_PATTERNS, message)


def extract_new_name(message: str) -> Optional[str]:
    return _first_group(_NEW_NAME_PATTERNS, message)


def record_title(record: Dict[str, Any]) -> str:
    return format_field_value(record.get("name") or record.get("code") or record.get(config.IDENTITY_FIELD))


def render_records(records: List[Dict[str, Any]], total: int) -> str:
    lines = []
    for rec in records[:MAX_LISTED]:
        status = format_field_value(rec.get("status"))
        lines.append(f"• **{record_title(rec)}**" + (f" ({status})" if status else ""))
    more = max(total, len(records)) - min(len(records), MAX_LISTED)
    if more > 0:
        lines.append(f"_...and {more} more_")
    return "\n".join(lines)


def total_of(response: Dict[str, Any]) -> int:
    records = response.get("_results") or []
    total = response.get("_totalCount")
    return int(total) if total is not None else len(records)


def find_record(svc: Services, object_type: str, name: str) -> Dict[str, Any]:
    """Exact code first, then name contains; first hit wins."""
    escaped = escape_filter_value(name)
    fields = f"fields={config.IDENTITY_FIELD},name,code"
    for expr in (f"(code = '{escaped}')", f"(name contains '{escaped}')"):
        response = svc.api.get(f"/{object_type}?filter={expr}&{fields}&limit=1")
        found = response.get("_results") or []
        if found:
            logger.info("Resolved %s %r -> %s", object_type, name, found[0].get(config.IDENTITY_FIELD))
            return found[0]
    raise RecordNotFoundError(object_type, name)


def resolve_placeholders(svc: Services, endpoint: str, message: str) -> str:
    """Replace `{projectId}`-style segments with the id of the record the message names."""
    for m in list(_PLACEHOLDER.finditer(endpoint)):
        parent_type = m.group(1) + "s"
        name = extract_parent_name(message)
        if not name:
            raise RecordNotFoundError(parent_type, None)
        parent = find_record(svc, parent_type, name)
        endpoint = endpoint.replace(m.group(0), str(parent[config.IDENTITY_FIELD]))

    m = _PARENT_SEGMENT.match(endpoint)
    if m and not m.group(2).isdigit() and m.group(1) in config.LINKABLE_OBJECTS:
        # the model put a parent's name where its id belongs
        name = extract_parent_name(message) or m.group(2)
        parent = find_record(svc, m.group(1), name)
        endpoint = f"/{m.group(1)}/{parent[config.IDENTITY_FIELD]}/" + endpoint[m.end():]
    return endpoint


# ---------------------------
# Actions
# ---------------------------
def run_query(svc: Services, plan: Plan, message: str, session_id: str) -> Dict[str, Any]:
    endpoint = resolve_placeholders(svc, compose_endpoint(plan), message)
    logger.info("Query: GET %s", endpoint)
    response = svc.api.get(endpoint)

    records = response.get("_results") or []
    total = total_of(response)
    label = svc.schema.object_label(plan.object_type)
    filters = parse_equality_filters(endpoint)

    svc.store.update_last_query(session_id, QueryMemory(
        object_type=plan.object_type,
        object_label=label,
        action="query",
        timestamp=svc.store.now_iso(),
        filters=filters or None,
        total_count=total,
    ))

    if filters:
        deep_link = svc.links.multi_filter_link(plan.object_type, filters)
    else:
        deep_link = svc.links.list_link(plan.object_type)

    if requested_limit(endpoint) == 1:
        return result(True, f"📊 **Found {total} {label}**", deep_link=deep_link)

    if not records:
        return result(True, f"No {label} found.", deep_link=deep_link)

    reply = f"✅ **{total} {label}**\n\n{render_records(records, total)}"
    return result(True, reply, deep_link=deep_link)


def run_create(svc: Services, plan: Plan, message: str) -> Dict[str, Any]:
    endpoint = resolve_placeholders(svc, compose_endpoint(plan), message)
    body = dict(plan.body or {})

    if not body.get("name"):
        name = extract_new_name(message)
        if name:
            body["name"] = name
    is_top_level = endpoint.strip("/").split("?")[0].count("/") == 0
    if is_top_level and not body.get("code"):
        slug = re.sub(r"[^a-z0-9]+", "_", (body.get("name") or plan.object_type).lower()).strip("_")
        body["code"] = f"{slug[:20]}_{int(svc.store.now().timestamp() * 1000)}"

    logger.info("Create: POST %s %s", endpoint, body)
    created = svc.api.post(endpoint, body)
    new_id = created.get(config.IDENTITY_FIELD)
    shown = body.get("name") or body.get("code") or "record"

    reply = f"✅ **Created** {shown}"
    if new_id is not None:
        reply += f" (ID: {new_id})"
    # child records land under the parent's page
    target_type = endpoint.strip("/").split("?")[0].split("/")[-1] or plan.object_type
    deep_link = svc.links.record_link(target_type, new_id) if new_id is not None else None
    return result(True, reply, deep_link=deep_link)


def _target_record(svc: Services, plan: Plan, message: str) -> Dict[str, Any]:
    name = extract_record_name(message)
    if not name and plan.filter_field in ("name", "code"):
        name = plan.filter_value
    if not name:
        raise RecordNotFoundError(plan.object_type, None)
    return find_record(svc, plan.object_type, name)


def run_update(svc: Services, plan: Plan, message: str) -> Dict[str, Any]:
    record = _target_record(svc, plan, message)
    record_id = record[config.IDENTITY_FIELD]
    body = dict(plan.body or {})

    logger.info("Update: PATCH /%s/%s %s", plan.object_type, record_id, body)
    svc.api.patch(f"/{plan.object_type}/{record_id}", body)

    changed = ", ".join(f"{k} → {format_field_value(v)}" for k, v in body.items()) or "no fields"
    reply = f"✅ **Updated** {record_title(record)}: {changed}"
    return result(True, reply, deep_link=svc.links.record_link(plan.object_type, record_id))


def run_delete(svc: Services, plan: Plan, message: str) -> Dict[str, Any]:
    record = _target_record(svc, plan, message)
    record_id = record[config.IDENTITY_FIELD]

    logger.info("Delete: DELETE /%s/%s", plan.object_type, record_id)
    svc.api.delete(f"/{plan.object_type}/{record_id}")
    return result(True, f"🗑️ **Deleted** {record_title(record)} (ID: {record_id})")
