# ppmchat/agents/analyze.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ppmchat import config
from ppmchat.agents.records import (
    escape_filter_value,
    format_field_value,
    render_records,
    total_of,
)
from ppmchat.agents.services import Services, result
from ppmchat.errors import DrillDownAmbiguousError, FieldNotFoundError
from ppmchat.models import Plan, QueryMemory

logger = logging.getLogger(__name__)

NO_VALUE = "(No value)"
SUMMARY_ROWS = 10
MAX_ALTERNATIVES = 15


def tally(records: List[Dict[str, Any]], field: str) -> List[Dict[str, Any]]:
    """label -> count buckets, largest first; ties keep first-seen order."""
    counts: Dict[str, int] = {}
    for rec in records:
        label = format_field_value(rec.get(field)) or NO_VALUE
        counts[label] = counts.get(label, 0) + 1
    buckets = [{"label": label, "value": n} for label, n in counts.items()]
    return sorted(buckets, key=lambda b: -b["value"])


def run_analyze(svc: Services, plan: Plan, session_id: str) -> Dict[str, Any]:
    entry = svc.schema.get_schema(plan.object_type)
    groupable = svc.schema.get_groupable_fields(entry)
    requested = plan.group_by_field or "status"

    attr = entry.find_attribute(requested)
    if attr is None:
        raise FieldNotFoundError(requested, entry.plural_label, groupable[:MAX_ALTERNATIVES])

    field = attr.api_name
    endpoint = f"/{plan.object_type}?fields={config.IDENTITY_FIELD},{field}&limit={config.MAX_RESULT_LIMIT}"
    logger.info("Analyze: GET %s", endpoint)
    response = svc.api.get(endpoint)

    records = response.get("_results") or []
    buckets = tally(records, field)
    total = len(records)
    label = svc.schema.object_label(plan.object_type)

    svc.store.update_last_query(session_id, QueryMemory(
        object_type=plan.object_type,
        object_label=label,
        action="analyze",
        timestamp=svc.store.now_iso(),
        total_count=total,
        group_by_field=field,
        group_by_display_name=attr.display_name,
        chart_data={field: buckets},
    ))

    lines = [f"📊 **{label} by {attr.display_name}** ({total} records)", ""]
    for b in buckets[:SUMMARY_ROWS]:
        lines.append(f"• {b['label']}: {b['value']} ({b['value'] / total * 100:.1f}%)")
    if len(buckets) > SUMMARY_ROWS:
        lines.append(f"_...and {len(buckets) - SUMMARY_ROWS} more values_")
    if buckets:
        lines += ["", "✨ Click on any value to see the records"]

    groupable_names = [a.api_name for a in groupable]
    if field not in groupable_names:
        groupable_names.insert(0, field)

    preferences = svc.store.get_or_create(session_id).preferences
    chart = {
        "groupableFields": groupable_names,
        "chartData": {field: buckets},
        "fieldMetadata": {field: {"displayName": attr.display_name, "dataType": attr.data_type}},
        "chartType": preferences.get("preferredChartType", "bar"),
        "drillDownEnabled": True,
        "objectType": plan.object_type,
        "groupByField": field,
    }
    return result(True, "\n".join(lines), chart_data=chart, deep_link=svc.links.list_link(plan.object_type))


# ---------------------------
# Follow-ups on the last chart
# ---------------------------
def match_drill_down_label(svc: Services, session_id: str, extracted: Optional[str], message: str) -> str:
    options = svc.store.drill_down_options(session_id)
    matched = svc.store.find_drill_down_match(session_id, extracted) if extracted else None
    if matched is None:
        lower = (message or "").lower()
        for opt in sorted(options, key=lambda o: (-len(o), o)):
            if opt.lower() in lower:
                matched = opt
                break
    if matched is None:
        raise DrillDownAmbiguousError(extracted, options)
    return matched


def run_drill_down(svc: Services, session_id: str, extracted: Optional[str], message: str) -> Dict[str, Any]:
    value = match_drill_down_label(svc, session_id, extracted, message)
    lq = svc.store.last_query(session_id)
    request = svc.store.build_drill_down_request(session_id, value)
    field, object_type = request["field"], request["objectType"]

    fields = [config.IDENTITY_FIELD, "name", "code", "status"]
    if field not in fields:
        fields.append(field)
    endpoint = (
        f"/{object_type}?filter=(({field} = '{escape_filter_value(value)}'))"
        f"&fields={','.join(fields)}&limit=50"
    )
    logger.info("Drill-down: %s = %r -> GET %s", field, value, endpoint)
    response = svc.api.get(endpoint)

    records = response.get("_results") or []
    total = total_of(response)
    display = lq.group_by_display_name or field
    deep_link = svc.links.filtered_link(object_type, field, value)

    svc.store.update_last_query(session_id, QueryMemory(
        object_type=object_type,
        object_label=lq.object_label,
        action="drilldown",
        timestamp=svc.store.now_iso(),
        filters={field: value},
        total_count=total,
    ))

    reply = f'🔍 **{lq.object_label} where {display} = "{value}"**\nFound **{total}** records'
    if records:
        reply += "\n\n" + render_records(records, total)
    reply += f"\n\n🔗 {svc.links.markdown('Open in Clarity', deep_link)}"
    return result(True, reply, deep_link=deep_link)


def run_count(svc: Services, session_id: str) -> Dict[str, Any]:
    lq = svc.store.last_query(session_id)
    if lq is None or lq.total_count is None:
        return result(False, "I don't have a count for the last query yet. Try asking for the records first.")
    return result(True, f"🔢 **Total: {lq.total_count} {lq.object_label}**")


def run_export(svc: Services, session_id: str) -> Dict[str, Any]:
    lq = svc.store.last_query(session_id)
    if lq is None:
        return result(False, "There is nothing to export yet. Run a query or a distribution first.")
    if lq.filters:
        deep_link = svc.links.multi_filter_link(lq.object_type, lq.filters)
    else:
        deep_link = svc.links.list_link(lq.object_type)
    reply = (
        f"📥 To export {lq.object_label}, open the view in Clarity and use its Export to Excel action:\n"
        f"🔗 {svc.links.markdown('Open in Clarity', deep_link)}"
    )
    return result(True, reply, deep_link=deep_link)
