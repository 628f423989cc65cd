from typing import List

from ppmchat.models import ConversationState, Suggestion


def generate_suggestions(state: ConversationState, action: str, max_suggestions: int = 4) -> List[Suggestion]:
    """Next likely actions after `action`, highest priority first."""
    if action == "analyze":
        out = _after_analyze(state)
    elif action in ("query", "drilldown", "link"):
        out = _after_query(state)
    elif action == "create":
        out = _after_create(state)
    elif action in ("update", "delete"):
        out = _after_modify(state)
    else:
        out = _defaults()
    return sorted(out, key=lambda s: -s.priority)[:max_suggestions]


def _records_label(state: ConversationState) -> str:
    lq = state.last_query
    return lq.object_label if lq and lq.object_label else "records"


def _after_analyze(state: ConversationState) -> List[Suggestion]:
    out: List[Suggestion] = []
    lq = state.last_query
    if lq and lq.chart_data and lq.group_by_field:
        buckets = lq.chart_data.get(lq.group_by_field) or []
        for item, priority in zip(buckets[:2], (100, 90)):
            out.append(Suggestion(f'Show me the "{item["label"]}" ones', "🔍", "drilldown", priority))
        out.append(Suggestion("Group by a different field", "📊", "analyze", 70))
    out.append(Suggestion("Export to Excel", "📥", "export", 60))
    out.append(Suggestion("Get a link to this view", "🔗", "link", 50))
    return out


def _after_query(state: ConversationState) -> List[Suggestion]:
    lq = state.last_query
    if not lq or not lq.object_type:
        return _defaults()
    singular = lq.object_label[:-1] if lq.object_label and lq.object_label.endswith("s") else (lq.object_label or "record")
    return [
        Suggestion("Show distribution by status", "📊", "analyze", 100),
        Suggestion("How many total?", "🔢", "count", 80),
        Suggestion("Filter by specific criteria", "🔍", "filter", 70),
        Suggestion(f"Create a new {singular}", "➕", "create", 50),
    ]


def _after_create(state: ConversationState) -> List[Suggestion]:
    return [
        Suggestion("Create another one", "➕", "create", 100),
        Suggestion(f"List all {_records_label(state)}", "📋", "query", 80),
        Suggestion("Show distribution", "📊", "analyze", 60),
    ]


def _after_modify(state: ConversationState) -> List[Suggestion]:
    return [
        Suggestion(f"List all {_records_label(state)}", "📋", "query", 100),
        Suggestion("Show distribution", "📊", "analyze", 80),
        Suggestion("Create a new one", "➕", "create", 60),
    ]


def _defaults() -> List[Suggestion]:
    return [
        Suggestion("Show project distribution by status", "📊", "analyze", 100),
        Suggestion("List all projects", "📋", "query", 80),
        Suggestion("How many tasks in the system?", "🔢", "count", 60),
        Suggestion("List custom objects", "📦", "describe", 40),
    ]

