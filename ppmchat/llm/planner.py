# ppmchat/llm/planner.py
import json
import logging
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from ppmchat import config
from ppmchat.conversation.store import ConversationStore
from ppmchat.errors import PlanParseError
from ppmchat.models import AttributeDescriptor, ConversationState, Plan, SchemaEntry
from ppmchat.schema.cache import SchemaCache

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """
You are a Clarity PPM REST API expert. Turn the user's request into exactly one API plan.

CONVERSATION CONTEXT:
{context}

DETECTED TARGET OBJECT: {object_label} ({object_type})

CRITICAL RULES:
1. ALWAYS use apiName (not displayName) in endpoints and groupByField
2. The user is asking about: {object_label} ({object_type})
3. If the user mentions a field by display name, find its apiName in the mapping below
4. Hebrew display names are common - always map them to their apiName
{field_hint}
AVAILABLE OBJECTS: {objects}

CUSTOM OBJECTS: {custom_objects}

FIELDS FOR "{object_label}" ({object_type}):
GROUPABLE FIELDS: {groupable}

FIELD MAPPINGS (displayName -> apiName):
    {mappings}

CLARITY REST API RULES:
1. Base endpoints: /{{objectType}}
2. TASKS ARE CHILDREN OF PROJECTS: /projects/{{projectId}}/tasks
3. Filter syntax: filter=((field = 'value'))
4. Supported operators: =, !=, >, <, >=, <=, in, notIn (NO 'like'!)
5. MAXIMUM LIMIT IS {max_limit}!
6. For counting: use limit=1 and read _totalCount
7. Fields selection: fields=field1,field2,field3

You must output ONLY valid JSON (no markdown, no explanations):
{{
  "action": "query|create|update|delete|analyze|describe|help|drilldown",
  "objectType": "{object_type}",
  "method": "GET|POST|PATCH|DELETE",
  "endpoint": "the full endpoint path",
  "body": {{}},
  "groupByField": "{group_by_example}",
  "filterField": "field to filter by (for drilldown)",
  "filterValue": "value to filter by (for drilldown)",
  "explanation": "brief explanation"
}}
"""


def extract_json_object(txt: str) -> Optional[Dict[str, Any]]:
    """First well-formed JSON object in free text, or None."""
    txt = txt or ""
    try:
        whole = json.loads(txt)
        if isinstance(whole, dict):
            return whole
    except ValueError:
        pass

    decoder = json.JSONDecoder()
    start = txt.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(txt, start)
        except ValueError:
            obj = None
        if isinstance(obj, dict):
            return obj
        start = txt.find("{", start + 1)
    return None


@lru_cache
def get_llm():
    from langchain_openai import ChatOpenAI

    return ChatOpenAI(model=config.OPENAI_MODEL, temperature=0, timeout=config.LLM_TIMEOUT)


class PlanGenerator:
    """
    Resolves the target object and field hint locally, asks the reasoning
    service for a plan, then re-applies the local field hint: exact field
    identifiers from the model are never taken on trust.
    """

    def __init__(self, schema: SchemaCache, store: ConversationStore, llm=None):
        self.schema = schema
        self.store = store
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    # ---------------------------
    # Step 1: target object
    # ---------------------------
    def resolve_target_object(self, message: str, state: ConversationState) -> Tuple[str, str]:
        lower = (message or "").lower()
        custom = self.schema.custom_objects()

        for obj in custom:
            if obj["label"].lower() in lower or obj["resourceName"].lower() in lower:
                logger.info("Detected custom object: %s (%s)", obj["label"], obj["resourceName"])
                return obj["resourceName"], obj["label"]

        for obj in config.LINKABLE_OBJECTS:
            if obj in lower or obj[:-1] in lower:
                return obj, obj.capitalize()

        lq = state.last_query
        if lq and lq.object_type and lq.object_label:
            # no object named in the message (a named custom or standard object returned above)
            logger.info("Using context object: %s (%s)", lq.object_label, lq.object_type)
            return lq.object_type, lq.object_label

        return config.DEFAULT_OBJECT, config.DEFAULT_OBJECT.capitalize()

    # ---------------------------
    # Step 2: field hint
    # ---------------------------
    @staticmethod
    def find_field_hint(entry: SchemaEntry, message: str) -> Optional[AttributeDescriptor]:
        lower = (message or "").lower()
        for attr in entry.attributes:
            display = attr.display_name.lower()
            api = attr.api_name.lower()
            if (display and display in lower) or (api and api in lower):
                logger.info('Field match: "%s" -> "%s"', attr.display_name, attr.api_name)
                return attr
        return None

    # ---------------------------
    # Step 3: prompt
    # ---------------------------
    def build_system_prompt(
        self,
        state: ConversationState,
        object_type: str,
        object_label: str,
        entry: SchemaEntry,
        hint: Optional[AttributeDescriptor],
    ) -> str:
        groupable = self.schema.get_groupable_fields(entry)
        mappings = [
            f'"{a.display_name}" -> "{a.api_name}"'
            for a in entry.attributes
            if not a.api_name.startswith("_") or a.api_name == config.IDENTITY_FIELD
        ]
        field_hint = ""
        if hint:
            field_hint = (
                f'\nFIELD MATCH FOUND: the user mentioned "{hint.display_name}", which maps to apiName '
                f'"{hint.api_name}" ({hint.data_type}).\n5. USE THIS EXACT FIELD: "{hint.api_name}"\n'
            )
        custom = self.schema.custom_objects()

        return SYSTEM_PROMPT.format(
            context=self.store.context_summary(state.session_id) or "No previous context",
            object_type=object_type,
            object_label=object_label,
            field_hint=field_hint,
            objects=", ".join(self.schema.discover_object_types()[:50]),
            custom_objects=", ".join(f'{o["label"]} ({o["resourceName"]})' for o in custom) or "none",
            groupable=", ".join(f'"{a.api_name}" ({a.display_name})' for a in groupable[:50]),
            mappings="\n    ".join(mappings),
            max_limit=config.MAX_RESULT_LIMIT,
            group_by_example=hint.api_name if hint else "field to group by",
        )

    # ---------------------------
    # Step 4: ask, parse, override
    # ---------------------------
    def generate_plan(self, message: str, state: ConversationState) -> Plan:
        object_type, object_label = self.resolve_target_object(message, state)
        logger.info("Target object: %s (%s)", object_label, object_type)

        entry = self.schema.get_schema(object_type)
        hint = self.find_field_hint(entry, message)
        system_prompt = self.build_system_prompt(state, object_type, object_label, entry, hint)

        resp = self.llm.invoke([
            SystemMessage(content=system_prompt),
            HumanMessage(content=f'User request: "{message}"\n\nReturn ONLY the JSON plan.'),
        ])
        raw = resp.content if isinstance(resp.content, str) else json.dumps(resp.content)
        plan = self.parse_plan(raw, object_type)

        if hint and plan.action == "analyze" and plan.group_by_field != hint.api_name:
            logger.info("Overriding groupByField %r with hinted %r", plan.group_by_field, hint.api_name)
            plan = plan.model_copy(update={"group_by_field": hint.api_name})
        return plan

    @staticmethod
    def parse_plan(raw: str, default_object_type: str) -> Plan:
        data = extract_json_object(raw)
        if data is None:
            raise PlanParseError(raw)
        if not data.get("objectType"):
            data["objectType"] = default_object_type
        try:
            plan = Plan.model_validate(data)
        except ValidationError as e:
            raise PlanParseError(raw, reason=f"invalid plan: {e.errors()[:3]}") from e
        if not plan.endpoint:
            plan = plan.model_copy(update={"endpoint": f"/{plan.object_type}"})
        return plan

