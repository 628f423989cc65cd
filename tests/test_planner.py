"""Tests for plan generation: target object, field hint, parsing."""

import json

import pytest

from ppmchat.conversation.store import ConversationStore
from ppmchat.errors import PlanParseError
from ppmchat.llm.planner import PlanGenerator, extract_json_object
from ppmchat.models import ConversationState, QueryMemory
from ppmchat.schema.cache import SchemaCache

from tests.conftest import FakeApi, FakeLLM, base_routes


@pytest.fixture
def api():
    routes = base_routes()
    routes["/describe/custRiskRegister?includeAttributes=true"] = {
        "label": "Risk Register",
        "isCustom": True,
        "attributes": [
            {"name": "obj_severity", "displayName": "Severity", "dataType": "LOOKUP", "lookupType": "SEV"},
            {"name": "obj_owner", "displayName": "Owner", "dataType": "LOOKUP", "lookupType": "USER"},
        ],
    }
    return FakeApi(routes)


def _generator(api, *replies):
    schema = SchemaCache(api)
    store = ConversationStore()
    return PlanGenerator(schema, store, llm=FakeLLM(*replies)), store


class TestExtractJsonObject:
    def test_plain_json(self):
        assert extract_json_object('{"action": "query"}') == {"action": "query"}

    def test_surrounded_by_prose_and_fences(self):
        txt = 'Sure! Here you go:\n```json\n{"action": "analyze", "body": {"a": 1}}\n```\nanything else?'
        assert extract_json_object(txt) == {"action": "analyze", "body": {"a": 1}}

    def test_skips_broken_braces(self):
        assert extract_json_object('{oops} then {"ok": true}') == {"ok": True}

    def test_nothing_structured(self):
        assert extract_json_object("no plan today") is None
        assert extract_json_object("") is None
        assert extract_json_object("[1, 2]") is None


class TestParsePlan:
    def test_camel_case_fields(self):
        plan = PlanGenerator.parse_plan(json.dumps({
            "action": "analyze",
            "objectType": "projects",
            "method": "get",
            "endpoint": "/projects",
            "groupByField": "status",
            "queryParams": {"limit": 10},
            "explanation": None,
        }), "tasks")

        assert plan.action == "analyze"
        assert plan.object_type == "projects"
        assert plan.method == "GET"
        assert plan.group_by_field == "status"
        assert plan.query_params == {"limit": 10}
        assert plan.explanation == ""

    def test_defaults_object_and_endpoint(self):
        plan = PlanGenerator.parse_plan('{"action": "query"}', "tasks")
        assert plan.object_type == "tasks"
        assert plan.endpoint == "/tasks"

    def test_unknown_action_is_a_parse_error(self):
        with pytest.raises(PlanParseError):
            PlanGenerator.parse_plan('{"action": "explode"}', "projects")

    def test_no_object_is_a_parse_error(self):
        with pytest.raises(PlanParseError) as exc:
            PlanGenerator.parse_plan("I cannot help with that", "projects")
        assert exc.value.raw == "I cannot help with that"


class TestResolveTargetObject:
    def test_custom_object_label_wins(self, api):
        gen, _ = _generator(api)
        state = ConversationState(session_id="s1")
        assert gen.resolve_target_object("show the risk register by severity", state) == (
            "custRiskRegister", "Risk Register",
        )

    def test_standard_object_singular_or_plural(self, api):
        gen, _ = _generator(api)
        state = ConversationState(session_id="s1")
        assert gen.resolve_target_object("how many tasks", state) == ("tasks", "Tasks")
        assert gen.resolve_target_object("describe the idea object", state) == ("ideas", "Ideas")

    def test_falls_back_to_last_query(self, api):
        gen, _ = _generator(api)
        state = ConversationState(session_id="s1", last_query=QueryMemory(
            object_type="custRiskRegister", object_label="Risk Register", action="query",
            timestamp="2024-05-01T09:00:00+00:00",
        ))
        assert gen.resolve_target_object("describe its fields", state) == ("custRiskRegister", "Risk Register")

    def test_default_object(self, api):
        gen, _ = _generator(api)
        assert gen.resolve_target_object("what's up", ConversationState(session_id="s1")) == (
            "projects", "Projects",
        )


class TestGeneratePlan:
    def test_field_hint_overrides_model_group_by(self, api):
        reply = {"action": "analyze", "objectType": "custRiskRegister", "groupByField": "obj_owner"}
        gen, store = _generator(api, reply)

        plan = gen.generate_plan("risk register distribution by severity", store.get_or_create("s1"))
        assert plan.group_by_field == "obj_severity"

    def test_hint_does_not_touch_other_actions(self, api):
        reply = {"action": "query", "objectType": "custRiskRegister", "groupByField": "obj_owner"}
        gen, store = _generator(api, reply)

        plan = gen.generate_plan("list risk register items by severity", store.get_or_create("s1"))
        assert plan.group_by_field == "obj_owner"

    def test_prompt_carries_mapping_and_rules(self, api):
        llm = FakeLLM({"action": "analyze", "groupByField": "status"})
        gen = PlanGenerator(SchemaCache(api), ConversationStore(), llm=llm)

        gen.generate_plan("show project distribution by status", ConversationState(session_id="s1"))
        system, human = llm.calls[0]
        assert '"Status" -> "status"' in system.content
        assert "MAXIMUM LIMIT IS 500" in system.content
        assert 'FIELD MATCH FOUND: the user mentioned "Status"' in system.content
        assert "Risk Register (custRiskRegister)" in system.content
        assert "show project distribution by status" in human.content

    def test_unparseable_reply(self, api):
        gen, store = _generator(api, "Sorry, I can't do that.")
        with pytest.raises(PlanParseError):
            gen.generate_plan("list projects", store.get_or_create("s1"))
