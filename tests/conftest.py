import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from ppmchat.conversation.store import ConversationStore
from ppmchat.errors import RemoteCallError
from ppmchat.graph.graph import ChatHandler
from ppmchat.providers.base import ObjectApi
from ppmchat.providers.capabilities import Capabilities, PresetPermissionProvider, StaticToolAvailability

BASE_URL = "https://clarity.example.com/ppm/rest/v1"

DISCOVERY_ALL = "/describe?limit=500"
DISCOVERY_CUSTOM = "/describe?filter=(isCustom = true) and (isSystem = false)&limit=500"

PROJECT_SCHEMA = {
    "label": "Project",
    "pluralLabel": "Projects",
    "attributes": [
        {"name": "_internalId", "displayName": "Internal ID", "dataType": "NUMBER", "isReadOnly": True},
        {"name": "name", "displayName": "Name", "dataType": "STRING", "isRequired": True},
        {"name": "code", "displayName": "Code", "dataType": "STRING", "isRequired": True},
        {"name": "status", "displayName": "Status", "dataType": "LOOKUP", "lookupType": "INV_STATUS"},
        {"name": "priority", "displayName": "Priority", "dataType": "STRING"},
        {"name": "description", "displayName": "Description", "dataType": "LARGE_STRING"},
        {"name": "finishDate", "displayName": "Finish", "dataType": "DATE"},
    ],
}


class FakeApi(ObjectApi):
    """
    Routes endpoints to canned answers. An exact endpoint wins, then the
    longest registered prefix. Values may be dicts, exceptions or callables.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def _answer(self, method, endpoint, body=None):
        self.calls.append((method, endpoint, body))
        key = (method, endpoint)
        if key in self.routes:
            answer = self.routes[key]
        elif endpoint in self.routes:
            answer = self.routes[endpoint]
        else:
            prefixes = [k for k in self.routes if isinstance(k, str) and endpoint.startswith(k)]
            if not prefixes:
                raise RemoteCallError(f"HTTP 404: no route for {endpoint}", status=404, method=method, endpoint=endpoint)
            answer = self.routes[max(prefixes, key=len)]

        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer(endpoint, body)
        return json.loads(json.dumps(answer))

    def get(self, endpoint):
        return self._answer("GET", endpoint)

    def post(self, endpoint, body=None):
        return self._answer("POST", endpoint, body)

    def patch(self, endpoint, body=None):
        return self._answer("PATCH", endpoint, body)

    def delete(self, endpoint):
        return self._answer("DELETE", endpoint)

    def endpoints(self, method="GET"):
        return [e for m, e, _ in self.calls if m == method]


class FakeLLM:
    """Stands in for the chat model: returns queued replies in order, repeating the last."""

    def __init__(self, *replies):
        self.replies = [r if isinstance(r, str) else json.dumps(r) for r in replies]
        self.calls = []

    def invoke(self, messages):
        self.calls.append(messages)
        idx = min(len(self.calls), len(self.replies)) - 1
        return SimpleNamespace(content=self.replies[idx])


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def base_routes():
    return {
        DISCOVERY_ALL: {"_results": [
            {"resourceName": "projects", "label": "Projects"},
            {"resourceName": "tasks", "label": "Tasks"},
            {"resourceName": "custRiskRegister", "label": "Risk Register"},
        ]},
        DISCOVERY_CUSTOM: {"_results": [{"resourceName": "custRiskRegister", "label": "Risk Register"}]},
        "/describe/projects?includeAttributes=true": PROJECT_SCHEMA,
    }


@pytest.fixture
def fake_api():
    return FakeApi(base_routes())


@pytest.fixture
def full_caps():
    return Capabilities(
        can_read=True, can_write=True, can_delete=True,
        has_projects=True, has_tasks=True, has_resources=True,
        has_custom_objects=True, custom_object_codes=["custRiskRegister"],
    )


@pytest.fixture
def make_handler(fake_api, full_caps):
    """Builds a ChatHandler over the fake API with the given model replies."""

    def _make(*llm_replies, permissions=None, llm=None):
        return ChatHandler(
            fake_api,
            store=ConversationStore(),
            tools=StaticToolAvailability(full_caps),
            permissions=permissions or PresetPermissionProvider(),
            llm=llm or FakeLLM(*(llm_replies or ("{}",))),
            base_url=BASE_URL,
        )

    return _make
