import logging
from typing import Any, Dict, Optional

from langgraph.graph import END, StateGraph

from ppmchat import config
from ppmchat.agents import analyze, catalog, links
from ppmchat.agents.executor import PlanExecutor
from ppmchat.agents.services import Services
from ppmchat.conversation.store import ConversationStore
from ppmchat.errors import ChatError
from ppmchat.graph import intent as intents
from ppmchat.graph.responses import build_response, error_reply
from ppmchat.graph.state import ChatState
from ppmchat.graph.suggestions import generate_suggestions
from ppmchat.llm.planner import PlanGenerator
from ppmchat.models import Turn
from ppmchat.providers.base import ObjectApi, PermissionProvider, ToolAvailability
from ppmchat.providers.capabilities import PresetPermissionProvider, ProbingToolAvailability
from ppmchat.providers.clarity_rest import create_clarity_client
from ppmchat.schema.cache import SchemaCache
from ppmchat.utils.deeplinks import DeepLinkBuilder

logger = logging.getLogger(__name__)

# follow-up intents answered from the last chart without a new plan
_FOLLOW_UPS = {"showSelected": "drilldown", "count": "count", "export": "export"}


# ---------------------------
# Utilities
# ---------------------------
def add_trace(state: ChatState, node: str, detail: dict):
    state.setdefault("trace", [])
    state["trace"].append({"node": node, "detail": detail})


class ChatHandler:
    """
    Entry point for one chat message: classify, answer deterministic
    follow-ups locally, otherwise plan with the reasoning service and execute.
    """

    def __init__(
        self,
        api: ObjectApi,
        store: Optional[ConversationStore] = None,
        schema: Optional[SchemaCache] = None,
        tools: Optional[ToolAvailability] = None,
        permissions: Optional[PermissionProvider] = None,
        llm=None,
        base_url: str = config.CLARITY_BASE_URL,
    ):
        self.store = store or ConversationStore()
        self.schema = schema or SchemaCache(api)
        self.services = Services(
            api=api,
            schema=self.schema,
            store=self.store,
            links=DeepLinkBuilder(base_url),
            tools=tools or ProbingToolAvailability(api),
            permissions=permissions or PresetPermissionProvider(),
        )
        self.planner = PlanGenerator(self.schema, self.store, llm=llm)
        self.executor = PlanExecutor(self.services)
        self.graph = self.build_graph()

    # ---------------------------
    # Nodes
    # ---------------------------
    def node_intake(self, state: ChatState) -> ChatState:
        message = state.get("message") or ""
        session_id = state["session_id"]
        found = intents.classify(message)
        state["intent"] = found.type
        state["extracted_value"] = found.extracted_value

        if intents.is_greeting(message):
            route = "help"
        elif intents.is_link_request(message) or (
            found.type == "link" and not intents.mentions_creation(message)
        ):
            route = "link"
        elif found.type in _FOLLOW_UPS and self.store.can_drill_down(session_id):
            route = "followup"
        elif intents.is_custom_object_catalog(message):
            route = "catalog"
        else:
            route = "plan"

        state["route"] = route
        add_trace(state, "intake", {"intent": found.type, "value": found.extracted_value, "route": route})
        return state

    def node_route(self, state: ChatState) -> str:
        return state.get("route", "plan")

    def node_help(self, state: ChatState) -> ChatState:
        state["result"] = catalog.run_help(self.services, state["session_id"])
        state["action"] = "help"
        return state

    def node_link(self, state: ChatState) -> ChatState:
        session_id = state["session_id"]
        state["result"] = links.run_link(self.services, session_id, state["message"])
        lq = self.store.last_query(session_id)
        state["action"] = "link"
        state["object_type"] = lq.object_type if lq else None
        return state

    def node_followup(self, state: ChatState) -> ChatState:
        session_id = state["session_id"]
        action = _FOLLOW_UPS[state["intent"]]
        lq = self.store.last_query(session_id)
        state["object_type"] = lq.object_type if lq else None

        if action == "drilldown":
            state["result"] = analyze.run_drill_down(
                self.services, session_id, state.get("extracted_value"), state["message"]
            )
        elif action == "count":
            state["result"] = analyze.run_count(self.services, session_id)
        else:
            state["result"] = analyze.run_export(self.services, session_id)
        state["action"] = action
        add_trace(state, "followup", {"action": action})
        return state

    def node_catalog(self, state: ChatState) -> ChatState:
        state["result"] = catalog.run_custom_object_catalog(self.services, state["message"])
        state["action"] = "describe"
        return state

    def node_plan(self, state: ChatState) -> ChatState:
        conversation = self.store.get_or_create(state["session_id"])
        plan = self.planner.generate_plan(state["message"], conversation)
        state["plan"] = plan
        state["action"] = plan.action
        state["object_type"] = plan.object_type
        add_trace(state, "plan", plan.model_dump(by_alias=True))
        return state

    def node_execute(self, state: ChatState) -> ChatState:
        state["result"] = self.executor.execute(state["plan"], state["message"], state["session_id"])
        return state

    # ---------------------------
    # Build graph
    # ---------------------------
    def build_graph(self):
        g = StateGraph(ChatState)

        g.add_node("intake", self.node_intake)
        g.add_node("help", self.node_help)
        g.add_node("link", self.node_link)
        g.add_node("followup", self.node_followup)
        g.add_node("catalog", self.node_catalog)
        g.add_node("plan", self.node_plan)
        g.add_node("execute", self.node_execute)

        g.set_entry_point("intake")

        g.add_conditional_edges("intake", self.node_route, {
            "help": "help",
            "link": "link",
            "followup": "followup",
            "catalog": "catalog",
            "plan": "plan",
        })

        g.add_edge("plan", "execute")
        for node in ("help", "link", "followup", "catalog", "execute"):
            g.add_edge(node, END)

        return g.compile()

    # ---------------------------
    # Entry point
    # ---------------------------
    def handle_message(self, message: str, session_id: str = "default") -> Dict[str, Any]:
        """Always returns a response dict; failures become `success: False` replies."""
        session_id = session_id or "default"
        message = (message or "").strip()
        self.store.append_turn(session_id, Turn(timestamp=self.store.now_iso(), role="user", message=message))

        action, object_type = "error", None
        try:
            out = self.graph.invoke({"session_id": session_id, "message": message, "trace": []})
            result = out["result"]
            action = out.get("action") or action
            object_type = out.get("object_type")
            logger.debug("Trace: %s", out.get("trace"))
        except ChatError as e:
            logger.warning("Request failed (%s): %s", type(e).__name__, e)
            result = {"success": False, "reply": error_reply(e), "chart_data": None, "deep_link": None}
        except Exception as e:
            logger.exception("Unexpected error handling message")
            result = {"success": False, "reply": error_reply(e), "chart_data": None, "deep_link": None}

        self.store.append_turn(session_id, Turn(
            timestamp=self.store.now_iso(),
            role="assistant",
            message=(result.get("reply") or "")[:200],
            action=action,
            object_type=object_type,
            success=bool(result.get("success")),
        ))

        conversation = self.store.get_or_create(session_id)
        suggestions = [s.as_button() for s in generate_suggestions(conversation, action)]
        return build_response(result, self.store.now_iso(), suggestions)


def create_handler(**overrides) -> ChatHandler:
    api = overrides.pop("api", None) or create_clarity_client()
    return ChatHandler(api, **overrides)
