# ppmchat/agents/executor.py
from __future__ import annotations

import logging
from typing import Any, Dict

from ppmchat.agents import analyze, catalog, records
from ppmchat.agents.services import Services, result
from ppmchat.models import Plan

logger = logging.getLogger(__name__)


class PlanExecutor:
    """Runs one validated Plan against the remote object API."""

    def __init__(self, services: Services):
        self.svc = services

    def execute(self, plan: Plan, message: str, session_id: str) -> Dict[str, Any]:
        logger.info("Executing %s on %s (%s %s)", plan.action, plan.object_type, plan.method, plan.endpoint)
        svc = self.svc

        if plan.action == "query":
            return records.run_query(svc, plan, message, session_id)
        if plan.action == "analyze":
            return analyze.run_analyze(svc, plan, session_id)
        if plan.action == "create":
            return records.run_create(svc, plan, message)
        if plan.action == "update":
            return records.run_update(svc, plan, message)
        if plan.action == "delete":
            return records.run_delete(svc, plan, message)
        if plan.action == "describe":
            return catalog.run_describe(svc, plan)
        if plan.action == "help":
            return catalog.run_help(svc, session_id)
        if plan.action == "drilldown":
            if svc.store.can_drill_down(session_id):
                return analyze.run_drill_down(svc, session_id, plan.filter_value, message)
            return result(False, "There is no chart to drill into yet. Ask for a distribution first, "
                                 "e.g. \"Show project distribution by status\".")
        return result(False, f"Unknown action: {plan.action}")
