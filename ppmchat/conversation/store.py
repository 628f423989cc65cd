from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from dateutil import parser as dtparser

from ppmchat import config
from ppmchat.models import ConversationState, PageRef, QueryMemory, Turn
from ppmchat.utils.matching import best_substring_match

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(ts: Optional[str]) -> Optional[datetime]:
    if not ts:
        return None
    try:
        d = dtparser.isoparse(ts)
    except (ValueError, OverflowError):
        return None
    return d if d.tzinfo else d.replace(tzinfo=timezone.utc)


class ConversationStore:
    """
    Per-session conversation memory, kept in process.

    Every mutation is a locked read-modify-write on one session's state; callers
    only ever receive deep copies.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        max_history: int = config.MAX_HISTORY,
        expiry_seconds: float = config.SESSION_EXPIRY,
    ):
        self._clock = clock
        self.max_history = max_history
        self.expiry_seconds = expiry_seconds
        self._lock = threading.RLock()
        self._sessions: Dict[str, ConversationState] = {}

    def now(self) -> datetime:
        return self._clock()

    def now_iso(self) -> str:
        return self._clock().isoformat()

    def _state(self, session_id: str) -> ConversationState:
        # caller holds the lock
        state = self._sessions.get(session_id)
        if state is None:
            state = ConversationState(session_id=session_id)
            self._sessions[session_id] = state
        return state

    # ---------------------------
    # Mutations
    # ---------------------------
    def get_or_create(self, session_id: str) -> ConversationState:
        with self._lock:
            return copy.deepcopy(self._state(session_id))

    def update_last_query(self, session_id: str, query: QueryMemory) -> None:
        query = copy.deepcopy(query)
        with self._lock:
            state = self._state(session_id)
            prev = state.last_query
            if prev is not None:
                prev_ts, new_ts = _parse_ts(prev.timestamp), _parse_ts(query.timestamp)
                if prev_ts and (new_ts is None or new_ts < prev_ts):
                    query.timestamp = prev.timestamp
            state.last_query = query

    def append_turn(self, session_id: str, turn: Turn) -> None:
        with self._lock:
            state = self._state(session_id)
            state.history.append(copy.deepcopy(turn))
            if len(state.history) > self.max_history:
                state.history = state.history[-self.max_history:]

    def set_current_page(self, session_id: str, page: Optional[PageRef]) -> None:
        with self._lock:
            self._state(session_id).current_page = copy.deepcopy(page)

    def merge_preferences(self, session_id: str, preferences: Dict[str, Any]) -> None:
        with self._lock:
            state = self._state(session_id)
            state.preferences = {**state.preferences, **preferences}

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def sweep_expired(self) -> int:
        """Drop sessions whose last history entry is older than the expiry window."""
        now = self._clock()
        removed = 0
        with self._lock:
            for session_id in list(self._sessions):
                history = self._sessions[session_id].history
                last = _parse_ts(history[-1].timestamp) if history else None
                if last is None or (now - last).total_seconds() > self.expiry_seconds:
                    del self._sessions[session_id]
                    removed += 1
        if removed:
            logger.info("Swept %d idle sessions", removed)
        return removed

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    # ---------------------------
    # Derived queries
    # ---------------------------
    def last_query(self, session_id: str) -> Optional[QueryMemory]:
        with self._lock:
            return copy.deepcopy(self._state(session_id).last_query)

    def can_drill_down(self, session_id: str) -> bool:
        lq = self.last_query(session_id)
        return bool(lq and lq.chart_data and lq.group_by_field)

    def drill_down_options(self, session_id: str) -> List[str]:
        lq = self.last_query(session_id)
        if not lq or not lq.chart_data or not lq.group_by_field:
            return []
        return [item["label"] for item in lq.chart_data.get(lq.group_by_field) or []]

    def find_drill_down_match(self, session_id: str, text: str) -> Optional[str]:
        options = self.drill_down_options(session_id)
        lower = (text or "").strip().lower()
        if not lower:
            return None
        for opt in options:
            if opt.lower() == lower:
                return opt
        return best_substring_match(lower, options)

    def build_drill_down_request(self, session_id: str, value: str) -> Optional[Dict[str, str]]:
        lq = self.last_query(session_id)
        if not lq or not lq.group_by_field or not lq.object_type:
            return None
        return {"field": lq.group_by_field, "value": value, "objectType": lq.object_type}

    def context_summary(self, session_id: str) -> str:
        state = self.get_or_create(session_id)
        parts: List[str] = []

        lq = state.last_query
        if lq:
            parts.append(f"Last query: {lq.action} on {lq.object_label}")
            if lq.group_by_field:
                parts.append(f"Grouped by: {lq.group_by_display_name or lq.group_by_field}")
                options = self.drill_down_options(session_id)
                if options:
                    parts.append(f"Available values: {', '.join(options[:10])}")
            if lq.total_count:
                parts.append(f"Total records: {lq.total_count}")

        page = state.current_page
        if page:
            suffix = f" - {page.record_name}" if page.record_name else ""
            parts.append(f"Current page: {page.object_type}{suffix}")

        recent = [t.message for t in state.history if t.role == "user"][-3:]
        if recent:
            parts.append(f"Recent questions: {' | '.join(recent)}")

        return "\n".join(parts)
