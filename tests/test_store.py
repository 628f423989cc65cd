"""Tests for per-session conversation memory."""

import threading

import pytest

from ppmchat.conversation.store import ConversationStore
from ppmchat.models import PageRef, QueryMemory, Turn

from tests.conftest import FakeClock


def _chart_query(store, labels=("Active", "Completed")):
    return QueryMemory(
        object_type="projects",
        object_label="Projects",
        action="analyze",
        timestamp=store.now_iso(),
        total_count=3,
        group_by_field="status",
        group_by_display_name="Status",
        chart_data={"status": [{"label": label, "value": 1} for label in labels]},
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ConversationStore(clock=clock)


class TestHistory:
    def test_history_bound_keeps_most_recent_twenty(self, store):
        for i in range(25):
            store.append_turn("s1", Turn(timestamp=store.now_iso(), role="user", message=f"m{i}"))

        history = store.get_or_create("s1").history
        assert len(history) == 20
        assert [t.message for t in history] == [f"m{i}" for i in range(5, 25)]

    def test_returned_state_is_a_copy(self, store):
        store.append_turn("s1", Turn(timestamp=store.now_iso(), role="user", message="hello"))
        state = store.get_or_create("s1")
        state.history.clear()
        state.preferences["x"] = 1

        fresh = store.get_or_create("s1")
        assert len(fresh.history) == 1
        assert fresh.preferences == {}

    def test_concurrent_appends_are_not_lost(self):
        store = ConversationStore(max_history=1000)

        def worker(n):
            for i in range(50):
                store.append_turn("shared", Turn(timestamp=store.now_iso(), role="user", message=f"{n}-{i}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store.get_or_create("shared").history) == 400


class TestExpiry:
    def test_idle_session_is_swept(self, store, clock):
        store.append_turn("old", Turn(timestamp=store.now_iso(), role="user", message="hi"))
        clock.advance(minutes=31)

        assert store.sweep_expired() == 1
        assert "old" not in store

    def test_recently_touched_session_survives(self, store, clock):
        store.append_turn("s1", Turn(timestamp=store.now_iso(), role="user", message="first"))
        clock.advance(minutes=29)
        store.append_turn("s1", Turn(timestamp=store.now_iso(), role="user", message="again"))
        clock.advance(minutes=1)

        assert store.sweep_expired() == 0
        assert "s1" in store

    def test_session_without_turns_is_swept(self, store):
        store.get_or_create("empty")
        assert store.sweep_expired() == 1
        assert "empty" not in store


class TestLastQuery:
    def test_update_replaces_previous(self, store):
        store.update_last_query("s1", _chart_query(store))
        store.update_last_query("s1", QueryMemory(
            object_type="tasks", object_label="Tasks", action="query",
            timestamp=store.now_iso(), filters={"status": "Open"},
        ))

        lq = store.last_query("s1")
        assert lq.object_type == "tasks"
        assert lq.filters == {"status": "Open"}
        assert lq.chart_data is None
        assert not store.can_drill_down("s1")

    def test_timestamp_never_goes_backwards(self, store, clock):
        store.update_last_query("s1", _chart_query(store))
        first_ts = store.last_query("s1").timestamp

        stale = _chart_query(store)
        stale.timestamp = "2020-01-01T00:00:00+00:00"
        store.update_last_query("s1", stale)
        assert store.last_query("s1").timestamp == first_ts

    def test_chart_requires_group_field(self):
        with pytest.raises(ValueError):
            QueryMemory(
                object_type="projects", object_label="Projects", action="analyze",
                timestamp="2024-01-01T00:00:00+00:00", chart_data={"status": []},
            )

    def test_clear_removes_session(self, store):
        store.update_last_query("s1", _chart_query(store))
        store.clear("s1")
        assert store.last_query("s1") is None


class TestDrillDown:
    def test_options_and_can_drill_down(self, store):
        assert not store.can_drill_down("s1")
        store.update_last_query("s1", _chart_query(store))
        assert store.can_drill_down("s1")
        assert store.drill_down_options("s1") == ["Active", "Completed"]

    def test_exact_match_ignores_case(self, store):
        store.update_last_query("s1", _chart_query(store))
        assert store.find_drill_down_match("s1", "active") == "Active"

    def test_substring_match(self, store):
        store.update_last_query("s1", _chart_query(store, labels=("In Progress", "Done")))
        assert store.find_drill_down_match("s1", "progress") == "In Progress"

    def test_substring_tie_break_prefers_shortest_containing_label(self, store):
        store.update_last_query("s1", _chart_query(store, labels=("Active - Late", "Active - On Track", "Active")))
        # exact match first
        assert store.find_drill_down_match("s1", "ACTIVE") == "Active"
        assert store.find_drill_down_match("s1", "active -") == "Active - Late"

    def test_no_match(self, store):
        store.update_last_query("s1", _chart_query(store))
        assert store.find_drill_down_match("s1", "cancelled") is None
        assert store.find_drill_down_match("s1", "") is None

    def test_build_request(self, store):
        assert store.build_drill_down_request("s1", "Active") is None
        store.update_last_query("s1", _chart_query(store))
        assert store.build_drill_down_request("s1", "Active") == {
            "field": "status", "value": "Active", "objectType": "projects",
        }


class TestContextSummary:
    def test_summary_mentions_query_page_and_recent_questions(self, store):
        store.update_last_query("s1", _chart_query(store))
        store.set_current_page("s1", PageRef(object_type="projects", record_id="5001", record_name="Apollo"))
        for msg in ["one", "two", "three", "four"]:
            store.append_turn("s1", Turn(timestamp=store.now_iso(), role="user", message=msg))

        summary = store.context_summary("s1")
        assert "Last query: analyze on Projects" in summary
        assert "Grouped by: Status" in summary
        assert "Available values: Active, Completed" in summary
        assert "Total records: 3" in summary
        assert "Current page: projects - Apollo" in summary
        assert "Recent questions: two | three | four" in summary

    def test_empty_session_has_empty_summary(self, store):
        assert store.context_summary("nobody") == ""

    def test_merge_preferences(self, store):
        store.merge_preferences("s1", {"preferredChartType": "pie"})
        store.merge_preferences("s1", {"language": "he"})
        assert store.get_or_create("s1").preferences == {"preferredChartType": "pie", "language": "he"}
