"""Tests for stormy.orchestrator.state."""

from __future__ import annotations

from stormy.orchestrator.state import IterationState, is_duplicate


def _iterate(state: IterationState, content: str = "", reasoning: str = "") -> bool:
    state.begin_iteration()
    if content:
        state.content_parts.append(content)
    if reasoning:
        state.reasoning_parts.append(reasoning)
    return state.end_iteration(state.content)


class TestIsDuplicate:
    def test_exact_match_after_trim(self):
        assert is_duplicate("  answer ", ["answer"])

    def test_new_contains_previous(self):
        assert is_duplicate("A B", ["A"])

    def test_previous_contains_new(self):
        assert is_duplicate("A", ["A B"])

    def test_distinct_content(self):
        assert not is_duplicate("Saturn", ["Moon"])
        assert not is_duplicate("anything", [])


class TestContentMerge:
    def test_superset_in_second_iteration(self):
        state = IterationState()
        assert _iterate(state, "A")
        assert _iterate(state, "A B")
        assert state.accepted_content == ["A B"]
        assert state.final_content == "A B"

    def test_subset_in_second_iteration_discarded(self):
        state = IterationState()
        assert _iterate(state, "A B")
        assert not _iterate(state, "A")
        assert state.final_content == "A B"

    def test_exact_repeat_discarded(self):
        state = IterationState()
        assert _iterate(state, "Your Moon is in Cancer.")
        assert not _iterate(state, "  Your Moon is in Cancer.  ")
        assert state.accepted_content == ["Your Moon is in Cancer."]

    def test_superset_replaces_only_contained_entries(self):
        state = IterationState()
        _iterate(state, "Checking.")
        _iterate(state, "Moon")
        _iterate(state, "Moon in Cancer")
        assert state.accepted_content == ["Checking.", "Moon in Cancer"]

    def test_last_accepted_content_wins(self):
        state = IterationState()
        _iterate(state, "Looking up your chart.")
        _iterate(state, "Your Moon is in Cancer.")
        assert state.final_content == "Your Moon is in Cancer."

    def test_empty_content_not_accepted(self):
        state = IterationState()
        assert not _iterate(state, "   ")
        assert state.final_content == ""

    def test_iteration_counter_and_buffer_reset(self):
        state = IterationState()
        _iterate(state, "one", "r1")
        state.begin_iteration()
        assert state.iteration == 2
        assert state.content == ""
        assert state.reasoning == ""


class TestReasoningMerge:
    def test_reasoning_is_additive(self):
        state = IterationState()
        _iterate(state, reasoning="first")
        _iterate(state, reasoning="first")
        _iterate(state, reasoning="  ")
        assert state.merged_reasoning == "first\n\nfirst"

    def test_reset_accumulated(self):
        state = IterationState()
        _iterate(state, "c", "r")
        state.reset_accumulated()
        assert state.final_content == ""
        assert state.merged_reasoning == ""


class TestToolsUsed:
    def test_distinct_in_first_use_order(self):
        state = IterationState()
        for name in ["b", "a", "b"]:
            state.record_tool(name)
        assert state.tools_used == ["b", "a"]


class TestPartialContent:
    def test_prefers_in_flight_content(self):
        state = IterationState()
        _iterate(state, "earlier answer")
        state.begin_iteration()
        state.content_parts.append('new text ```tool_call\n{"tool": "x"}\n```')
        assert state.partial_content() == "new text"

    def test_falls_back_to_accepted_content(self):
        state = IterationState()
        _iterate(state, "earlier answer")
        state.begin_iteration()
        assert state.partial_content() == "earlier answer"

    def test_falls_back_to_reasoning(self):
        state = IterationState()
        _iterate(state, reasoning="thought one")
        state.begin_iteration()
        state.reasoning_parts.append("thought two")
        assert state.partial_content() == "thought one"

    def test_in_flight_reasoning_last(self):
        state = IterationState()
        state.begin_iteration()
        state.reasoning_parts.append(" pondering ")
        assert state.partial_content() == "pondering"
