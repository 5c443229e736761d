"""Tests for the built-in workflow tools and the system prompt."""

from __future__ import annotations

import pytest

from stormy.orchestrator.extractor import extract_tool_calls
from stormy.prompts.system import TOOL_CALL_FORMAT_SECTION, build_system_prompt
from stormy.tools.agentic import (
    AskUserTool,
    FinishTaskTool,
    StartTaskTool,
    UpdateTodoTool,
    builtin_tools,
)
from stormy.tools.base import ToolContext
from stormy.tools.dispatcher import ToolDispatcher
from stormy.tools.registry import ToolRegistry


@pytest.fixture
def ctx():
    return ToolContext()


class TestTaskTools:
    async def test_start_task(self, ctx):
        result = await StartTaskTool().execute({"task_name": "Chart review"}, ctx)
        assert result.success
        assert result.summary == "Started task: Chart review"
        assert result.data["status"] == "started"
        assert result.data["description"] == ""
        assert isinstance(result.data["timestamp"], int)

    async def test_finish_task_default_summary(self, ctx):
        result = await FinishTaskTool().execute({"task_name": "Chart review"}, ctx)
        assert result.summary == "Completed task: Chart review"
        assert result.data["summary"] == "Task completed successfully"
        assert result.data["status"] == "completed"


class TestUpdateTodo:
    @pytest.mark.parametrize(
        "operation, items, summary",
        [
            ("add", ["a", "b"], "Added 2 todo items"),
            ("add", ["a"], "Added 1 todo item"),
            ("complete", [0], "Marked 1 item as completed"),
            ("set_in_progress", [1, 2], "Set 2 items as in progress"),
            ("replace", ["x", "y", "z"], "Updated todo list with 3 items"),
        ],
    )
    async def test_summaries(self, ctx, operation, items, summary):
        result = await UpdateTodoTool().execute({"operation": operation, "items": items}, ctx)
        assert result.success
        assert result.summary == summary

    async def test_items_stringified_and_default_title(self, ctx):
        result = await UpdateTodoTool().execute({"operation": "complete", "items": [0, "b"]}, ctx)
        assert result.data["items"] == ["0", "b"]
        assert result.data["title"] == "Task Steps"

    async def test_unknown_operation_rejected_by_dispatcher(self):
        reg = ToolRegistry()
        reg.register(UpdateTodoTool())
        result = await ToolDispatcher(reg).dispatch("update_todo", {"operation": "delete", "items": []})
        assert not result.success
        assert result.error_code == "validation_error"


class TestAskUser:
    async def test_options_normalized(self, ctx):
        result = await AskUserTool().execute(
            {"question": "Which chart?", "options": ["Natal", {"label": "Transit", "description": "today"}]},
            ctx,
        )
        assert result.data["options"] == [
            {"label": "Natal", "value": "Natal"},
            {"label": "Transit", "description": "today"},
        ]
        assert result.data["allow_custom_input"] is True
        assert result.data["status"] == "awaiting_response"
        assert result.summary == "Asking user: Which chart?"

    async def test_long_question_truncated_in_summary(self, ctx):
        question = "q" * 70
        result = await AskUserTool().execute({"question": question}, ctx)
        assert result.summary == "Asking user: " + "q" * 50 + "..."
        assert result.data["question"] == question


class TestBuiltins:
    def test_builtin_names(self):
        assert sorted(t.name for t in builtin_tools()) == [
            "ask_user",
            "finish_task",
            "start_task",
            "update_todo",
        ]


class TestSystemPrompt:
    def test_includes_tools_and_profile(self):
        reg = ToolRegistry()
        for tool in builtin_tools():
            reg.register(tool)
        prompt = build_system_prompt(reg, active_profile="p-42", extra_sections=["## Extra\n\nhi"])

        assert TOOL_CALL_FORMAT_SECTION in prompt
        assert "**start_task**" in prompt
        assert "`p-42`" in prompt
        assert prompt.endswith("## Extra\n\nhi")

    def test_without_registry(self):
        prompt = build_system_prompt()
        assert "### Available Tools:" not in prompt
        assert "Active Profile" not in prompt

    def test_documented_format_is_extractable(self):
        calls = extract_tool_calls(TOOL_CALL_FORMAT_SECTION)
        assert [(c.name, c.arguments) for c in calls] == [("tool_name", {"param": "value"})]
