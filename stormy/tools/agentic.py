"""
Built-in agentic workflow tools.

These tools touch no data store.  They let the model structure multi-step
work in a way the UI can render:

- start_task / finish_task
- update_todo
- ask_user

Each returns structured ``data`` plus a one-line summary.
"""

from __future__ import annotations

import time

from stormy.tools.base import Tool, ToolContext
from stormy.types import ToolExecutionResult

TODO_OPERATIONS = ("add", "complete", "set_in_progress", "replace")


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


class StartTaskTool(Tool):
    """Signal the start of a multi-step task."""

    @property
    def name(self) -> str:
        return "start_task"

    @property
    def description(self) -> str:
        return (
            "Signal the start of a complex, multi-step task. Use this when beginning "
            "multi-step work to help the user understand your process."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "task_name": {
                    "type": "string",
                    "description": "A concise name for the task.",
                },
                "description": {
                    "type": "string",
                    "description": "Brief description of what this task will accomplish.",
                },
            },
            "required": ["task_name"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolExecutionResult:
        task_name = arguments["task_name"]
        return ToolExecutionResult(
            success=True,
            data={
                "task_name": task_name,
                "description": arguments.get("description", ""),
                "status": "started",
                "timestamp": _timestamp_ms(),
            },
            summary=f"Started task: {task_name}",
        )


class FinishTaskTool(Tool):
    """Signal the completion of a task started with ``start_task``."""

    @property
    def name(self) -> str:
        return "finish_task"

    @property
    def description(self) -> str:
        return (
            "Signal the completion of a task. Include a brief summary of what "
            "was accomplished."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "task_name": {
                    "type": "string",
                    "description": "The name of the task being completed (should match start_task).",
                },
                "summary": {
                    "type": "string",
                    "description": "Brief summary of what was accomplished.",
                },
            },
            "required": ["task_name"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolExecutionResult:
        task_name = arguments["task_name"]
        return ToolExecutionResult(
            success=True,
            data={
                "task_name": task_name,
                "summary": arguments.get("summary", "Task completed successfully"),
                "status": "completed",
                "timestamp": _timestamp_ms(),
            },
            summary=f"Completed task: {task_name}",
        )


class UpdateTodoTool(Tool):
    """Maintain a todo list that shows progress on a complex task."""

    @property
    def name(self) -> str:
        return "update_todo"

    @property
    def description(self) -> str:
        return (
            "Manage a todo list for tracking progress on complex tasks. Operations: "
            "'add' appends items, 'complete' marks items done, 'set_in_progress' marks "
            "an item as being worked on, 'replace' replaces the whole list."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "operation": {
                    "type": "string",
                    "enum": list(TODO_OPERATIONS),
                    "description": "Operation to perform.",
                },
                "items": {
                    "type": "array",
                    "description": (
                        "For 'add'/'replace': item texts. For 'complete'/'set_in_progress': "
                        "item indices (0-based) or item text."
                    ),
                },
                "title": {
                    "type": "string",
                    "description": "Title for the todo list (default: 'Task Steps').",
                },
            },
            "required": ["operation", "items"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolExecutionResult:
        operation = arguments["operation"].lower()
        items = [str(item) for item in arguments["items"]]

        if operation == "add":
            summary = f"Added {_plural(len(items), 'todo item')}"
        elif operation == "complete":
            summary = f"Marked {_plural(len(items), 'item')} as completed"
        elif operation == "set_in_progress":
            summary = f"Set {_plural(len(items), 'item')} as in progress"
        elif operation == "replace":
            summary = f"Updated todo list with {_plural(len(items), 'item')}"
        else:
            summary = "Updated todo list"

        return ToolExecutionResult(
            success=True,
            data={
                "operation": operation,
                "title": arguments.get("title", "Task Steps"),
                "items": items,
                "timestamp": _timestamp_ms(),
            },
            summary=summary,
        )


class AskUserTool(Tool):
    """Ask the user a clarifying question mid-task."""

    @property
    def name(self) -> str:
        return "ask_user"

    @property
    def description(self) -> str:
        return (
            "Ask the user a clarifying question when you need more information to "
            "proceed, e.g. when the request is ambiguous or you want confirmation "
            "before making changes. Optional choices may be offered."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "question": {
                    "type": "string",
                    "description": "The question to ask. Be clear and specific.",
                },
                "options": {
                    "type": "array",
                    "description": "Choices for the user: strings or objects with 'label' and optional 'description'.",
                },
                "allow_custom_input": {
                    "type": "boolean",
                    "description": "Whether free-text input is allowed besides the options (default true).",
                },
                "context": {
                    "type": "string",
                    "description": "Why you are asking this question.",
                },
            },
            "required": ["question"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolExecutionResult:
        question = arguments["question"]
        options = []
        for opt in arguments.get("options") or []:
            if isinstance(opt, dict):
                options.append(opt)
            elif isinstance(opt, str):
                options.append({"label": opt, "value": opt})

        short = question if len(question) <= 50 else question[:50] + "..."
        return ToolExecutionResult(
            success=True,
            data={
                "question": question,
                "options": options,
                "allow_custom_input": arguments.get("allow_custom_input", True),
                "context": arguments.get("context", ""),
                "status": "awaiting_response",
                "timestamp": _timestamp_ms(),
            },
            summary=f"Asking user: {short}",
        )


def builtin_tools() -> list[Tool]:
    return [StartTaskTool(), FinishTaskTool(), UpdateTodoTool(), AskUserTool()]
