"""System prompt builder."""

from __future__ import annotations

from stormy.tools.registry import ToolRegistry


def build_system_prompt(
    registry: ToolRegistry | None = None,
    active_profile: str | None = None,
    extra_sections: list[str] | None = None,
) -> str:
    """
    Build the system prompt for the orchestrator.

    Assembles the assistant persona, the tool-call format, the registry's
    tool descriptions and the active profile into a single prompt string.
    """
    sections: list[str] = []

    sections.append(
        "You are Stormy, an autonomous assistant with direct access to data via tools. "
        "When answering requires data, call the appropriate tool instead of guessing. "
        "Work step by step, and give the user a complete final answer once you have "
        "the tool results you need."
    )

    sections.append(TOOL_CALL_FORMAT_SECTION)
    sections.append(WORKFLOW_SECTION)

    if registry is not None and registry.list():
        sections.append(registry.describe())

    if active_profile:
        sections.append(
            f"## Active Profile\n\nThe currently selected profile is: `{active_profile}`. "
            f"Tools that need a profile operate on it."
        )

    if extra_sections:
        sections.extend(extra_sections)

    return "\n\n".join(sections)


TOOL_CALL_FORMAT_SECTION = """## Calling Tools

To call a tool, write a fenced block labeled `tool_call` containing one JSON object:

```tool_call
{"tool": "tool_name", "arguments": {"param": "value"}}
```

- Use one block per tool call. Several blocks may appear in one response.
- Only pass arguments declared by the tool.
- After the results arrive, continue your analysis or give your final answer.
- Do not repeat an answer you already gave; build on it."""

WORKFLOW_SECTION = """## Workflow

- For multi-step work, call `start_task` first and `finish_task` when done.
- Use `update_todo` to show progress through the steps.
- If the request is ambiguous, use `ask_user` instead of guessing.
- If a tool returns an error, adapt: fix the arguments or try another tool."""
