"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from stormy.llm.types import Message, Role
from stormy.orchestrator.events import Error, RetryInfo, TokenUsage, ToolResult
from stormy.tools.base import Tool, normalize_schema

ROLE_COLORS = {
    Role.SYSTEM: "dim",
    Role.USER: "blue",
    Role.ASSISTANT: "green",
    Role.TOOL: "cyan",
}


class OutputFormatter:
    """Rich-based output formatting for the stormy CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def format_tool_list(self, tools: list[Tool]) -> None:
        if not tools:
            self.console.print("[dim]No tools registered.[/dim]")
            return

        table = Table(title="Registered Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Needs profile", no_wrap=True)
        table.add_column("Description")

        for t in tools:
            needs = Text("yes", style="yellow") if t.requires_profile else Text("no", style="dim")
            table.add_row(t.name, needs, t.description)

        self.console.print(table)

    def format_tool_info(self, tool: Tool) -> None:
        schema = normalize_schema(tool.parameters)
        required = ", ".join(schema.get("required", [])) or "none"
        self.console.print(Panel(
            f"[bold]{tool.name}[/bold]\n\n"
            f"[dim]Requires profile:[/dim] {tool.requires_profile}\n"
            f"[dim]Required parameters:[/dim] {required}\n\n"
            f"{tool.description}",
            title=f"Tool: {tool.name}",
        ))
        schema_json = json.dumps(schema, indent=2)
        self.console.print(Syntax(schema_json, "json", theme="monokai"))

    # ------------------------------------------------------------------
    # Agent events
    # ------------------------------------------------------------------

    def format_tool_result(self, event: ToolResult) -> None:
        status = "[green]OK[/green]" if event.success else "[red]FAILED[/red]"
        name = escape(f"[{event.tool_name}]")
        self.console.print(f"  {name} {status}: {escape(event.summary[:200])}", highlight=False)

    def format_retry(self, event: RetryInfo) -> None:
        self.console.print(
            f"\n  [yellow]Retrying ({event.attempt}/{event.max_attempts}) "
            f"in {event.delay_ms / 1000:.1f}s:[/yellow] {escape(event.reason)}"
        )

    def format_error(self, event: Error) -> None:
        label = "Warning" if event.retryable else "Error"
        code = f" [dim]({event.code})[/dim]" if event.code else ""
        self.console.print(f"\n[red]{label}:[/red] {escape(event.message)}{code}")

    def format_usage(self, event: TokenUsage) -> None:
        self.console.print(
            f"[dim]tokens: {event.prompt_tokens} prompt + "
            f"{event.completion_tokens} completion = {event.total_tokens}[/dim]"
        )

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def format_conversation_list(self, conversations: list[dict]) -> None:
        if not conversations:
            self.console.print("[dim]No conversations found.[/dim]")
            return

        table = Table(title="Conversations")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Updated", no_wrap=True)
        table.add_column("Messages", justify="right")
        table.add_column("Title")

        for c in conversations:
            table.add_row(
                c.get("conversation_id", "?"),
                c.get("updated_at", "?"),
                str(c.get("message_count", 0)),
                c.get("title", ""),
            )

        self.console.print(table)

    def format_messages(self, records: list[dict]) -> None:
        if not records:
            self.console.print("[dim]No messages.[/dim]")
            return

        for record in records:
            message: Message = record["message"]
            color = ROLE_COLORS.get(message.role, "white")
            partial = " [yellow](partial)[/yellow]" if record.get("is_partial") else ""
            self.console.print(f"[{color}]{message.role.value}>[/{color}]{partial}")
            self.console.print(Markdown(message.content or ""))
            tools_used = record.get("metadata", {}).get("tools_used")
            if tools_used:
                self.console.print(f"[dim]tools: {', '.join(tools_used)}[/dim]")
            self.console.print()

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def format_config(self, config: dict) -> None:
        config_json = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(config_json, "json", theme="monokai"))
