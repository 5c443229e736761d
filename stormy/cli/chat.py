"""Interactive chat session handler."""

from __future__ import annotations

import asyncio
import logging
import signal

from rich.console import Console

from stormy.cli.output import OutputFormatter
from stormy.orchestrator.core import Orchestrator
from stormy.orchestrator.events import (
    AgentEvent,
    Complete,
    ContentChunk,
    Error,
    ModelInfo,
    ReasoningChunk,
    RetryInfo,
    TokenUsage,
    ToolCallsStarted,
    ToolExecuting,
    ToolResult,
)
from stormy.orchestrator.state import IterationState
from stormy.session.session import Session
from stormy.tools.base import ToolContext
from stormy.types import ErrorCode

logger = logging.getLogger(__name__)


class ChatHandler:
    """
    Manages the interactive chat loop.

    Streams agent events to the console, handles inline commands, and
    persists each turn.  Ctrl-C during a response cancels the run and keeps
    whatever was produced as a partial message.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        session: Session,
        console: Console | None = None,
        context: ToolContext | None = None,
        model: str | None = None,
        show_usage: bool = False,
    ) -> None:
        self.orchestrator = orchestrator
        self.session = session
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self.context = context or ToolContext()
        self.model = model
        self.show_usage = show_usage
        self._running = True
        self._interrupted = False
        self._in_reasoning = False

    async def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        parts = command.strip().split(None, 1)
        cmd = parts[0].lower()
        arg = parts[1] if len(parts) > 1 else ""

        if cmd == "/quit":
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/history":
            records = await self.session.store.get_message_records(
                self.session.conversation_id or ""
            )
            self.formatter.format_messages(records)
            return True

        if cmd == "/new":
            cid = await self.session.start()
            self.console.print(f"  Started conversation [cyan]{cid}[/cyan]")
            return True

        if cmd == "/tools":
            tools = self.orchestrator.dispatcher.registry.list()
            self.formatter.format_tool_list(tools)
            return True

        if cmd == "/switch":
            router = self.orchestrator.router
            if not arg:
                self.console.print(f"  Available providers: {', '.join(router.provider_names)}")
                self.console.print(f"  Active: {router.active_name}")
            else:
                try:
                    router.set_active(arg)
                    self.console.print(f"  Switched to provider: [bold]{arg}[/bold]")
                except KeyError as e:
                    self.console.print(f"  [red]Error:[/red] {e}")
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /quit     - Exit the chat\n"
                "  /new      - Start a new conversation\n"
                "  /history  - Show this conversation\n"
                "  /tools    - List available tools\n"
                "  /switch   - Switch LLM provider\n"
                "  /help     - Show this help\n"
                "  Ctrl-C while a response streams stops it.\n"
            )
            return True

        return False

    # ------------------------------------------------------------------
    # One turn
    # ------------------------------------------------------------------

    async def handle_input(self, user_input: str) -> None:
        """Run *user_input* through the orchestrator and stream the response."""
        await self.session.add_user_message(user_input)
        history = await self.session.get_messages()

        state = IterationState()
        task = asyncio.ensure_future(self._consume(history, state))
        loop = asyncio.get_running_loop()
        self._interrupted = False

        def _interrupt() -> None:
            self._interrupted = True
            task.cancel()

        try:
            loop.add_signal_handler(signal.SIGINT, _interrupt)
            handler_installed = True
        except NotImplementedError:
            handler_installed = False

        try:
            await task
        except asyncio.CancelledError:
            if not self._interrupted:
                raise
            self.console.print("\n[yellow]Stopped.[/yellow]")
            await self.session.save_partial(state.partial_content(), state.tools_used)
        except Exception as e:
            logger.exception("Chat turn failed")
            self.console.print(f"\n[red]Error:[/red] {e}")
        finally:
            if handler_installed:
                loop.remove_signal_handler(signal.SIGINT)

    async def _consume(self, history, state: IterationState) -> None:
        self._in_reasoning = False
        provider_failed = False
        async for event in self.orchestrator.run(
            history, self.model, context=self.context, state=state
        ):
            await self.render(event)
            if isinstance(event, Error) and event.code == ErrorCode.PROVIDER_ERROR:
                provider_failed = True

        # The run ends without Complete; keep what streamed before the failure.
        if provider_failed:
            await self.session.save_partial(state.partial_content(), state.tools_used)

    async def render(self, event: AgentEvent) -> None:
        if isinstance(event, ReasoningChunk):
            if not self._in_reasoning:
                self.console.print("[dim italic]thinking:[/dim italic] ", end="")
                self._in_reasoning = True
            self.console.print(event.text, end="", style="dim italic", markup=False, highlight=False)
            return

        if self._in_reasoning:
            self.console.print()
            self._in_reasoning = False

        if isinstance(event, ContentChunk):
            self.console.print(event.text, end="", markup=False, highlight=False)
        elif isinstance(event, ModelInfo):
            logger.info("Model: %s (%s)", event.model, event.provider_id)
        elif isinstance(event, ToolCallsStarted):
            self.console.print(f"\n[dim]calling: {', '.join(event.tool_names)}[/dim]")
        elif isinstance(event, ToolExecuting):
            self.console.print(f"  [cyan]> {event.tool_name}[/cyan]")
        elif isinstance(event, ToolResult):
            self.formatter.format_tool_result(event)
        elif isinstance(event, TokenUsage):
            if self.show_usage:
                self.formatter.format_usage(event)
        elif isinstance(event, RetryInfo):
            self.formatter.format_retry(event)
        elif isinstance(event, Error):
            self.formatter.format_error(event)
        elif isinstance(event, Complete):
            self.console.print()
            await self.session.save_completion(event)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            "[bold]Stormy[/bold] - autonomous chat assistant\n"
            "[dim]Type /help for commands, /quit to exit.[/dim]\n"
        )

        while self._running:
            try:
                user_input = await asyncio.get_running_loop().run_in_executor(
                    None, lambda: input("you> ").strip()
                )
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                handled = await self.handle_command(user_input)
                if handled:
                    continue

            self.console.print("[dim]stormy>[/dim] ", end="")
            await self.handle_input(user_input)
