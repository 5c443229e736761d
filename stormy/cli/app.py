"""
Main CLI application for stormy.

Usage:
    stormy chat [--provider NAME] [--profile NAME] [--session ID] [--active-profile NAME]
    stormy ask PROMPT
    stormy sessions list|show|delete
    stormy tools list|info
    stormy config show|validate
    stormy version
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from stormy.config import ConfigError, StormyConfig, load_config

app = typer.Typer(name="stormy", help="Stormy - autonomous chat agent CLI")
sessions_app = typer.Typer(help="Conversation history")
tools_app = typer.Typer(help="Tool management")
config_app = typer.Typer(help="Configuration management")

app.add_typer(sessions_app, name="sessions")
app.add_typer(tools_app, name="tools")
app.add_typer(config_app, name="config")

console = Console()

__version__ = "0.1.0"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path() -> Path | None:
    """Find config file in standard locations."""
    candidates = [
        Path.cwd() / "stormy.yaml",
        Path.cwd() / "stormy.yml",
        Path.home() / ".config" / "stormy" / "config.yaml",
        Path.home() / ".stormy" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _load(profile: str | None = None) -> StormyConfig:
    try:
        return load_config(_get_config_path(), profile=profile)
    except ConfigError as e:
        console.print(f"[red]Invalid config:[/red] {e}")
        raise typer.Exit(1)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _build_registry(cfg: StormyConfig):
    """Built-in tools plus entry-point plugins, minus disabled ones."""
    from stormy.tools.agentic import builtin_tools
    from stormy.tools.registry import ToolRegistry

    registry = ToolRegistry()
    for tool in builtin_tools():
        registry.register(tool)

    registry.load_plugins(
        enabled=cfg.plugins.enabled,
        allow_distributions=set(cfg.plugins.allow_distributions) if cfg.plugins.allow_distributions else None,
        allow_tools=set(cfg.plugins.allow_tools) if cfg.plugins.allow_tools else None,
    )

    for name in cfg.tools.disabled:
        registry.unregister(name)
    return registry


def _build_router(cfg: StormyConfig, registry):
    from stormy.llm.providers.openai_compat import OpenAICompatProvider
    from stormy.llm.router import LLMRouter

    router = LLMRouter()
    api_key = os.environ.get(cfg.llm.api_key_env, "")
    router.register_provider(
        cfg.llm.name,
        OpenAICompatProvider(
            url=cfg.llm.api_base,
            model=cfg.llm.model,
            api_key=api_key,
            timeout=float(cfg.llm.timeout_seconds),
            max_retries=cfg.llm.max_retries,
            tools=registry.to_openai_schema() if cfg.llm.native_tools else None,
            provider_id=cfg.llm.name,
        ),
    )
    return router


def _build_orchestrator(cfg: StormyConfig, active_profile: str | None = None):
    from stormy.orchestrator.core import Orchestrator
    from stormy.prompts.system import build_system_prompt
    from stormy.tools.dispatcher import ToolDispatcher

    registry = _build_registry(cfg)
    router = _build_router(cfg, registry)
    return Orchestrator(
        router=router,
        dispatcher=ToolDispatcher(registry, timeout=cfg.agent.tool_timeout_seconds),
        system_prompt=build_system_prompt(registry, active_profile=active_profile),
        max_tool_iterations=cfg.agent.max_tool_iterations,
        max_total_iterations=cfg.agent.max_total_iterations,
        temperature=cfg.llm.temperature,
        max_tokens=cfg.llm.max_tokens,
    )


async def _open_store(cfg: StormyConfig):
    from stormy.session.store import ConversationStore

    store = ConversationStore(cfg.session.history_db)
    await store.init()
    return store


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    ),
):
    """Stormy - autonomous chat agent CLI."""
    level = log_level or os.environ.get("STORMY_LOG_LEVEL") or _load().logging.level
    _configure_logging(level)


@app.command()
def chat(
    provider: Optional[str] = typer.Option(None, help="LLM provider name"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    session: Optional[str] = typer.Option(None, "--session", help="Resume conversation ID"),
    model: Optional[str] = typer.Option(None, help="Model override"),
    active_profile: Optional[str] = typer.Option(
        None, "--active-profile", help="Profile that profile-bound tools operate on"
    ),
    usage: bool = typer.Option(False, "--usage", help="Show token usage after each response"),
):
    """Start an interactive chat session."""
    from stormy.cli.chat import ChatHandler
    from stormy.session.session import Session
    from stormy.tools.base import ToolContext

    cfg = _load(profile)
    orchestrator = _build_orchestrator(cfg, active_profile)
    if provider:
        try:
            orchestrator.router.set_active(provider)
        except KeyError:
            console.print(f"[yellow]Warning:[/yellow] Provider '{provider}' not found, using default.")

    async def _run():
        store = await _open_store(cfg)
        try:
            conversation = Session(store)
            if session:
                await conversation.resume(session)
            else:
                await conversation.start(metadata={"profile": profile or "default"})
            handler = ChatHandler(
                orchestrator,
                conversation,
                console=console,
                context=ToolContext(current_profile=active_profile),
                model=model,
                show_usage=usage,
            )
            await handler.run_loop()
        finally:
            await store.close()

    try:
        asyncio.run(_run())
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Question to ask"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    model: Optional[str] = typer.Option(None, help="Model override"),
    active_profile: Optional[str] = typer.Option(
        None, "--active-profile", help="Profile that profile-bound tools operate on"
    ),
):
    """Ask a single question and print the streamed answer."""
    from stormy.cli.chat import ChatHandler
    from stormy.session.session import Session
    from stormy.tools.base import ToolContext

    cfg = _load(profile)
    orchestrator = _build_orchestrator(cfg, active_profile)

    async def _run():
        store = await _open_store(cfg)
        try:
            conversation = Session(store)
            await conversation.start()
            handler = ChatHandler(
                orchestrator,
                conversation,
                console=console,
                context=ToolContext(current_profile=active_profile),
                model=model,
            )
            await handler.handle_input(prompt)
        finally:
            await store.close()

    asyncio.run(_run())


@sessions_app.command("list")
def sessions_list(limit: int = typer.Option(20, help="Max conversations to show")):
    """List stored conversations."""
    from stormy.cli.output import OutputFormatter

    async def _run():
        store = await _open_store(_load())
        try:
            conversations = await store.list_conversations(limit=limit)
            OutputFormatter(console).format_conversation_list(conversations)
        finally:
            await store.close()

    asyncio.run(_run())


@sessions_app.command("show")
def sessions_show(conversation_id: str = typer.Argument(..., help="Conversation ID")):
    """Show a conversation's messages."""
    from stormy.cli.output import OutputFormatter

    async def _run():
        store = await _open_store(_load())
        try:
            if await store.get_conversation(conversation_id) is None:
                console.print(f"[red]Conversation not found:[/red] {conversation_id}")
                return False
            records = await store.get_message_records(conversation_id)
            OutputFormatter(console).format_messages(records)
            return True
        finally:
            await store.close()

    if not asyncio.run(_run()):
        raise typer.Exit(1)


@sessions_app.command("delete")
def sessions_delete(conversation_id: str = typer.Argument(..., help="Conversation ID")):
    """Delete a conversation."""

    async def _run():
        store = await _open_store(_load())
        try:
            await store.delete_conversation(conversation_id)
            console.print(f"Deleted conversation: {conversation_id}")
        finally:
            await store.close()

    asyncio.run(_run())


@tools_app.command("list")
def tools_list():
    """List registered tools."""
    from stormy.cli.output import OutputFormatter

    registry = _build_registry(_load())
    OutputFormatter(console).format_tool_list(registry.list())


@tools_app.command("info")
def tools_info(tool_name: str = typer.Argument(..., help="Tool name")):
    """Show tool details and schema."""
    from stormy.cli.output import OutputFormatter

    registry = _build_registry(_load())
    tool = registry.resolve(tool_name)
    if not tool:
        console.print(f"[red]Tool not found:[/red] {tool_name}")
        raise typer.Exit(1)

    OutputFormatter(console).format_tool_info(tool)


@config_app.command("show")
def config_show(profile: Optional[str] = typer.Option(None, help="Config profile name")):
    """Show effective config."""
    from stormy.cli.output import OutputFormatter

    cfg = _load(profile)
    OutputFormatter(console).format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate():
    """Validate config and show any issues."""
    config_path = _get_config_path()
    try:
        cfg = load_config(config_path)
    except (ConfigError, ValueError, TypeError) as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  LLM provider: {cfg.llm.name} ({cfg.llm.model})")
    console.print(
        f"  Iteration ceilings: {cfg.agent.max_tool_iterations} with tools, "
        f"{cfg.agent.max_total_iterations} total"
    )
    console.print(f"  Plugins enabled: {cfg.plugins.enabled}")


@app.command()
def version():
    """Show version."""
    console.print(f"stormy v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
