"""
Orchestrator core -- the agent iteration loop.

The orchestrator:
1. Streams one model response per iteration through a ``StreamAggregator``
2. Forwards content and reasoning tokens to the caller as they arrive
3. Executes native or text-embedded tool calls sequentially via the dispatcher
4. Feeds tool results back into the history and loops
5. Finalizes with a single ``Complete`` once the model stops calling tools
6. Stops at the tool-iteration and total-iteration ceilings
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from stormy.llm.errors import ProviderException
from stormy.llm.router import LLMRouter
from stormy.llm.types import Message, Role, ToolCall
from stormy.orchestrator.aggregator import StreamAggregator
from stormy.orchestrator.events import (
    AgentEvent,
    Complete,
    Error,
    ToolCallsStarted,
    ToolExecuting,
    ToolResult,
)
from stormy.orchestrator.extractor import strip_tool_calls
from stormy.orchestrator.state import IterationState
from stormy.tools.base import ToolContext
from stormy.tools.dispatcher import ToolDispatcher
from stormy.types import ErrorCode, ToolExecutionResult

logger = logging.getLogger(__name__)

TOOL_PHASE_PLACEHOLDER = "I'll use some tools to help answer your question."
CONTINUATION_PROMPT = "Please provide your analysis and answer based on the tool results above."
CEILING_PLACEHOLDER = (
    "I apologize, but I wasn't able to complete my analysis within the "
    "allowed iterations. Here's what I was able to determine..."
)


class Orchestrator:
    """
    Main agent loop.

    Parameters
    ----------
    router : LLMRouter
        Provider registry; the active provider is used unless ``run`` names one.
    dispatcher : ToolDispatcher
        Executes tool calls and converts every failure into a result.
    system_prompt : str
        Prepended as a system message on every provider call.
    max_tool_iterations : int
        Ceiling on iterations that executed at least one tool.
    max_total_iterations : int
        Ceiling on all iterations, tool-bearing or not.
    temperature, max_tokens :
        Passed through to the provider unchanged.
    """

    def __init__(
        self,
        router: LLMRouter,
        dispatcher: ToolDispatcher,
        system_prompt: str = "",
        max_tool_iterations: int = 15,
        max_total_iterations: int = 20,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self.router = router
        self.dispatcher = dispatcher
        self.system_prompt = system_prompt
        self.max_tool_iterations = max_tool_iterations
        self.max_total_iterations = max_total_iterations
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def run(
        self,
        messages: list[Message],
        model: str | None = None,
        *,
        provider: str | None = None,
        context: ToolContext | None = None,
        state: IterationState | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """
        Process the conversation *messages* through the agent loop.

        Yields ``AgentEvent`` objects in production order.  *messages* is
        copied; the caller's list is never mutated.  Pass *state* to keep a
        handle on the run's buffers, e.g. to recover partial content after
        cancelling the consuming task.
        """
        llm = self.router.get(provider)
        if llm is None:
            name = provider or "(none active)"
            yield Error(
                f"Unknown provider: {name}. Available: {self.router.provider_names}",
                code=ErrorCode.UNKNOWN_PROVIDER,
            )
            return

        context = context or ToolContext()
        state = state if state is not None else IterationState()
        history: list[Message] = list(messages)

        while (
            not state.done
            and state.iteration < self.max_total_iterations
            and state.tool_iterations < self.max_tool_iterations
        ):
            state.begin_iteration()
            logger.info(
                "Iteration %d (tool iterations: %d)",
                state.iteration,
                state.tool_iterations,
            )

            aggregator = StreamAggregator(state)
            stream = llm.chat(
                self._with_system_prompt(history),
                model=model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stream=True,
            )
            try:
                async for provider_event in stream:
                    for event in aggregator.feed(provider_event):
                        yield event
                    if aggregator.failed:
                        break
            except ProviderException as e:
                logger.error("Provider failed: %s", e.message)
                yield Error(e.message, retryable=e.retryable, code=ErrorCode.PROVIDER_ERROR)
                return
            except Exception as e:
                logger.exception("Provider stream raised")
                yield Error(str(e) or type(e).__name__, code=ErrorCode.PROVIDER_ERROR)
                return
            finally:
                await stream.aclose()

            if aggregator.failed:
                logger.info("Stopping after provider error on iteration %d", state.iteration)
                return

            aggregator.finish()
            cleaned = strip_tool_calls(state.content)
            state.end_iteration(cleaned)

            if aggregator.tool_calls:
                state.tool_iterations += 1
                async for event in self._tool_phase(
                    aggregator.tool_calls, cleaned, history, state, context
                ):
                    yield event
                continue

            if self._should_continue(state):
                logger.info("Reasoning-only response after tools; requesting an answer")
                state.continuation_requested = True
                history.append(Message(role=Role.ASSISTANT, content=state.merged_reasoning))
                history.append(Message(role=Role.USER, content=CONTINUATION_PROMPT))
                state.reset_accumulated()
                continue

            state.done = True
            yield self._complete(state)

        if not state.done:
            logger.warning(
                "Iteration ceiling reached (iterations=%d, tool iterations=%d)",
                state.iteration,
                state.tool_iterations,
            )
            yield self._complete(state, placeholder=CEILING_PLACEHOLDER)
            yield Error(
                f"Maximum iterations reached ({state.iteration} total, "
                f"{state.tool_iterations} with tools)",
                retryable=False,
                code=ErrorCode.ITERATION_CEILING,
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _with_system_prompt(self, history: list[Message]) -> list[Message]:
        if not self.system_prompt:
            return list(history)
        return [Message(role=Role.SYSTEM, content=self.system_prompt)] + history

    async def _tool_phase(
        self,
        calls: list[ToolCall],
        cleaned_content: str,
        history: list[Message],
        state: IterationState,
        context: ToolContext,
    ) -> AsyncIterator[AgentEvent]:
        yield ToolCallsStarted([c.name for c in calls])
        history.append(
            Message(
                role=Role.ASSISTANT,
                content=cleaned_content or TOOL_PHASE_PLACEHOLDER,
                tool_calls=list(calls),
            )
        )

        for call in calls:
            yield ToolExecuting(call.name, tool_call_id=call.id)
            state.record_tool(call.name)
            result = await self._dispatch(call, context)
            yield ToolResult(
                call.name,
                success=result.success,
                summary=result.summary,
                tool_call_id=call.id,
            )
            history.append(
                Message(
                    role=Role.TOOL,
                    content=result.to_json(),
                    tool_call_id=call.id,
                    name=call.name,
                )
            )

    async def _dispatch(self, call: ToolCall, context: ToolContext) -> ToolExecutionResult:
        try:
            return await self.dispatcher.dispatch(call.name, call.arguments, context)
        except Exception as e:
            logger.exception("Tool dispatch failed for %s", call.name)
            return ToolExecutionResult.failure(
                str(e),
                f"Error executing {call.name}",
                error_code=ErrorCode.TOOL_EXCEPTION,
            )

    def _should_continue(self, state: IterationState) -> bool:
        return (
            not state.final_content
            and bool(state.merged_reasoning)
            and bool(state.tools_used)
            and not state.continuation_requested
            and state.iteration < self.max_total_iterations - 1
        )

    @staticmethod
    def _complete(state: IterationState, placeholder: str = "") -> Complete:
        content = state.final_content
        reasoning = state.merged_reasoning
        if not content:
            content, reasoning = reasoning, ""
        return Complete(
            content=content or placeholder,
            reasoning=reasoning or None,
            tools_used=list(state.tools_used),
        )
