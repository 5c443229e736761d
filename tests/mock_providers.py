"""
Mock LLM providers for testing.

Provides canned event sequences so tests can exercise the aggregator and
orchestrator without hitting real APIs.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

from stormy.llm.providers.base import Provider
from stormy.llm.types import (
    ContentDelta,
    Message,
    ProviderError,
    ProviderEvent,
    ProviderInfo,
    ReasoningDelta,
    StreamDone,
    ToolCall,
    ToolCallsDelta,
    UsageInfo,
)


class MockProvider(Provider):
    """
    A provider that replays one scripted response per call.

    Usage::

        provider = MockProvider([
            [ContentDelta("Hello "), ContentDelta("world!"), StreamDone()],
        ])

    Parameters
    ----------
    responses:
        One list of events per ``chat`` call.  When the script runs out, the
        last response is repeated.
    model_name:
        Model identifier returned by ``default_model``.
    """

    def __init__(
        self,
        responses: list[list[ProviderEvent]] | None = None,
        model_name: str = "mock-model",
    ) -> None:
        self._responses = responses or [[StreamDone()]]
        self._model_name = model_name
        self.call_count = 0
        self.calls: list[list[Message]] = []
        self.closed = 0

    @property
    def name(self) -> str:
        return "mock"

    @property
    def default_model(self) -> str:
        return self._model_name

    @property
    def last_messages(self) -> list[Message] | None:
        return self.calls[-1] if self.calls else None

    async def chat(
        self,
        messages: list[Message],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        stream: bool = True,
    ) -> AsyncIterator[ProviderEvent]:
        index = min(self.call_count, len(self._responses) - 1)
        self.call_count += 1
        self.calls.append(list(messages))
        try:
            for event in self._responses[index]:
                await asyncio.sleep(0)
                yield event
        finally:
            self.closed += 1


class HangingProvider(MockProvider):
    """Yields its events, then blocks until cancelled."""

    def __init__(self, events: list[ProviderEvent]) -> None:
        super().__init__([events])
        self.started = asyncio.Event()

    async def chat(
        self,
        messages: list[Message],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        stream: bool = True,
    ) -> AsyncIterator[ProviderEvent]:
        self.call_count += 1
        self.calls.append(list(messages))
        try:
            for event in self._responses[0]:
                yield event
            self.started.set()
            await asyncio.Event().wait()
            yield ContentDelta("never delivered")
        finally:
            self.closed += 1


class RaisingProvider(MockProvider):
    """Raises *exc* after yielding *events*."""

    def __init__(self, exc: BaseException, events: list[ProviderEvent] | None = None) -> None:
        super().__init__([events or []])
        self._exc = exc

    async def chat(
        self,
        messages: list[Message],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        stream: bool = True,
    ) -> AsyncIterator[ProviderEvent]:
        self.call_count += 1
        for event in self._responses[0]:
            yield event
        raise self._exc


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


def text_response(text: str, reasoning: str = "") -> list[ProviderEvent]:
    """Events for a plain answer, streamed word by word."""
    events: list[ProviderEvent] = [ProviderInfo("mock", "mock-model")]
    if reasoning:
        events.append(ReasoningDelta(reasoning))
    words = text.split(" ")
    for i, word in enumerate(words):
        events.append(ContentDelta(word if i == len(words) - 1 else word + " "))
    events.append(StreamDone())
    return events


def reasoning_response(reasoning: str) -> list[ProviderEvent]:
    return [ProviderInfo("mock", "mock-model"), ReasoningDelta(reasoning), StreamDone()]


def native_tool_response(
    name: str,
    arguments: dict | None = None,
    call_id: str = "call_1",
    text: str = "",
) -> list[ProviderEvent]:
    events: list[ProviderEvent] = [ProviderInfo("mock", "mock-model")]
    if text:
        events.append(ContentDelta(text))
    events.append(ToolCallsDelta([ToolCall(id=call_id, name=name, arguments=arguments or {})]))
    events.append(UsageInfo(10, 5, 15))
    events.append(StreamDone("tool_calls"))
    return events


def embedded_tool_response(name: str, arguments: dict | None = None, prefix: str = "") -> list[ProviderEvent]:
    """Events for a tool call written into the content as a fenced block."""
    import json

    block = "```tool_call\n" + json.dumps({"tool": name, "arguments": arguments or {}}) + "\n```"
    events: list[ProviderEvent] = [ProviderInfo("mock", "mock-model")]
    if prefix:
        events.append(ContentDelta(prefix))
    events.append(ContentDelta(block))
    events.append(StreamDone())
    return events


def error_response(message: str = "boom", retryable: bool = False) -> list[ProviderEvent]:
    return [
        ProviderInfo("mock", "mock-model"),
        ContentDelta("partial "),
        ProviderError(message, code="server_error", retryable=retryable),
        ContentDelta("after error"),
        StreamDone(),
    ]
