"""
Per-iteration folding of a provider event stream.

``StreamAggregator.feed`` takes one provider event, writes it into the
iteration buffers of the shared ``IterationState`` and returns the agent
events that must be forwarded to the caller right away.  Content is never
held back: each token is forwarded by the same ``feed`` call that
buffers it.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable

from stormy.llm.types import (
    ContentDelta,
    ProviderError,
    ProviderEvent,
    ProviderInfo,
    ReasoningDelta,
    RetryNotice,
    StreamDone,
    ToolCall,
    ToolCallsDelta,
    UsageInfo,
)
from stormy.orchestrator.events import (
    AgentEvent,
    ContentChunk,
    Error,
    ModelInfo,
    ReasoningChunk,
    RetryInfo,
    TokenUsage,
)
from stormy.orchestrator.extractor import extract_tool_calls, new_call_id
from stormy.orchestrator.state import IterationState
from stormy.types import ErrorCode

logger = logging.getLogger(__name__)


class StreamAggregator:
    """
    Folds one iteration's provider events.

    Parameters
    ----------
    state:
        The run's ``IterationState``; its current-iteration buffers receive
        content and reasoning tokens.
    extractor:
        Fallback parser applied to the content buffer when the provider sent
        no native tool calls.
    """

    def __init__(
        self,
        state: IterationState,
        extractor: Callable[[str], list[ToolCall]] = extract_tool_calls,
    ) -> None:
        self.state = state
        self.extractor = extractor
        self.tool_calls: list[ToolCall] = []
        self.failed = False
        self.error: ProviderError | None = None
        self.received_done = False

    def feed(self, event: ProviderEvent) -> list[AgentEvent]:
        if isinstance(event, ContentDelta):
            if not event.text:
                return []
            self.state.content_parts.append(event.text)
            return [ContentChunk(event.text)]

        if isinstance(event, ReasoningDelta):
            # Whitespace-only reasoning tokens are keep-alive markers.
            if not event.text.strip():
                return []
            self.state.reasoning_parts.append(event.text)
            return [ReasoningChunk(event.text)]

        if isinstance(event, ToolCallsDelta):
            for call in event.tool_calls:
                if not call.id:
                    call = replace(call, id=new_call_id())
                self.tool_calls.append(call)
            return []

        if isinstance(event, UsageInfo):
            return [
                TokenUsage(
                    prompt_tokens=event.prompt_tokens,
                    completion_tokens=event.completion_tokens,
                    total_tokens=event.total_tokens,
                )
            ]

        if isinstance(event, ProviderError):
            self.failed = True
            self.error = event
            return [
                Error(
                    event.message,
                    retryable=event.retryable,
                    code=ErrorCode.PROVIDER_ERROR,
                )
            ]

        if isinstance(event, RetryNotice):
            return [
                RetryInfo(
                    attempt=event.attempt,
                    max_attempts=event.max_attempts,
                    delay_ms=event.delay_ms,
                    reason=event.reason,
                )
            ]

        if isinstance(event, ProviderInfo):
            return [ModelInfo(provider_id=event.provider_id, model=event.model)]

        if isinstance(event, StreamDone):
            self.received_done = True
            self._extract_embedded()
            return []

        logger.warning("Ignoring unknown provider event %r", event)
        return []

    def finish(self) -> None:
        """Close out the iteration when the stream ended without a done marker."""
        if not self.received_done:
            self._extract_embedded()

    def _extract_embedded(self) -> None:
        if self.failed or self.tool_calls:
            return
        self.tool_calls = self.extractor(self.state.content)
        if self.tool_calls:
            logger.info(
                "Extracted %d embedded tool call(s): %s",
                len(self.tool_calls),
                [c.name for c in self.tool_calls],
            )
