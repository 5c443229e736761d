"""
OpenAI-compatible chat-completion provider.

Works with any endpoint that speaks the OpenAI ``/v1/chat/completions`` wire
protocol -- OpenAI itself, DeepInfra, vLLM, LM Studio, LocalAI, etc.

Reasoning models that stream ``reasoning_content`` (or ``reasoning``) deltas
are supported; those fragments are emitted as ``ReasoningDelta`` events.

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import AsyncIterator

import httpx

from stormy.llm.errors import AuthenticationError, ProviderException, RateLimitError
from stormy.llm.providers.base import Provider
from stormy.llm.tool_call_assembler import ToolCallAssembler
from stormy.llm.types import (
    ContentDelta,
    Message,
    ProviderError,
    ProviderEvent,
    ProviderInfo,
    RawToolDelta,
    ReasoningDelta,
    RetryNotice,
    StreamDone,
    ToolCallsDelta,
    UsageInfo,
)

logger = logging.getLogger(__name__)


class OpenAICompatProvider(Provider):
    """
    Stream-capable provider for any OpenAI-API-compatible endpoint.

    Parameters
    ----------
    url:
        Base URL of the API, e.g. ``"https://api.openai.com/v1"`` or
        ``"http://localhost:8080/v1"``.
    model:
        Default model identifier sent in the ``model`` field.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    timeout:
        HTTP request timeout in seconds.
    max_retries:
        Number of automatic retries on transient errors (429, 5xx, network).
    initial_retry_delay_ms / max_retry_delay_ms:
        Exponential backoff bounds.
    tools:
        Optional OpenAI function schemas to advertise for native tool calling.
    provider_id:
        Name reported in ``ProviderInfo`` events.
    transport:
        Optional ``httpx`` transport (used by tests).
    """

    def __init__(
        self,
        url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        api_key: str = "",
        timeout: float = 120.0,
        max_retries: int = 3,
        initial_retry_delay_ms: int = 2000,
        max_retry_delay_ms: int = 30000,
        tools: list[dict] | None = None,
        provider_id: str = "openai-compat",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._initial_retry_delay_ms = initial_retry_delay_ms
        self._max_retry_delay_ms = max_retry_delay_ms
        self._tools = tools
        self._provider_id = provider_id
        self._transport = transport

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._provider_id

    @property
    def default_model(self) -> str:
        return self._model

    async def chat(
        self,
        messages: list[Message],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        stream: bool = True,
    ) -> AsyncIterator[ProviderEvent]:
        model_id = self.resolve_model(model)
        body = self._build_body(messages, model_id, temperature, max_tokens, stream)
        headers = self._build_headers()
        url = f"{self._url}/chat/completions"

        yield ProviderInfo(provider_id=self.name, model=model_id)

        attempt = 0
        while True:
            emitted = False
            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout, transport=self._transport
                ) as client:
                    if stream:
                        async with client.stream(
                            "POST", url, json=body, headers=headers
                        ) as response:
                            if response.status_code != 200:
                                await response.aread()
                                self._raise_for_status(response)
                            async for event in self._parse_sse_stream(response):
                                emitted = True
                                yield event
                    else:
                        resp = await client.post(url, json=body, headers=headers)
                        if resp.status_code != 200:
                            self._raise_for_status(resp)
                        for event in self._parse_non_stream(resp.json()):
                            emitted = True
                            yield event
                return
            except ProviderException as exc:
                if exc.retryable and not emitted and attempt < self._max_retries:
                    retry_after_ms = (
                        exc.retry_after_ms if isinstance(exc, RateLimitError) else None
                    )
                    notice = self._retry_notice(attempt, exc.message, retry_after_ms)
                    yield notice
                    await asyncio.sleep(notice.delay_ms / 1000)
                    attempt += 1
                    continue
                if exc.retryable and attempt >= self._max_retries:
                    yield ProviderError(
                        f"{exc.message} (after {self._max_retries} retries)",
                        code=exc.code,
                        retryable=False,
                    )
                else:
                    yield ProviderError(exc.message, code=exc.code, retryable=exc.retryable)
                return
            except httpx.TransportError as exc:
                reason = str(exc) or type(exc).__name__
                if not emitted and attempt < self._max_retries:
                    notice = self._retry_notice(attempt, reason)
                    yield notice
                    await asyncio.sleep(notice.delay_ms / 1000)
                    attempt += 1
                    continue
                logger.warning("Transport error from %s: %s", self.name, reason)
                yield ProviderError(reason, code="network_error", retryable=False)
                return

    # ------------------------------------------------------------------
    # Retry handling
    # ------------------------------------------------------------------

    def retry_delay_ms(self, attempt: int) -> int:
        """Exponential backoff with up to 10% jitter, capped at the maximum."""
        base = self._initial_retry_delay_ms * (2 ** attempt)
        jittered = base + int(random.uniform(0, base * 0.1))
        return min(jittered, self._max_retry_delay_ms)

    def _retry_notice(
        self, attempt: int, reason: str, retry_after_ms: int | None = None
    ) -> RetryNotice:
        """
        Build the notice for the next retry.  The caller yields it and then
        sleeps for ``delay_ms``.  A server ``Retry-After`` raises the delay,
        still capped at the maximum.
        """
        delay_ms = self.retry_delay_ms(attempt)
        if retry_after_ms is not None:
            delay_ms = min(max(delay_ms, retry_after_ms), self._max_retry_delay_ms)
        logger.info(
            "Retrying %s in %d ms (attempt %d/%d): %s",
            self.name,
            delay_ms,
            attempt + 1,
            self._max_retries,
            reason,
        )
        return RetryNotice(
            attempt=attempt + 1,
            max_attempts=self._max_retries,
            delay_ms=delay_ms,
            reason=reason,
        )

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        code = response.status_code
        if code == 429:
            retry_after = response.headers.get("retry-after")
            retry_after_ms = None
            if retry_after and retry_after.isdigit():
                retry_after_ms = int(retry_after) * 1000
            raise RateLimitError(retry_after_ms=retry_after_ms)
        if code in (401, 403):
            raise AuthenticationError("Authentication failed or access denied.")
        if code == 402:
            raise ProviderException(
                "This model requires premium access. Please select a different model.",
                code="payment_required",
            )
        if code == 400:
            message = response.text
            try:
                message = response.json().get("error", {}).get("message") or message
            except (ValueError, AttributeError):
                pass
            raise ProviderException(message, code="bad_request")
        if code >= 500:
            raise ProviderException(
                f"Server error (HTTP {code})",
                code="server_error",
                retryable=True,
            )
        raise ProviderException(
            f"Request failed with HTTP {code}: {response.text[:200]}",
            code="http_error",
        )

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(
        self,
        messages: list[Message],
        model: str,
        temperature: float | None,
        max_tokens: int | None,
        stream: bool,
    ) -> dict:
        wire_messages = []
        for msg in messages:
            m: dict = {"role": msg.role.value, "content": msg.content}
            if msg.name:
                m["name"] = msg.name
            if msg.tool_calls:
                m["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments),
                        },
                    }
                    for tc in msg.tool_calls
                ]
            if msg.tool_call_id:
                m["tool_call_id"] = msg.tool_call_id
            wire_messages.append(m)

        body: dict = {
            "model": model,
            "messages": wire_messages,
            "stream": stream,
        }
        if temperature is not None:
            body["temperature"] = temperature
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        if self._tools:
            body["tools"] = self._tools
            body["tool_choice"] = "auto"
        logger.info(
            "REQUEST: model=%s tools=%d messages=%d",
            model,
            len(self._tools) if self._tools else 0,
            len(wire_messages),
        )
        return body

    # ------------------------------------------------------------------
    # Streaming response
    # ------------------------------------------------------------------

    async def _parse_sse_stream(
        self, response: httpx.Response
    ) -> AsyncIterator[ProviderEvent]:
        """
        Parse Server-Sent Events from the response line stream.

        Each SSE event has the form::

            data: {json}\\n\\n

        The sentinel ``data: [DONE]`` terminates the stream.
        """
        assembler = ToolCallAssembler()
        finish_reason: str | None = None

        # aiter_lines decodes incrementally, so a character split across
        # network chunks survives intact.
        async for line in response.aiter_lines():
            line = line.strip()

            if not line or not line.startswith("data:"):
                continue

            data_str = line[len("data:"):].strip()
            if data_str == "[DONE]":
                for event in self._finish(assembler, finish_reason):
                    yield event
                return

            try:
                data = json.loads(data_str)
            except json.JSONDecodeError:
                logger.warning("Failed to parse SSE data: %s", data_str[:200])
                continue

            error = data.get("error")
            if isinstance(error, dict):
                yield ProviderError(
                    error.get("message") or "Unknown error",
                    code=str(error.get("code") or "error"),
                )
                return

            for event in self._sse_data_to_events(data, assembler):
                yield event

            choices = data.get("choices") or []
            if choices and choices[0].get("finish_reason"):
                finish_reason = choices[0]["finish_reason"]

        # If the stream ends without [DONE], close it out anyway.
        for event in self._finish(assembler, finish_reason):
            yield event

    @staticmethod
    def _sse_data_to_events(
        data: dict, assembler: ToolCallAssembler
    ) -> list[ProviderEvent]:
        """Convert a parsed SSE ``data`` payload into provider events."""
        events: list[ProviderEvent] = []

        choices = data.get("choices")
        if choices:
            delta = choices[0].get("delta") or {}

            reasoning = delta.get("reasoning_content") or delta.get("reasoning")
            if reasoning:
                events.append(ReasoningDelta(reasoning))

            content = delta.get("content")
            if content:
                events.append(ContentDelta(content))

            for raw_tc in delta.get("tool_calls") or []:
                func = raw_tc.get("function") or {}
                assembler.feed(
                    RawToolDelta(
                        call_index=raw_tc.get("index", 0),
                        id=raw_tc.get("id"),
                        name_delta=func.get("name") or "",
                        args_delta=func.get("arguments") or "",
                    )
                )

        usage = data.get("usage")
        if isinstance(usage, dict):
            events.append(
                UsageInfo(
                    prompt_tokens=usage.get("prompt_tokens", 0),
                    completion_tokens=usage.get("completion_tokens", 0),
                    total_tokens=usage.get("total_tokens", 0),
                )
            )
        return events

    @staticmethod
    def _finish(
        assembler: ToolCallAssembler, finish_reason: str | None
    ) -> list[ProviderEvent]:
        events: list[ProviderEvent] = []
        calls = assembler.flush()
        if assembler.errors:
            logger.warning("Tool-call assembly errors: %s", assembler.errors)
        if calls:
            events.append(ToolCallsDelta(calls))
        events.append(StreamDone(finish_reason or "stop"))
        return events

    # ------------------------------------------------------------------
    # Non-streaming response
    # ------------------------------------------------------------------

    def _parse_non_stream(self, data: dict) -> list[ProviderEvent]:
        """Convert a non-streaming response into a list of provider events."""
        error = data.get("error")
        if isinstance(error, dict):
            return [
                ProviderError(
                    error.get("message") or "Unknown error",
                    code=str(error.get("code") or "error"),
                )
            ]

        events: list[ProviderEvent] = []
        choices = data.get("choices") or []
        finish_reason = "stop"
        if choices:
            choice = choices[0]
            message = choice.get("message") or {}
            finish_reason = choice.get("finish_reason") or "stop"

            reasoning = message.get("reasoning_content") or message.get("reasoning")
            if reasoning:
                events.append(ReasoningDelta(reasoning))

            content = message.get("content")
            if content:
                events.append(ContentDelta(content))

            assembler = ToolCallAssembler()
            calls = []
            for idx, raw_tc in enumerate(message.get("tool_calls") or []):
                func = raw_tc.get("function") or {}
                arguments = func.get("arguments") or ""
                if isinstance(arguments, dict):
                    arguments = json.dumps(arguments)
                calls.extend(
                    assembler.feed(
                        RawToolDelta(
                            call_index=idx,
                            id=raw_tc.get("id"),
                            name_delta=func.get("name") or "",
                            args_delta=arguments,
                            done=True,
                        )
                    )
                )
            if assembler.errors:
                logger.warning("Tool-call assembly errors: %s", assembler.errors)
            if calls:
                events.append(ToolCallsDelta(calls))

        events.append(StreamDone(finish_reason))

        usage = data.get("usage")
        if isinstance(usage, dict):
            events.append(
                UsageInfo(
                    prompt_tokens=usage.get("prompt_tokens", 0),
                    completion_tokens=usage.get("completion_tokens", 0),
                    total_tokens=usage.get("total_tokens", 0),
                )
            )
        return events
