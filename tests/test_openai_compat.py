"""Tests for stormy.llm.providers.openai_compat against a mocked HTTP transport."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from stormy.llm.providers.openai_compat import OpenAICompatProvider
from stormy.llm.types import (
    ContentDelta,
    Message,
    ProviderError,
    ProviderInfo,
    ReasoningDelta,
    RetryNotice,
    Role,
    StreamDone,
    ToolCall,
    ToolCallsDelta,
    UsageInfo,
)


def _sse(*payloads) -> bytes:
    lines = []
    for p in payloads:
        data = p if isinstance(p, str) else json.dumps(p)
        lines.append(f"data: {data}\n\n")
    return "".join(lines).encode()


def _delta(**delta) -> dict:
    return {"choices": [{"delta": delta, "finish_reason": None}]}


def _provider(handler, **kwargs) -> OpenAICompatProvider:
    kwargs.setdefault("initial_retry_delay_ms", 1)
    kwargs.setdefault("max_retry_delay_ms", 5)
    return OpenAICompatProvider(
        url="https://llm.test/v1",
        model="test-model",
        api_key="sk-test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


async def _collect(provider, messages=None, **kwargs) -> list:
    events = []
    async for event in provider.chat(messages or [Message(role=Role.USER, content="hi")], **kwargs):
        events.append(event)
    return events


class TestStreaming:
    async def test_content_and_usage(self):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            body = _sse(
                _delta(content="Hel"),
                _delta(content="lo"),
                {"choices": [{"delta": {}, "finish_reason": "stop"}]},
                {"choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}},
                "[DONE]",
            )
            return httpx.Response(200, content=body)

        events = await _collect(_provider(handler))

        assert events == [
            ProviderInfo("openai-compat", "test-model"),
            ContentDelta("Hel"),
            ContentDelta("lo"),
            UsageInfo(3, 2, 5),
            StreamDone("stop"),
        ]
        request = seen[0]
        assert request.url == "https://llm.test/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer sk-test"
        sent = json.loads(request.content)
        assert sent["model"] == "test-model"
        assert sent["stream"] is True
        assert sent["messages"] == [{"role": "user", "content": "hi"}]
        assert "tools" not in sent

    async def test_reasoning_fields(self):
        def handler(request):
            body = _sse(
                _delta(reasoning_content="step one"),
                _delta(reasoning="step two"),
                _delta(content="answer"),
                "[DONE]",
            )
            return httpx.Response(200, content=body)

        events = await _collect(_provider(handler))
        assert events[1:4] == [
            ReasoningDelta("step one"),
            ReasoningDelta("step two"),
            ContentDelta("answer"),
        ]

    async def test_native_tool_calls_assembled(self):
        def handler(request):
            body = _sse(
                _delta(tool_calls=[{"index": 0, "id": "call_9", "function": {"name": "get_planet_positions"}}]),
                _delta(tool_calls=[{"index": 0, "function": {"arguments": '{"planet": '}}]),
                _delta(tool_calls=[{"index": 0, "function": {"arguments": '"Moon"}'}}]),
                {"choices": [{"delta": {}, "finish_reason": "tool_calls"}]},
                "[DONE]",
            )
            return httpx.Response(200, content=body)

        events = await _collect(_provider(handler))
        assert events[-2:] == [
            ToolCallsDelta([ToolCall(id="call_9", name="get_planet_positions", arguments={"planet": "Moon"})]),
            StreamDone("tool_calls"),
        ]

    async def test_stream_without_done_sentinel_is_closed_out(self):
        def handler(request):
            return httpx.Response(200, content=_sse(_delta(content="cut off")))

        events = await _collect(_provider(handler))
        assert events[-1] == StreamDone("stop")

    async def test_multibyte_character_split_across_chunks(self):
        data = json.dumps(_delta(content="Mond \u263e \u00e9"), ensure_ascii=False)
        payload = f"data: {data}\n\ndata: [DONE]\n\n".encode()
        cut = payload.index("\u263e".encode()) + 1

        async def chunks():
            yield payload[:cut]
            yield payload[cut:]

        def handler(request):
            return httpx.Response(200, content=chunks())

        events = await _collect(_provider(handler))
        assert ContentDelta("Mond \u263e \u00e9") in events

    async def test_unparseable_lines_skipped(self):
        def handler(request):
            body = b": keep-alive\n\ndata: {not json}\n\n" + _sse(_delta(content="ok"), "[DONE]")
            return httpx.Response(200, content=body)

        events = await _collect(_provider(handler))
        assert ContentDelta("ok") in events

    async def test_in_band_error(self):
        def handler(request):
            body = _sse(
                _delta(content="par"),
                {"error": {"message": "context length exceeded", "code": "context_length"}},
                _delta(content="never"),
            )
            return httpx.Response(200, content=body)

        events = await _collect(_provider(handler))
        assert events[-1] == ProviderError("context length exceeded", code="context_length")
        assert ContentDelta("never") not in events

    async def test_request_options_and_tools(self):
        seen: list[dict] = []
        tools = [{"type": "function", "function": {"name": "echo", "parameters": {}}}]

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, content=_sse("[DONE]"))

        history = [
            Message(role=Role.USER, content="hi"),
            Message(
                role=Role.ASSISTANT,
                content="calling",
                tool_calls=[ToolCall(id="c1", name="echo", arguments={"message": "x"})],
            ),
            Message(role=Role.TOOL, content='{"success": true}', tool_call_id="c1", name="echo"),
        ]
        provider = _provider(handler, tools=tools)
        await _collect(provider, history, model="other-model", temperature=0.2, max_tokens=64)

        body = seen[0]
        assert body["model"] == "other-model"
        assert body["temperature"] == 0.2
        assert body["max_tokens"] == 64
        assert body["tools"] == tools
        assert body["tool_choice"] == "auto"
        assistant, tool_msg = body["messages"][1], body["messages"][2]
        assert assistant["tool_calls"][0]["function"] == {
            "name": "echo",
            "arguments": '{"message": "x"}',
        }
        assert tool_msg["tool_call_id"] == "c1"
        assert tool_msg["name"] == "echo"


class TestHttpErrors:
    async def test_server_error_retried_then_succeeds(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, content=_sse(_delta(content="ok"), "[DONE]"))

        events = await _collect(_provider(handler, max_retries=3))

        notices = [e for e in events if isinstance(e, RetryNotice)]
        assert [(n.attempt, n.max_attempts) for n in notices] == [(1, 3), (2, 3)]
        assert notices[0].reason == "Server error (HTTP 503)"
        assert ContentDelta("ok") in events
        assert len(attempts) == 3

    async def test_retries_exhausted(self):
        def handler(request):
            return httpx.Response(500)

        events = await _collect(_provider(handler, max_retries=2))
        assert len([e for e in events if isinstance(e, RetryNotice)]) == 2
        assert events[-1] == ProviderError(
            "Server error (HTTP 500) (after 2 retries)", code="server_error", retryable=False
        )

    async def test_rate_limit_is_retryable(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, headers={"retry-after": "1"})
            return httpx.Response(200, content=_sse("[DONE]"))

        events = await _collect(_provider(handler))
        assert isinstance(events[1], RetryNotice)
        assert events[1].reason == "Rate limit exceeded"

    async def test_notice_sent_before_backoff_sleep(self, monkeypatch):
        order = []

        async def fake_sleep(seconds):
            if seconds:
                order.append(("sleep", seconds))

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, content=_sse("[DONE]"))

        provider = _provider(handler, initial_retry_delay_ms=100, max_retry_delay_ms=1000)
        async for event in provider.chat([Message(role=Role.USER, content="hi")]):
            if isinstance(event, RetryNotice):
                order.append(("notice", event.delay_ms / 1000))

        assert [kind for kind, _ in order] == ["notice", "sleep"]
        assert order[0][1] == order[1][1]

    async def test_retry_after_raises_delay(self, monkeypatch):
        slept = []

        async def fake_sleep(seconds):
            if seconds:
                slept.append(seconds)

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, headers={"retry-after": "2"})
            return httpx.Response(200, content=_sse("[DONE]"))

        provider = _provider(handler, initial_retry_delay_ms=10, max_retry_delay_ms=30000)
        events = await _collect(provider)

        notice = next(e for e in events if isinstance(e, RetryNotice))
        assert notice.delay_ms == 2000
        assert slept == [2.0]

    async def test_retry_after_still_capped(self, monkeypatch):
        async def fake_sleep(seconds):
            return None

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)

        def handler(request):
            return httpx.Response(429, headers={"retry-after": "120"})

        events = await _collect(_provider(handler, max_retries=1, max_retry_delay_ms=5000))
        notice = next(e for e in events if isinstance(e, RetryNotice))
        assert notice.delay_ms == 5000

    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_errors_not_retried(self, status):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(status)

        events = await _collect(_provider(handler))
        assert len(calls) == 1
        assert events[-1].code == "auth_error"
        assert events[-1].retryable is False

    async def test_payment_required(self):
        events = await _collect(_provider(lambda request: httpx.Response(402)))
        assert events[-1].code == "payment_required"
        assert "premium" in events[-1].message

    async def test_bad_request_uses_api_message(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "unknown model"}})

        events = await _collect(_provider(handler))
        assert events[-1] == ProviderError("unknown model", code="bad_request", retryable=False)

    async def test_network_error_after_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        events = await _collect(_provider(handler, max_retries=1))
        assert len(calls) == 2
        assert events[-1] == ProviderError("connection refused", code="network_error", retryable=False)


class TestNonStreaming:
    async def test_full_response(self):
        def handler(request):
            assert json.loads(request.content)["stream"] is False
            return httpx.Response(
                200,
                json={
                    "choices": [
                        {
                            "message": {
                                "content": "Moon in Cancer",
                                "reasoning_content": "looked it up",
                                "tool_calls": [
                                    {
                                        "id": "c1",
                                        "function": {"name": "echo", "arguments": {"message": "m"}},
                                    }
                                ],
                            },
                            "finish_reason": "tool_calls",
                        }
                    ],
                    "usage": {"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3},
                },
            )

        events = await _collect(_provider(handler), stream=False)
        assert events == [
            ProviderInfo("openai-compat", "test-model"),
            ReasoningDelta("looked it up"),
            ContentDelta("Moon in Cancer"),
            ToolCallsDelta([ToolCall(id="c1", name="echo", arguments={"message": "m"})]),
            StreamDone("tool_calls"),
            UsageInfo(1, 2, 3),
        ]

    async def test_error_body(self):
        def handler(request):
            return httpx.Response(200, json={"error": {"message": "nope"}})

        events = await _collect(_provider(handler), stream=False)
        assert events[-1] == ProviderError("nope", code="error")


class TestRetryDelay:
    def test_grows_exponentially_with_bounded_jitter(self):
        provider = OpenAICompatProvider(initial_retry_delay_ms=1000, max_retry_delay_ms=30000)
        for attempt, base in [(0, 1000), (1, 2000), (2, 4000)]:
            delay = provider.retry_delay_ms(attempt)
            assert base <= delay <= base * 1.1

    def test_capped_at_maximum(self):
        provider = OpenAICompatProvider(initial_retry_delay_ms=2000, max_retry_delay_ms=30000)
        assert provider.retry_delay_ms(10) == 30000

    def test_provider_id_reported(self):
        provider = OpenAICompatProvider(provider_id="deepinfra", model="m")
        assert provider.name == "deepinfra"
        assert provider.resolve_model(None) == "m"
        assert provider.resolve_model("x") == "x"
