"""Core types for the LLM subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolCall:
    """A resolved tool call with parsed arguments."""

    id: str
    name: str
    arguments: dict = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass(frozen=True)
class Message:
    """
    A single message in a conversation.

    Messages are never mutated once appended to a history; the agent loop
    only ever appends new ones.
    """

    role: Role
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            d["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            d["tool_call_id"] = self.tool_call_id
        if self.name:
            d["name"] = self.name
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        raw_calls = data.get("tool_calls")
        tool_calls = None
        if raw_calls:
            tool_calls = [
                ToolCall(
                    id=tc["id"],
                    name=tc["name"],
                    arguments=tc.get("arguments") or {},
                )
                for tc in raw_calls
            ]
        return cls(
            role=Role(data["role"]),
            content=data.get("content", ""),
            tool_calls=tool_calls,
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
        )


@dataclass
class RawToolDelta:
    """
    An incremental delta for a streaming tool call.

    Providers receive these as tool-call fragments arrive.  The
    ToolCallAssembler accumulates them and produces finished ToolCall objects.
    """

    call_index: int
    id: str | None = None
    name_delta: str = ""
    args_delta: str = ""
    done: bool = False


# ---------------------------------------------------------------------------
# Provider stream events
# ---------------------------------------------------------------------------


@dataclass
class ContentDelta:
    text: str


@dataclass
class ReasoningDelta:
    """Interim "thinking" text from models that expose a reasoning channel."""

    text: str


@dataclass
class ToolCallsDelta:
    """
    Natively structured tool calls.

    ``id`` may be empty when the provider omitted one; the aggregator assigns
    a generated id in that case.
    """

    tool_calls: list[ToolCall]


@dataclass
class UsageInfo:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ProviderError:
    message: str
    code: str | None = None
    retryable: bool = False


@dataclass
class RetryNotice:
    attempt: int
    max_attempts: int
    delay_ms: int
    reason: str


@dataclass
class ProviderInfo:
    provider_id: str
    model: str


@dataclass
class StreamDone:
    finish_reason: str = "stop"


ProviderEvent = Union[
    ContentDelta,
    ReasoningDelta,
    ToolCallsDelta,
    UsageInfo,
    ProviderError,
    RetryNotice,
    ProviderInfo,
    StreamDone,
]
