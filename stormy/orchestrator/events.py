"""
Agent event model.

The orchestrator reports everything it does to its caller as a single
ordered stream of these events.  ``Complete`` is the only terminal success
event; ``Error`` is terminal unless ``retryable`` marks it advisory.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar, Union


@dataclass
class _Event:
    kind: ClassVar[str] = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict tagged with ``kind``."""
        d = asdict(self)
        d["kind"] = self.kind
        return d


@dataclass
class ContentChunk(_Event):
    kind: ClassVar[str] = "content"
    text: str


@dataclass
class ReasoningChunk(_Event):
    kind: ClassVar[str] = "reasoning"
    text: str


@dataclass
class ModelInfo(_Event):
    kind: ClassVar[str] = "model_info"
    provider_id: str
    model: str


@dataclass
class ToolCallsStarted(_Event):
    kind: ClassVar[str] = "tool_calls_started"
    tool_names: list[str]


@dataclass
class ToolExecuting(_Event):
    kind: ClassVar[str] = "tool_executing"
    tool_name: str
    tool_call_id: str = ""


@dataclass
class ToolResult(_Event):
    kind: ClassVar[str] = "tool_result"
    tool_name: str
    success: bool
    summary: str
    tool_call_id: str = ""


@dataclass
class TokenUsage(_Event):
    kind: ClassVar[str] = "token_usage"
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class RetryInfo(_Event):
    kind: ClassVar[str] = "retry"
    attempt: int
    max_attempts: int
    delay_ms: int
    reason: str


@dataclass
class Error(_Event):
    kind: ClassVar[str] = "error"
    message: str
    retryable: bool = False
    code: str | None = None


@dataclass
class Complete(_Event):
    kind: ClassVar[str] = "complete"
    content: str
    reasoning: str | None = None
    tools_used: list[str] = field(default_factory=list)


AgentEvent = Union[
    ContentChunk,
    ReasoningChunk,
    ModelInfo,
    ToolCallsStarted,
    ToolExecuting,
    ToolResult,
    TokenUsage,
    RetryInfo,
    Error,
    Complete,
]
