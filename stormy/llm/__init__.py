"""LLM subsystem -- providers, routing, and streaming tool-call assembly."""

from stormy.llm.errors import AuthenticationError, ProviderException, RateLimitError
from stormy.llm.router import LLMRouter
from stormy.llm.tool_call_assembler import ToolCallAssembler
from stormy.llm.types import (
    Message,
    ProviderEvent,
    RawToolDelta,
    Role,
    ToolCall,
)

__all__ = [
    "AuthenticationError",
    "LLMRouter",
    "Message",
    "ProviderEvent",
    "ProviderException",
    "RateLimitError",
    "RawToolDelta",
    "Role",
    "ToolCall",
    "ToolCallAssembler",
]
