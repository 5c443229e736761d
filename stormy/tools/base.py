from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from stormy.types import ToolExecutionResult


@dataclass
class ToolContext:
    """Ambient state handed to every tool execution."""

    current_profile: Any = None
    all_profiles: list[Any] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


def normalize_schema(schema: dict) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("properties", {})
    return s


class Tool(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict: ...

    @property
    def requires_profile(self) -> bool:
        return False

    @property
    def required_parameters(self) -> list[str]:
        return list(normalize_schema(self.parameters).get("required", []))

    @abstractmethod
    async def execute(self, arguments: dict, context: ToolContext) -> ToolExecutionResult: ...

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": normalize_schema(self.parameters),
            },
        }
