from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


@dataclass
class ToolExecutionResult:
    success: bool
    summary: str
    data: dict | list | None = None
    error: str | None = None
    error_code: str | None = None

    def to_json(self) -> str:
        """Serialize into the content of a ``tool`` role message."""
        payload: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        payload["summary"] = self.summary
        return json.dumps(payload, default=str)

    @classmethod
    def failure(
        cls,
        error: str,
        summary: str,
        error_code: str | None = None,
    ) -> ToolExecutionResult:
        return cls(success=False, summary=summary, error=error, error_code=error_code)


class ErrorCode:
    # Tool dispatch
    UNKNOWN_TOOL = "unknown_tool"
    VALIDATION_ERROR = "validation_error"
    MISSING_CONTEXT = "missing_context"
    TIMEOUT = "timeout"
    TOOL_EXCEPTION = "tool_exception"

    # Agent loop
    PROVIDER_ERROR = "provider_error"
    ITERATION_CEILING = "iteration_ceiling"
    UNKNOWN_PROVIDER = "unknown_provider"
