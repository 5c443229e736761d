"""
Tool dispatcher -- runs one tool call through its lifecycle.

Steps:
1. Registry lookup (with name normalization and fuzzy matching)
2. Argument validation and alias normalization
3. Context check
4. Execute with timeout

Every failure comes back as an unsuccessful ``ToolExecutionResult``;
``dispatch`` does not raise for tool-side problems.
"""

from __future__ import annotations

import asyncio
import logging
import time

from stormy.tools.base import ToolContext
from stormy.tools.registry import ToolRegistry
from stormy.tools.validation import ToolValidator, normalize_arguments
from stormy.types import ErrorCode, ToolExecutionResult

logger = logging.getLogger(__name__)


class ToolDispatcher:
    """
    Parameters
    ----------
    registry : ToolRegistry
        Registered tools.
    timeout : float
        Max seconds for a single tool execution.
    """

    def __init__(self, registry: ToolRegistry, timeout: float = 30.0) -> None:
        self.registry = registry
        self.timeout = timeout

    async def dispatch(
        self,
        name: str,
        arguments: dict,
        context: ToolContext | None = None,
    ) -> ToolExecutionResult:
        context = context or ToolContext()

        # 1. Registry lookup
        tool = self.registry.resolve(name)
        if tool is None:
            return ToolExecutionResult.failure(
                f"Tool not found: {name}. Available tools: {', '.join(self.registry.names)}",
                f"Unknown tool '{name}'",
                error_code=ErrorCode.UNKNOWN_TOOL,
            )

        # 2. Validate args
        valid, error_msg = ToolValidator.validate(tool, arguments)
        if not valid:
            return ToolExecutionResult.failure(
                error_msg or "Invalid parameters",
                "Invalid parameters",
                error_code=ErrorCode.VALIDATION_ERROR,
            )
        arguments = normalize_arguments(tool, arguments)

        # 3. Context check
        if tool.requires_profile and context.current_profile is None:
            return ToolExecutionResult.failure(
                "This tool requires an active profile. Please select or create one first.",
                "Missing context",
                error_code=ErrorCode.MISSING_CONTEXT,
            )

        # 4. Execute with timeout
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                tool.execute(arguments, context),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Tool %s timed out after %ss", tool.name, self.timeout)
            return ToolExecutionResult.failure(
                f"Tool execution timed out after {self.timeout:g} seconds",
                "Timeout",
                error_code=ErrorCode.TIMEOUT,
            )
        except Exception as e:
            logger.exception("Tool %s raised", tool.name)
            return ToolExecutionResult.failure(
                f"{type(e).__name__}: {str(e) or 'Unknown error'}",
                "Execution failed",
                error_code=ErrorCode.TOOL_EXCEPTION,
            )

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Tool %s finished in %dms (success=%s)", tool.name, duration_ms, result.success
        )
        return result
