from __future__ import annotations

import inspect
import logging
from importlib.metadata import entry_points

from stormy.tools.base import Tool, normalize_schema

logger = logging.getLogger(__name__)


def normalize_tool_name(name: str) -> str:
    return name.strip().lower().replace("-", "_").replace(" ", "_")


class ToolRegistry:
    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool, *, overwrite: bool = False) -> None:
        if tool.name in self._tools and not overwrite:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def require(self, name: str) -> Tool:
        t = self.get(name)
        if not t:
            raise KeyError(name)
        return t

    def list(self) -> list[Tool]:
        return sorted(self._tools.values(), key=lambda t: t.name)

    @property
    def names(self) -> list[str]:
        return sorted(self._tools)

    def resolve(self, name: str) -> Tool | None:
        """
        Look up a tool by the name a model wrote.

        Tries the normalized name, then the raw name, then a fuzzy match on
        underscore-separated terms: every term of *name* must overlap a term
        of the candidate, and the candidate sharing the most exact terms wins.
        """
        normalized = normalize_tool_name(name)
        tool = self._tools.get(normalized) or self._tools.get(name)
        if tool is not None:
            return tool

        terms = [t for t in normalized.split("_") if t]
        if not terms:
            return None
        best: Tool | None = None
        best_score = -1
        for candidate in self.list():
            candidate_terms = candidate.name.split("_")
            if not all(
                any(term in ct or ct in term for ct in candidate_terms) for term in terms
            ):
                continue
            score = sum(1 for term in terms if term in candidate_terms)
            if score > best_score:
                best, best_score = candidate, score
        if best is not None:
            logger.info("Resolved tool name %r to %r", name, best.name)
        return best

    def describe(self) -> str:
        """Markdown description of every tool, for the system prompt."""
        lines = ["### Available Tools:", ""]
        for tool in self.list():
            schema = normalize_schema(tool.parameters)
            required = set(schema.get("required", []))
            lines.append(f"**{tool.name}**")
            lines.append(tool.description)
            lines.append("")
            lines.append("Arguments:")
            for param, spec in schema.get("properties", {}).items():
                flag = "required" if param in required else "optional"
                lines.append(f"- `{param}`: {spec.get('description', '')} ({flag})")
            lines.append("")
        return "\n".join(lines)

    def to_openai_schema(self) -> list[dict]:
        return [t.to_openai_schema() for t in self.list()]

    def load_plugins(
        self,
        *,
        enabled: bool,
        group: str = "stormy.tools",
        allow_distributions: set[str] | None = None,
        allow_tools: set[str] | None = None,
        services: dict | None = None,
    ) -> int:
        """Load tools from entry points, optionally injecting dependencies.

        Each keyword in *services* is passed to a tool class whose
        ``__init__`` declares a parameter of that name.  Tools that declare
        none of them are constructed with no arguments.
        """
        if not enabled:
            return 0
        loaded = 0
        for ep in entry_points(group=group):
            dist = getattr(ep, "dist", None)
            dist_name = getattr(dist, "name", None)
            if allow_distributions and dist_name and dist_name not in allow_distributions:
                continue
            if allow_tools and ep.name not in allow_tools:
                continue
            tool_cls = ep.load()
            kwargs: dict = {}
            if services:
                sig = inspect.signature(tool_cls)
                kwargs = {k: v for k, v in services.items() if k in sig.parameters}
            self.register(tool_cls(**kwargs))
            loaded += 1
        logger.info("Loaded %d plugin tool(s) from %s", loaded, group)
        return loaded
