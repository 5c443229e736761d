"""Transient per-run state of the agent loop."""

from __future__ import annotations

from dataclasses import dataclass, field

from stormy.orchestrator.extractor import strip_tool_calls


def is_duplicate(candidate: str, previous: list[str]) -> bool:
    """
    True when *candidate* repeats any earlier iteration's content.

    Matches on equality after trimming, or when either string contains the
    other.  A shorter but genuinely different answer that happens to be a
    substring of an earlier draft is also dropped.
    """
    candidate = candidate.strip()
    for prior in previous:
        prior = prior.strip()
        if prior == candidate or candidate in prior or prior in candidate:
            return True
    return False


@dataclass
class IterationState:
    """
    Counters and buffers for one ``Orchestrator.run`` call.

    ``content_parts`` and ``reasoning_parts`` are the in-flight iteration's
    buffers, filled by the stream aggregator token by token.
    ``accepted_content`` holds one cleaned, non-duplicate string per
    iteration that produced content; ``reasoning_history`` holds every
    non-empty reasoning buffer.  Nothing here is persisted.
    """

    iteration: int = 0
    tool_iterations: int = 0
    content_parts: list[str] = field(default_factory=list)
    reasoning_parts: list[str] = field(default_factory=list)
    accepted_content: list[str] = field(default_factory=list)
    reasoning_history: list[str] = field(default_factory=list)
    tools_used: list[str] = field(default_factory=list)
    continuation_requested: bool = False
    done: bool = False

    @property
    def content(self) -> str:
        return "".join(self.content_parts)

    @property
    def reasoning(self) -> str:
        return "".join(self.reasoning_parts)

    def begin_iteration(self) -> None:
        self.iteration += 1
        self.content_parts = []
        self.reasoning_parts = []

    def end_iteration(self, cleaned_content: str) -> bool:
        """
        Fold the current iteration's buffers into the run.

        Returns ``True`` if *cleaned_content* was accepted.  Empty content and
        content that repeats, or is contained in, an earlier iteration's is
        discarded.  Content that strictly extends earlier entries replaces
        them, so the earlier text never appears twice.
        """
        reasoning = self.reasoning
        if reasoning.strip():
            self.reasoning_history.append(reasoning)

        cleaned_content = cleaned_content.strip()
        if not cleaned_content:
            return False
        if is_duplicate(cleaned_content, self.accepted_content):
            if any(cleaned_content in p for p in self.accepted_content):
                return False
            self.accepted_content = [
                p for p in self.accepted_content if p not in cleaned_content
            ]
        self.accepted_content.append(cleaned_content)
        return True

    def record_tool(self, name: str) -> None:
        if name not in self.tools_used:
            self.tools_used.append(name)

    @property
    def final_content(self) -> str:
        """The last accepted content; later iterations know every tool result."""
        return self.accepted_content[-1] if self.accepted_content else ""

    @property
    def merged_reasoning(self) -> str:
        return "\n\n".join(self.reasoning_history).strip()

    def reset_accumulated(self) -> None:
        """Forget accepted content and reasoning before a continuation round."""
        self.accepted_content.clear()
        self.reasoning_history.clear()

    def partial_content(self) -> str:
        """Best-effort text to persist when the run is cancelled."""
        in_flight = strip_tool_calls(self.content)
        if in_flight:
            return in_flight
        return self.final_content or self.merged_reasoning or self.reasoning.strip()
