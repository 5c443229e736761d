"""
Assembles streaming tool-call deltas into complete ToolCall objects.

Design goals:
  - Accumulate ``RawToolDelta`` fragments keyed by ``call_index``.
  - On ``done=True`` (or an explicit ``flush()``), attempt to JSON-parse the
    accumulated argument string.
  - If parsing fails the call is kept with empty arguments and an error is
    recorded, so the tool still runs and can report what it is missing.
    A call whose name never arrived is dropped.
"""

from __future__ import annotations

import json

from stormy.llm.types import RawToolDelta, ToolCall


class ToolCallAssembler:
    """Buffers raw tool-call deltas and emits finished ``ToolCall`` objects."""

    def __init__(self) -> None:
        self._buf: dict[int, dict] = {}
        self.errors: list[str] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, delta: RawToolDelta) -> list[ToolCall]:
        """
        Feed a single ``RawToolDelta`` into the assembler.

        Returns a (possibly empty) list of completed ``ToolCall`` objects.
        A call is finalized when its delta has ``done=True``.
        """
        buf = self._buf.setdefault(
            delta.call_index, {"id": None, "name": "", "args": ""}
        )

        if delta.id and not buf["id"]:
            buf["id"] = delta.id

        if delta.name_delta:
            buf["name"] += delta.name_delta

        if delta.args_delta:
            buf["args"] += delta.args_delta

        if delta.done:
            return self._finalize(delta.call_index)

        return []

    def flush(self) -> list[ToolCall]:
        """
        Finalize *all* remaining buffers, regardless of whether a ``done``
        delta was received.  Useful at stream end.
        """
        calls: list[ToolCall] = []
        for idx in sorted(self._buf.keys()):
            calls.extend(self._finalize(idx))
        return calls

    def reset(self) -> None:
        """Discard all accumulated state."""
        self._buf.clear()
        self.errors.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _finalize(self, idx: int) -> list[ToolCall]:
        buf = self._buf.pop(idx, None)
        if buf is None:
            return []

        name = buf["name"].strip()
        if not name:
            self.errors.append(f"tool_call_missing_name idx={idx}")
            return []

        raw_args = buf["args"] or "{}"
        try:
            args = json.loads(raw_args)
        except (json.JSONDecodeError, ValueError) as exc:
            self.errors.append(
                f"tool_call_json_parse_failed idx={idx} err={exc}"
            )
            args = {}

        if not isinstance(args, dict):
            self.errors.append(
                f"tool_call_args_not_object idx={idx} type={type(args).__name__}"
            )
            args = {}

        # An empty id is filled in downstream by the stream aggregator.
        return [ToolCall(id=buf["id"] or "", name=name, arguments=args)]
