"""
Tool-call extraction from free model text.

Many models never populate a native tool-call field; instead they write the
call into their answer.  Six textual conventions are recognised, each as an
independent pass with its own pattern:

1. ```` ```tool_call ```` fenced block holding ``{"tool": ...}``
2. ```` ```json ```` fenced block holding ``{"tool": ..., "arguments": ...}``
3. unlabeled fenced block holding ``{"tool": ...}``
4. inline ``{"tool": "...", "arguments": {...}}``
5. inline ``{"name": "...", "parameters": {...}}``
6. function-call syntax such as ``get_planet_positions(planet="Moon")``

Results of all passes are unioned in pass order.  A match whose span
overlaps an already accepted match is skipped, and a call with the same
``(name, arguments)`` as an accepted one is dropped.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from stormy.llm.types import ToolCall

logger = logging.getLogger(__name__)

NAME_KEYS = ("tool", "name", "function")
ARGUMENT_KEYS = ("arguments", "parameters", "args")

# Verbs that mark an identifier as a tool in function-call syntax.
FUNCTION_VERBS = (
    "get",
    "calculate",
    "create",
    "update",
    "delete",
    "set",
    "start",
    "finish",
    "ask",
    "list",
    "find",
    "search",
)

# An object body with at most one level of nested braces.
_NESTED_OBJECT = r"\{(?:[^{}]|\{[^{}]*\})*\}"

FENCED_TOOL_CALL = re.compile(r"```tool_call\s*\n?\s*(\{[\s\S]*?\})\s*\n?```")
FENCED_JSON = re.compile(r"```json\s*\n?\s*(\{[\s\S]*?\})\s*\n?```", re.IGNORECASE)
FENCED_BARE = re.compile(r"```[ \t]*\n\s*(\{[\s\S]*?\})\s*\n?```")
INLINE_TOOL = re.compile(
    r'\{\s*"tool"\s*:\s*"[^"]+"\s*,\s*"arguments"\s*:\s*' + _NESTED_OBJECT + r"\s*\}"
)
INLINE_NAME = re.compile(
    r'\{\s*"name"\s*:\s*"[^"]+"\s*,\s*"parameters"\s*:\s*' + _NESTED_OBJECT + r"\s*\}"
)
FUNCTION_CALL = re.compile(
    r"\b((?:" + "|".join(FUNCTION_VERBS) + r")_[A-Za-z0-9_]+)\s*\(([^()]*)\)"
)

_FALLBACK_NAME = re.compile(r'"(?:tool|name)"\s*:\s*"([^"]+)"')
_FALLBACK_ARGS = re.compile(r'"(?:arguments|parameters)"\s*:\s*(' + _NESTED_OBJECT + r")")
# key=value, where the value is a double- or single-quoted string or runs to the next comma.
_KEYWORD_ARG = re.compile(
    r"""(?<![\w"'])(\w+)\s*=\s*("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|[^,]*)"""
)


@dataclass
class ExtractedCall:
    """A tool call together with the text span it was read from."""

    call: ToolCall
    start: int
    end: int
    pattern: str


def new_call_id() -> str:
    return f"tool_{uuid.uuid4().hex[:8]}"


def arguments_hash(arguments: dict) -> str:
    canonical = json.dumps(arguments, sort_keys=True, default=str)
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Object normalization
# ---------------------------------------------------------------------------


def resolve_call(obj: dict) -> tuple[str, dict] | None:
    """
    Pull ``(name, arguments)`` out of a decoded JSON object.

    The name comes from the first non-empty of ``tool``, ``name`` and
    ``function``; arguments from the first object-valued ``arguments``,
    ``parameters`` or ``args`` key.  A nested ``{"function": {"name": ...,
    "arguments": ...}}`` object is unwrapped first.
    """
    func = obj.get("function")
    if isinstance(func, dict) and func.get("name"):
        obj = {**obj, **func}
        obj.pop("function", None)

    name = ""
    for key in NAME_KEYS:
        value = obj.get(key)
        if isinstance(value, str) and value.strip():
            name = value.strip()
            break
    if not name:
        return None

    arguments: dict = {}
    for key in ARGUMENT_KEYS:
        if key not in obj:
            continue
        value = obj[key]
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except (json.JSONDecodeError, ValueError):
                continue
        if isinstance(value, dict):
            arguments = value
            break
    return name, arguments


def _salvage(span: str) -> tuple[str, dict] | None:
    """Regex recovery of name and arguments from JSON that failed to parse."""
    name_match = _FALLBACK_NAME.search(span)
    if not name_match:
        return None
    arguments: dict = {}
    args_match = _FALLBACK_ARGS.search(span)
    if args_match:
        try:
            parsed = json.loads(args_match.group(1))
        except (json.JSONDecodeError, ValueError):
            parsed = None
        if isinstance(parsed, dict):
            arguments = parsed
    logger.warning("Recovered tool call %r from malformed JSON", name_match.group(1))
    return name_match.group(1), arguments


def _decode_object(span: str) -> tuple[str, dict] | None:
    try:
        obj = json.loads(span)
    except (json.JSONDecodeError, ValueError):
        return _salvage(span)
    if not isinstance(obj, dict):
        return None
    return resolve_call(obj)


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------

Candidate = tuple[int, int, str, dict]


def _json_pass(
    pattern: re.Pattern,
    text: str,
    required: tuple[str, ...],
    group: int = 1,
) -> list[Candidate]:
    found: list[Candidate] = []
    for match in pattern.finditer(text):
        span = match.group(group)
        if not all(f'"{key}"' in span for key in required):
            continue
        resolved = _decode_object(span)
        if resolved is None:
            continue
        found.append((match.start(), match.end(), *resolved))
    return found


def fenced_tool_call_pass(text: str) -> list[Candidate]:
    return _json_pass(FENCED_TOOL_CALL, text, ("tool",))


def fenced_json_pass(text: str) -> list[Candidate]:
    return _json_pass(FENCED_JSON, text, ("tool", "arguments"))


def fenced_bare_pass(text: str) -> list[Candidate]:
    return _json_pass(FENCED_BARE, text, ("tool",))


def inline_tool_pass(text: str) -> list[Candidate]:
    return _json_pass(INLINE_TOOL, text, (), group=0)


def inline_name_pass(text: str) -> list[Candidate]:
    return _json_pass(INLINE_NAME, text, (), group=0)


def _coerce_value(raw: str) -> Any:
    raw = raw.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "\"'":
        return raw[1:-1]
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in ("none", "null"):
        return None
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        return raw


def parse_keyword_arguments(raw: str) -> dict:
    """Parse ``key=value, key2="a, b"`` into a dict.  Parts without ``=`` are ignored."""
    arguments: dict = {}
    if not raw.strip():
        return arguments
    for match in _KEYWORD_ARG.finditer(raw):
        key, value = match.groups()
        if not key.isidentifier():
            continue
        arguments[key] = _coerce_value(value)
    return arguments


def function_call_pass(text: str) -> list[Candidate]:
    return [
        (m.start(), m.end(), m.group(1), parse_keyword_arguments(m.group(2)))
        for m in FUNCTION_CALL.finditer(text)
    ]


PASSES: tuple[tuple[str, Callable[[str], list[Candidate]]], ...] = (
    ("fenced_tool_call", fenced_tool_call_pass),
    ("fenced_json", fenced_json_pass),
    ("fenced_bare", fenced_bare_pass),
    ("inline_tool", inline_tool_pass),
    ("inline_name", inline_name_pass),
    ("function_call", function_call_pass),
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def scan(text: str) -> list[ExtractedCall]:
    """
    Run every pass over *text*.

    Returns one entry per accepted match, in acceptance order.  Overlapping
    matches from later passes are ignored.  Duplicates by ``(name,
    arguments)`` are *kept* here so callers that strip syntax see every span.
    """
    if not text:
        return []

    accepted: list[ExtractedCall] = []
    for pattern_name, run_pass in PASSES:
        for start, end, name, arguments in run_pass(text):
            if any(start < c.end and c.start < end for c in accepted):
                continue
            accepted.append(
                ExtractedCall(
                    call=ToolCall(id=new_call_id(), name=name, arguments=arguments),
                    start=start,
                    end=end,
                    pattern=pattern_name,
                )
            )
    return accepted


def extract_tool_calls(text: str) -> list[ToolCall]:
    """Return the de-duplicated tool calls embedded in *text*."""
    seen: set[tuple[str, str]] = set()
    calls: list[ToolCall] = []
    for found in scan(text):
        key = (found.call.name, arguments_hash(found.call.arguments))
        if key in seen:
            continue
        seen.add(key)
        calls.append(found.call)
    return calls


def strip_tool_calls(text: str) -> str:
    """Remove every recognised tool-call span from *text* for display."""
    spans = sorted((c.start, c.end) for c in scan(text))
    if not spans:
        return text.strip()
    pieces: list[str] = []
    cursor = 0
    for start, end in spans:
        pieces.append(text[cursor:start])
        cursor = end
    pieces.append(text[cursor:])
    return re.sub(r"\n{3,}", "\n\n", "".join(pieces)).strip()
