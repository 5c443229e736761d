from __future__ import annotations

import jsonschema

from stormy.tools.base import Tool, normalize_schema

# Names models commonly use in place of a declared parameter.
PARAMETER_ALIASES: dict[str, tuple[str, ...]] = {
    "profile_id": ("profileId", "profile", "id", "chart_id", "chartId"),
    "target_profile_id": ("targetProfileId", "target_id", "partner_id", "partnerId"),
    "start_date": ("startDate", "from_date", "fromDate", "date"),
    "end_date": ("endDate", "to_date", "toDate"),
}


def alternative_names(param: str) -> tuple[str, ...]:
    """Alternative spellings accepted for *param*."""
    if param in PARAMETER_ALIASES:
        return PARAMETER_ALIASES[param]
    head, *rest = param.split("_")
    camel = head + "".join(part[:1].upper() + part[1:] for part in rest)
    return tuple(dict.fromkeys(n for n in (param.replace("_", ""), camel) if n != param))


def normalize_arguments(tool: Tool, arguments: dict) -> dict:
    """
    Rename alternative parameter spellings to the names *tool* declares.

    Only parameters missing under their declared name are looked up; the
    first alternative present wins.  Unrelated keys are left untouched.
    """
    declared = normalize_schema(tool.parameters).get("properties", {})
    normalized = dict(arguments)
    for param in declared:
        if param in normalized:
            continue
        for alt in alternative_names(param):
            if alt in normalized:
                normalized[param] = normalized.pop(alt)
                break
    return normalized


class ToolValidator:
    @staticmethod
    def missing_required(tool: Tool, arguments: dict) -> list[str]:
        return [
            p
            for p in tool.required_parameters
            if p not in arguments and not any(a in arguments for a in alternative_names(p))
        ]

    @staticmethod
    def validate(tool: Tool, arguments: dict) -> tuple[bool, str | None]:
        missing = ToolValidator.missing_required(tool, arguments)
        if missing:
            plural = "s" if len(missing) > 1 else ""
            return False, f"Missing required parameter{plural}: {', '.join(missing)}"
        try:
            jsonschema.validate(
                instance=normalize_arguments(tool, arguments),
                schema=normalize_schema(tool.parameters),
            )
            return True, None
        except jsonschema.ValidationError as e:
            return False, str(e.message)
