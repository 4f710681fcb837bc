"""Helpers for reading JSON replies from the chat completion gateway."""

import json
import re
from typing import Any

from marketplace_agent.core.exceptions import ToolError

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def parse_json_object(text: str | None, tool_name: str | None = None) -> dict[str, Any]:
    """
    Parse a JSON object out of a model reply.

    Tolerates fenced code blocks and prose around the object.

    Args:
        text: Raw reply text
        tool_name: Tool name attached to the error

    Returns:
        Parsed object

    Raises:
        ToolError: UPSTREAM_REJECTED if no JSON object can be read
    """
    if not text:
        raise ToolError.rejected("Model returned an empty reply", tool_name=tool_name)

    candidates = [text.strip()]
    fenced = _FENCE.search(text)
    if fenced:
        candidates.insert(0, fenced.group(1).strip())
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value

    raise ToolError.rejected(
        "Model reply is not a JSON object",
        tool_name=tool_name,
        detail={"reply": text[:500]},
    )
