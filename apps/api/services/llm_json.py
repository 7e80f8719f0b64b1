"""
JSON extraction from model output.

Models asked for JSON still wrap it in markdown fences or prose often enough
that a plain json.loads is not sufficient.
"""
from __future__ import annotations

import json
import re
from typing import Any

from core.exceptions import MalformedResponse

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)


def _try_parse(candidate: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(candidate)
    except ValueError:
        return False, None


def _span(text: str, open_char: str, close_char: str) -> str | None:
    start = text.find(open_char)
    end = text.rfind(close_char)
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def extract_json(text: str) -> Any:
    """
    First JSON value found in `text`.

    Tries, in order: the whole text, a fenced ```json block, the outermost
    {...} span, the outermost [...] span.

    Raises:
        MalformedResponse: empty text or nothing parseable.
    """
    if not text or not text.strip():
        raise MalformedResponse("Empty model response")

    ok, parsed = _try_parse(text.strip())
    if ok:
        return parsed

    fence = _FENCE_RE.search(text)
    if fence:
        ok, parsed = _try_parse(fence.group(1).strip())
        if ok:
            return parsed

    for open_char, close_char in (("{", "}"), ("[", "]")):
        candidate = _span(text, open_char, close_char)
        if candidate is None:
            continue
        ok, parsed = _try_parse(candidate)
        if ok:
            return parsed

    raise MalformedResponse("No JSON value found in model response")


def extract_json_object(text: str) -> dict[str, Any]:
    parsed = extract_json(text)
    if not isinstance(parsed, dict):
        raise MalformedResponse("Model response JSON is not an object")
    return parsed
