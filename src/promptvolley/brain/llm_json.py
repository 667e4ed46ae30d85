"""
brain/llm_json.py — Tolerant JSON parsing for LLM output

Models asked for JSON still wrap it in code fences, leave // comments in,
drop quotes around keys or add trailing commas. parse_llm_json() tries a
strict parse first and falls back to json_repair, which strips comments and
normalises unquoted keys. Anything that still isn't an object or array
raises LLMJSONError.
"""

from __future__ import annotations

import json
import re
from typing import Any

from json_repair import repair_json

from promptvolley.observability.logger import get_logger

log = get_logger(__name__)

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


class LLMJSONError(ValueError):
    """LLM output could not be parsed or repaired into a JSON object/array."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


def strip_code_fences(text: str) -> str:
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def parse_llm_json(text: str) -> dict | list:
    """Parse `text` as a JSON object or array, repairing it when needed."""
    if not text or not text.strip():
        raise LLMJSONError("LLM returned an empty response where JSON was expected.", raw=text or "")

    cleaned = strip_code_fences(text.strip())

    try:
        data: Any = json.loads(cleaned)
        repaired = False
    except json.JSONDecodeError as e:
        log.debug("llm_json.repairing", error=str(e), length=len(cleaned))
        data = repair_json(cleaned, return_objects=True)
        repaired = True

    # An empty repair result means nothing usable was recovered.
    if not isinstance(data, (dict, list)) or (repaired and not data):
        raise LLMJSONError(
            f"LLM response is not a JSON object or array after repair: {cleaned[:200]!r}",
            raw=text,
        )
    return data
