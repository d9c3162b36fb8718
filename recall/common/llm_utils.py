"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
from typing import Any, Dict

from .errors import SynthesisParseError


def _strip_code_fences(text: str) -> str:
    if not text.startswith("```"):
        return text
    lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
    return "\n".join(lines)


def parse_llm_json(raw: str) -> Dict[str, Any]:
    """Parse a JSON object from an LLM response.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract substring between first '{' and last '}', then json.loads

    Raises:
        SynthesisParseError: if no JSON object can be recovered
    """
    if not raw or not raw.strip():
        raise SynthesisParseError(raw or "")

    text = _strip_code_fences(raw.strip())

    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start >= 0 and end > start:
        try:
            parsed = json.loads(raw[start:end])
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

    raise SynthesisParseError(raw)
