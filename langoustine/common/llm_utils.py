"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json


def strip_code_fences(raw: str) -> str:
    """Drop markdown ``` fence lines around a model answer."""
    if not raw.lstrip().startswith("```"):
        return raw
    lines = [l for l in raw.split("\n") if not l.strip().startswith("```")]
    return "\n".join(lines)


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object from an LLM response.

    Tries in order:
    1. json.loads after stripping markdown code fences
    2. The substring between the first '{' and the last '}'

    Anything that does not yield a JSON object gives an empty dict.
    """
    if not raw:
        return {}

    candidates = [strip_code_fences(raw).strip()]
    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start >= 0 and end > start:
        candidates.append(raw[start:end])

    for text in candidates:
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    return {}
