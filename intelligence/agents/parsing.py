"""Tolerant JSON extraction from model output."""

from __future__ import annotations

from typing import Any, Optional
import json
import re


_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def extract_json(text: str) -> Optional[Any]:
    """
    Parse the JSON payload of a model response.

    Accepts bare JSON, fenced ```json blocks and JSON surrounded by prose.
    Returns None when nothing parses.
    """
    raw = (text or "").strip()
    if not raw:
        return None

    candidates = [raw]
    candidates.extend(match.group(1).strip() for match in _FENCE_RE.finditer(raw))
    for pattern in (r"\[[\s\S]*\]", r"\{[\s\S]*\}"):
        match = re.search(pattern, raw)
        if match:
            candidates.append(match.group())

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
    return None
