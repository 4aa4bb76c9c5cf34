"""Lenient JSON extraction for structured model replies."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"```(?:json)?\s*", re.I)
_FENCE_CLOSE = re.compile(r"```\s*")
_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_TRAILING_COMMA = re.compile(r",\s*([\}\]])")


def extract_json(text: str) -> dict[str, Any]:
    """Return the JSON object contained in ``text``.

    Handles markdown code fences, prose around the object and trailing
    commas. Raises :class:`ValueError` when no object can be recovered.
    """

    cleaned = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text or "")).strip()
    candidates = [cleaned]
    match = _OBJECT.search(cleaned)
    if match and match.group(0) != cleaned:
        candidates.append(match.group(0))
    if match:
        candidates.append(_TRAILING_COMMA.sub(r"\1", match.group(0)))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    logger.debug("No JSON object found in model reply (%d chars)", len(cleaned))
    raise ValueError("Model reply did not contain a JSON object")


__all__ = ["extract_json"]
