"""Tolerant JSON extraction from model replies.

Models wrap JSON in markdown fences or surround it with prose; these helpers recover the
object where one exists and return ``None`` otherwise.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

from devtrail.logging import get_logger

logger = get_logger(__name__)


_FENCE_JSON_RE = re.compile(r"```json\s*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)
_FENCE_ANY_RE = re.compile(r"```\s*\n?(.*?)\n?```", re.DOTALL)


def _loads_object(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Extract one JSON object from text.

    Strategies, strict to loose:
        1. A markdown-fenced block (```json ... ``` or ``` ... ```).
        2. The whole text.
        3. The span from the first ``{`` to the last ``}``.
    """

    if not text:
        return None

    cleaned = text.strip()

    m = _FENCE_JSON_RE.search(cleaned) or _FENCE_ANY_RE.search(cleaned)
    if m:
        obj = _loads_object(m.group(1).strip())
        if obj is not None:
            return obj
        logger.debug("extract_json_object: fenced block is not a JSON object")

    obj = _loads_object(cleaned)
    if obj is not None:
        return obj

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        obj = _loads_object(cleaned[start : end + 1])
        if obj is not None:
            return obj

    logger.debug("extract_json_object: no JSON object found")
    return None
