"""Helpers to extract a validated score from free-text model output."""

import json
import math
import re
from typing import Any, Dict, Optional

from services.errors import ModelResponseError

_JSON_SPAN = re.compile(r"\{[\s\S]*\}")

DEFAULT_REASONING = "No reasoning provided"
DEFAULT_CONFIDENCE = 3


def extract_text(response: Any) -> str:
    """Extract the first output_text entry from the response."""
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "message":
            continue
        for content in getattr(item, "content", None) or []:
            content_type = content.get("type") if isinstance(content, dict) else getattr(content, "type", None)
            if content_type == "output_text":
                text = content.get("text") if isinstance(content, dict) else getattr(content, "text", None)
                return text or ""
    return getattr(response, "output_text", "") or ""


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def parse_score_payload(text: str) -> Dict[str, Any]:
    """Parse `{score, reasoning, confidence}` out of model text.

    The first `{...}` span is decoded. `score` must be a number within
    1..10 and is rounded half-up; `confidence` defaults to 3 when absent and
    must otherwise be a number within 1..5. Values are never clamped.

    Raises:
        ModelResponseError: If no JSON object is found or a field is invalid.
    """
    match = _JSON_SPAN.search(text or "")
    if not match:
        raise ModelResponseError("No JSON found in response")

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ModelResponseError(f"Malformed JSON in response: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise ModelResponseError("Response JSON is not an object")

    score = parsed.get("score")
    if not _is_number(score) or score < 1 or score > 10:
        raise ModelResponseError("Invalid score in response")

    confidence: Optional[Any] = parsed.get("confidence")
    if confidence is None:
        confidence = DEFAULT_CONFIDENCE
    elif not _is_number(confidence) or confidence < 1 or confidence > 5:
        raise ModelResponseError("Invalid confidence in response")

    reasoning = parsed.get("reasoning")
    if reasoning is not None and not isinstance(reasoning, str):
        raise ModelResponseError("Invalid reasoning in response")

    return {
        "score": round_half_up(score),
        "reasoning": reasoning or DEFAULT_REASONING,
        "confidence": round_half_up(confidence),
    }
