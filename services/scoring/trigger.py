"""Client for the remote scoring function."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from models.scoring import ScoringOutcome
from services.errors import EdgeFunctionTimeout, NoResponseFromScoringSystem, ScoringFunctionError
from utils.timeouts import race_timeout

LOGGER = logging.getLogger(__name__)


class ScoringTrigger:
    """Invoke the scoring function for one post and report the outcome.

    Args:
        http_client: Shared async HTTP client.
        function_url: Absolute URL of the scoring endpoint.
        timeout: Seconds to wait before giving up on the call.
    """

    def __init__(self, http_client: httpx.AsyncClient, function_url: str, *, timeout: float = 30.0) -> None:
        if http_client is None:
            raise ValueError("httpx.AsyncClient is required.")
        self.http_client = http_client
        self.function_url = function_url
        self.timeout = timeout

    async def score_food(self, image_url: str, post_id: str) -> ScoringOutcome:
        """Score the image of `post_id`. Never raises; failures are returned."""
        LOGGER.info("[HEALTH-SCORING] Scoring post %s", post_id)
        try:
            data = await race_timeout(
                self._invoke(image_url, post_id),
                self.timeout,
                f"Edge function timeout after {self.timeout:g} seconds",
                error_cls=EdgeFunctionTimeout,
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("[HEALTH-SCORING] Error: %s", exc)
            return ScoringOutcome.failure(str(exc) or "Unknown error occurred", exc.__class__.__name__)

        LOGGER.info("[HEALTH-SCORING] Score: %s/10", data.get("score"))
        LOGGER.info("[HEALTH-SCORING] Reasoning: %s", data.get("reasoning"))

        if not data.get("success"):
            error = data.get("error") or "Unknown scoring error"
            LOGGER.error("[HEALTH-SCORING] Scoring failed: %s", error)
            return ScoringOutcome.failure(str(error), ScoringFunctionError.__name__)

        return ScoringOutcome(
            success=True,
            score=data.get("score"),
            reasoning=data.get("reasoning"),
            confidence=data.get("confidence"),
            model=data.get("model"),
            analysis_time_ms=data.get("analysis_time"),
        )

    async def _invoke(self, image_url: str, post_id: str) -> Dict[str, Any]:
        response = await self.http_client.post(
            self.function_url,
            json={"imageUrl": image_url, "postId": post_id},
        )
        body = _decode_body(response)

        if not response.is_success:
            detail = (body or {}).get("error") or f"HTTP {response.status_code}"
            LOGGER.error("[HEALTH-SCORING] Edge function error: %s", detail)
            raise ScoringFunctionError(f"Scoring failed: {detail}")

        if not body:
            LOGGER.error("[HEALTH-SCORING] No data returned from scoring function")
            raise NoResponseFromScoringSystem("No response from scoring system")
        return body


def _decode_body(response: httpx.Response) -> Optional[Dict[str, Any]]:
    if not response.content or not response.content.strip():
        return None
    try:
        payload = response.json()
    except ValueError as exc:
        if not response.is_success:
            return None
        raise ScoringFunctionError("Scoring failed: response was not valid JSON") from exc
    if payload is None:
        return None
    if not isinstance(payload, dict):
        raise ScoringFunctionError("Scoring failed: unexpected response shape")
    return payload
