"""Food health scoring with a vision model and a model-fallback retry ladder.

Each attempt downloads the photo, sends it with a fixed prompt to the
OpenAI Responses API and validates the JSON the model returns. When the
provider reports overload, quota exhaustion or unavailability the scorer
backs off exponentially and moves to the next model of the priority list;
once the list is exhausted the last model is reused.
"""

import asyncio
import logging
import time
from typing import Any, Optional, Sequence

import httpx
from openai import APIStatusError, AsyncOpenAI

from models.scoring import ScoreResult
from services.errors import ModelOverloadError, ScoringError
from services.scoring.image_fetcher import fetch_image_as_base64
from services.scoring.prompts import build_inputs, build_scoring_prompt
from services.scoring.response_parser import extract_text, parse_score_payload
from utils.timeouts import SleepFn, race_timeout

LOGGER = logging.getLogger(__name__)

OVERLOAD_MARKERS = ("503", "overloaded", "Service Unavailable", "quota")
OVERLOAD_STATUS_CODES = {429, 503, 529}


def is_overload_message(message: str) -> bool:
    """Return True when an error message signals provider overload."""
    return any(marker in message for marker in OVERLOAD_MARKERS)


def select_model(models: Sequence[str], attempt: int) -> str:
    """Return the model for a 1-based attempt, reusing the last one when exhausted."""
    if not models:
        raise ValueError("At least one scoring model must be configured.")
    return models[min(attempt - 1, len(models) - 1)]


class FoodScorer:
    """Score a meal photo from 1 (very unhealthy) to 10 (extremely healthy)."""

    def __init__(
        self,
        client: AsyncOpenAI,
        http_client: httpx.AsyncClient,
        *,
        models: Sequence[str],
        max_attempts: int = 3,
        base_delay: float = 1.0,
        image_timeout: float = 15.0,
        inference_timeout: float = 20.0,
        temperature: float = 0.1,
        max_output_tokens: int = 1000,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        if client is None:
            raise ValueError("OpenAI AsyncOpenAI client is required.")
        if not models:
            raise ValueError("At least one scoring model must be configured.")
        self.client = client
        self.http_client = http_client
        self.models = tuple(models)
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.image_timeout = image_timeout
        self.inference_timeout = inference_timeout
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.prompt = build_scoring_prompt()
        self._sleep = sleep or asyncio.sleep

    async def analyze(self, image_url: str) -> ScoreResult:
        """Return a validated score for the image at `image_url`.

        Raises:
            ScoringError: When every attempt has failed. Overload errors back
                off before the next attempt; other errors move straight on to
                the next model.
        """
        analysis_start = time.monotonic()

        for attempt in range(1, self.max_attempts + 1):
            model_name = select_model(self.models, attempt)
            LOGGER.info("[MODEL] Attempt %d/%d using model: %s", attempt, self.max_attempts, model_name)
            try:
                payload = await self._attempt(image_url, model_name)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                message = str(exc) or exc.__class__.__name__
                LOGGER.warning("[MODEL] Attempt %d failed: %s", attempt, message)

                overloaded = isinstance(exc, ModelOverloadError) or is_overload_message(message)
                if attempt < self.max_attempts:
                    if overloaded:
                        delay = self.base_delay * (2 ** (attempt - 1))
                        LOGGER.info("[MODEL] API overloaded, retrying in %dms...", int(delay * 1000))
                        await self._sleep(delay)
                    continue

                LOGGER.error("[MODEL] All %d attempts failed", self.max_attempts)
                suffix = "attempt" if self.max_attempts == 1 else "attempts"
                raise ScoringError(
                    f"Model inference failed after {self.max_attempts} {suffix}: {message}"
                ) from exc

            analysis_time_ms = int((time.monotonic() - analysis_start) * 1000)
            LOGGER.info("[MODEL] Score: %s/10 in %dms", payload["score"], analysis_time_ms)
            return ScoreResult(
                score=payload["score"],
                reasoning=payload["reasoning"],
                confidence=payload["confidence"],
                model=model_name,
                analysis_time_ms=analysis_time_ms,
            )

        raise ScoringError("Scoring retry budget must allow at least one attempt.")

    async def _attempt(self, image_url: str, model_name: str):
        image_b64 = await race_timeout(
            fetch_image_as_base64(self.http_client, image_url),
            self.image_timeout,
            "Image fetch timeout",
        )
        response = await race_timeout(
            self._create_response(model_name, image_b64),
            self.inference_timeout,
            "Model API timeout",
        )
        return parse_score_payload(extract_text(response))

    async def _create_response(self, model_name: str, image_b64: str) -> Any:
        """Send the multimodal request to the OpenAI Responses API."""
        try:
            return await self.client.responses.create(
                model=model_name,
                input=build_inputs(self.prompt, image_b64),
                temperature=self.temperature,
                max_output_tokens=self.max_output_tokens,
            )
        except APIStatusError as exc:
            LOGGER.error("Error during OpenAI Responses API call: %s", exc)
            if exc.status_code in OVERLOAD_STATUS_CODES:
                raise ModelOverloadError(f"{exc.status_code} {exc}") from exc
            raise
        except Exception as exc:
            LOGGER.error("Error during OpenAI Responses API call: %s", exc)
            raise
