"""Request handler for the food scoring function.

Validates the request, runs the scoring ladder, persists the score on the
post and answers with a JSON body. Every response carries permissive CORS
headers so browsers can call the function directly.
"""

import json
import logging
import random
import string
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from dal.post_dal import PostDAL, utc_timestamp
from models.post_record import ScoringDetails
from models.scoring import ScoreResult
from services.errors import PersistenceError, ValidationError
from services.scoring.food_scorer import FoodScorer
from utils.timeouts import race_timeout

LOGGER = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS, PUT, DELETE",
}

_BASE36 = string.digits + string.ascii_lowercase


def new_request_id(now_ms: int) -> str:
    return f"req_{now_ms}_{''.join(random.choices(_BASE36, k=9))}"


def _json(status_code: int, payload: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=payload, headers=dict(CORS_HEADERS))


async def _read_body(request: Request, timeout: float) -> Dict[str, Any]:
    raw = await race_timeout(request.body(), timeout, "Body parsing timeout")
    try:
        body = json.loads(raw or b"")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("Request body must be valid JSON") from exc
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


async def persist_score(post_dal: PostDAL, post_id: str, result: ScoreResult, timeout: float) -> None:
    """Write score and details for `post_id`.

    Raises:
        PersistenceError: If the post is missing, the write fails or times out.
    """
    details = ScoringDetails(
        reasoning=result.reasoning,
        confidence=result.confidence,
        model=result.model,
        analysis_time=result.analysis_time_ms,
        scored_at=utc_timestamp(datetime.now(timezone.utc)),
    )
    try:
        changed = await race_timeout(
            post_dal.update_score(post_id, result.score, details),
            timeout,
            "Database update timeout",
        )
    except Exception as exc:
        raise PersistenceError(str(exc) or "Database update failed") from exc
    if not changed:
        raise PersistenceError(f"Post {post_id} not found")


async def score_food(request: Request) -> Response:
    """Handle one scoring request.

    Returns:
        200 `{"success": true, score, reasoning, confidence, model, analysis_time}`
        on success; 400/405 for invalid requests; 500 `{"success": false, error}`
        for any other failure.
    """
    request_start = int(time.time() * 1000)
    request_id = new_request_id(request_start)
    LOGGER.info("[%s] Food scoring request received", request_id)

    if request.method == "OPTIONS":
        return PlainTextResponse("ok", headers=dict(CORS_HEADERS))

    if request.method != "POST":
        return _json(405, {"success": False, "error": "Method not allowed"})

    settings = request.app.state.settings
    scorer: FoodScorer = request.app.state.food_scorer
    post_dal = PostDAL(request.app.state.db_initializer)

    try:
        try:
            body = await _read_body(request, settings.body_parse_timeout)
        except ValidationError as exc:
            return _json(400, {"success": False, "error": str(exc)})

        image_url = body.get("imageUrl")
        post_id = body.get("postId")
        if not image_url or not post_id or not isinstance(image_url, str) or not isinstance(post_id, str):
            return _json(400, {"success": False, "error": "imageUrl and postId are required"})

        LOGGER.info("[%s] Analyzing post %s", request_id, post_id)
        result = await scorer.analyze(image_url)
        await persist_score(post_dal, post_id, result, settings.database_timeout)

        LOGGER.info("[%s] Completed in %dms", request_id, int(time.time() * 1000) - request_start)
        return _json(
            200,
            {
                "success": True,
                "score": result.score,
                "reasoning": result.reasoning,
                "confidence": result.confidence,
                "model": result.model,
                "analysis_time": result.analysis_time_ms,
            },
        )
    except Exception as exc:  # pylint: disable=broad-exception-caught
        message = str(exc) or "Unknown error occurred"
        duration = int(time.time() * 1000) - request_start
        LOGGER.error("[%s] Failed after %dms: %s", request_id, duration, message)
        return _json(500, {"success": False, "error": message})
