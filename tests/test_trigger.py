import asyncio
import json

import httpx

from services.scoring.trigger import ScoringTrigger

FUNCTION_URL = "http://testserver/functions/v1/score-food"


def _trigger(handler, timeout=30.0):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ScoringTrigger(client, FUNCTION_URL, timeout=timeout)


async def test_successful_scoring_returns_fields():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={"success": True, "score": 7, "reasoning": "Good protein", "confidence": 4,
                  "model": "model-fast", "analysis_time": 321},
        )

    outcome = await _trigger(handler).score_food("http://img/1.jpg", "post-1")

    assert seen == [{"imageUrl": "http://img/1.jpg", "postId": "post-1"}]
    assert outcome.success
    assert (outcome.score, outcome.reasoning, outcome.confidence) == (7, "Good protein", 4)
    assert outcome.model == "model-fast"
    assert outcome.analysis_time_ms == 321


async def test_unsuccessful_body_is_reported():
    outcome = await _trigger(
        lambda request: httpx.Response(200, json={"success": False, "error": "Invalid score in response"})
    ).score_food("http://img/1.jpg", "post-1")

    assert not outcome.success
    assert outcome.error == "Invalid score in response"
    assert outcome.error_type == "ScoringFunctionError"


async def test_error_status_is_reported():
    outcome = await _trigger(
        lambda request: httpx.Response(500, json={"success": False, "error": "Post p not found"})
    ).score_food("http://img/1.jpg", "post-1")

    assert not outcome.success
    assert outcome.error == "Scoring failed: Post p not found"
    assert outcome.error_type == "ScoringFunctionError"


async def test_error_status_without_body():
    outcome = await _trigger(lambda request: httpx.Response(502)).score_food("http://img/1.jpg", "post-1")
    assert outcome.error == "Scoring failed: HTTP 502"


async def test_empty_body_means_no_response():
    outcome = await _trigger(lambda request: httpx.Response(200)).score_food("http://img/1.jpg", "post-1")

    assert not outcome.success
    assert outcome.error == "No response from scoring system"
    assert outcome.error_type == "NoResponseFromScoringSystem"


async def test_slow_function_times_out():
    async def handler(request):
        await asyncio.sleep(0.2)
        return httpx.Response(200, json={"success": True, "score": 5, "reasoning": "late"})

    outcome = await _trigger(handler, timeout=0.05).score_food("http://img/1.jpg", "post-1")

    assert not outcome.success
    assert outcome.error_type == "EdgeFunctionTimeout"
    assert outcome.error == "Edge function timeout after 0.05 seconds"
    await asyncio.sleep(0.25)


async def test_transport_error_is_returned_not_raised():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    outcome = await _trigger(handler).score_food("http://img/1.jpg", "post-1")

    assert not outcome.success
    assert outcome.error_type == "ConnectError"
