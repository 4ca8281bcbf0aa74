from fastapi import APIRouter, Request

from controllers.score_controller import score_food

router = APIRouter(tags=["scoring"])


@router.api_route(
    "/functions/v1/score-food",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
)
async def score_food_route(request: Request):
    """Score the food photo of a post and persist the result.

    Method checks live in the controller so that OPTIONS and disallowed
    methods receive the same CORS headers as POST.
    """
    return await score_food(request)
