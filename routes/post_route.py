"""FastAPI routes for meal posts and their health scores."""

from typing import Optional

from fastapi import APIRouter, File, Header, HTTPException, Query, Request, UploadFile

from controllers.post_controller import (
    create_post,
    get_post,
    list_posts,
    require_user,
    score_latest,
    today_score,
)

router = APIRouter(prefix="/posts", tags=["posts"])


@router.post("", status_code=201, summary="Upload a meal photo")
async def create_post_route(
    request: Request,
    image: UploadFile = File(...),
    x_user_id: Optional[str] = Header(None),
):
    """Store the photo, create the post and start scoring in the background."""
    user_id = require_user(x_user_id)
    try:
        return await create_post(request, user_id, image)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("")
async def list_posts_route(
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    x_user_id: Optional[str] = Header(None),
):
    user_id = require_user(x_user_id)
    try:
        return await list_posts(request, user_id, limit, offset)
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("/today-score")
async def today_score_route(request: Request, x_user_id: Optional[str] = Header(None)):
    """Return today's total, count and average health score for the caller."""
    user_id = require_user(x_user_id)
    return await today_score(request, user_id)


@router.post("/score-latest")
async def score_latest_route(request: Request, x_user_id: Optional[str] = Header(None)):
    """Score the caller's newest unscored post and wait for the outcome."""
    user_id = require_user(x_user_id)
    return await score_latest(request, user_id)


@router.get("/{post_id}")
async def get_post_route(request: Request, post_id: str, x_user_id: Optional[str] = Header(None)):
    user_id = require_user(x_user_id)
    try:
        return await get_post(request, user_id, post_id)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
