import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request, UploadFile

from dal.post_dal import PostDAL
from models.image_asset import ImageAsset
from services.errors import StorageUploadFailed, ValidationError
from services.scoring.history import HealthScoreHistory
from services.upload.orchestrator import UploadOrchestrator
from utils.media_validation import read_image_bytes

LOGGER = logging.getLogger(__name__)


def require_user(user_id: Optional[str]) -> str:
    """Return the caller id or raise 401 when it is missing."""
    cleaned = (user_id or "").strip()
    if not cleaned:
        raise HTTPException(status_code=401, detail="User not authenticated")
    return cleaned


def _log_score(user_id: str):
    def _observer(score: int, reasoning: str) -> None:
        LOGGER.info("Score ready for user %s: %s/10 (%s)", user_id, score, reasoning)

    return _observer


async def create_post(request: Request, user_id: str, image: UploadFile) -> Dict[str, Any]:
    """Upload a photo, create its post and start scoring in the background.

    Args:
        request: FastAPI Request object (used to access app.state for shared services).
        user_id: Authenticated caller.
        image: Uploaded photo.

    Returns:
        A dict containing: image_url, image_path, post_id.

    Raises:
        HTTPException(400) if the bytes are not a decodable image,
        HTTPException(409) if an upload for this user is in flight,
        HTTPException(502) if storage failed after all retries,
        HTTPException(500) if the post row could not be created.
    """
    image_bytes = await read_image_bytes(image)
    orchestrator: UploadOrchestrator = request.app.state.upload_orchestrator

    result = await orchestrator.upload(
        ImageAsset(data=image_bytes, filename=image.filename),
        user_id,
        on_scoring_complete=_log_score(user_id),
    )
    if result is None:
        raise HTTPException(status_code=409, detail="Upload already in progress")
    if not result.success:
        status = {StorageUploadFailed.__name__: 502, ValidationError.__name__: 400}.get(result.error_type, 500)
        raise HTTPException(status_code=status, detail=result.error)

    return {"image_url": result.image_url, "image_path": result.image_path, "post_id": result.post_id}


async def list_posts(request: Request, user_id: str, limit: int, offset: int) -> List[Dict[str, Any]]:
    post_dal = PostDAL(request.app.state.db_initializer)
    posts = await post_dal.list_posts_for_user(user_id, limit=limit, offset=offset)
    return [post.to_dict() for post in posts]


async def get_post(request: Request, user_id: str, post_id: str) -> Dict[str, Any]:
    """Return one post owned by `user_id`.

    Raises:
        HTTPException(404) if the post does not exist or belongs to another user.
    """
    post_dal = PostDAL(request.app.state.db_initializer)
    record = await post_dal.get_post(post_id)
    if record is None or record.user_id != user_id:
        raise HTTPException(status_code=404, detail="Post not found")
    return record.to_dict()


async def today_score(request: Request, user_id: str) -> Dict[str, Any]:
    history: HealthScoreHistory = request.app.state.score_history
    summary = await history.get_today_health_score(user_id)
    return {
        "total_score": summary.total_score,
        "post_count": summary.post_count,
        "average_score": summary.average_score,
    }


async def score_latest(request: Request, user_id: str) -> Dict[str, Any]:
    history: HealthScoreHistory = request.app.state.score_history
    outcome = await history.score_latest_post(user_id)
    return outcome.to_dict()
