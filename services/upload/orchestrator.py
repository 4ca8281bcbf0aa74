"""Upload flow: store the photo, create the post, start scoring in the background.

Steps run strictly in order and each must succeed before the next starts.
Scoring is detached: `upload()` returns once the post row exists, and the
scoring outcome only reaches the optional `on_scoring_complete` observer or
the log.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Set

from dal.post_dal import PostDAL
from models.image_asset import ImageAsset
from models.scoring import ScoringOutcome, UploadResult
from services.errors import MetadataInsertFailed, StorageUploadFailed, ValidationError
from services.scoring.trigger import ScoringTrigger
from services.storage.object_store import ObjectStore, generate_unique_filename
from utils.media_validation import ensure_jpeg
from utils.timeouts import SleepFn

LOGGER = logging.getLogger(__name__)

ScoreObserver = Callable[[int, str], None]

PHOTO_FOLDER = "food-photos"


class UploadOrchestrator:
    """Coordinate storage upload, post creation and background scoring.

    Args:
        store: Object store receiving the JPEG bytes.
        post_dal: Data access for the `posts` table.
        trigger: Client for the scoring function.
        max_retries: Storage upload attempts before giving up.
        sleep: Awaitable sleep used for backoff (injectable for tests).
    """

    def __init__(
        self,
        store: ObjectStore,
        post_dal: PostDAL,
        trigger: ScoringTrigger,
        *,
        max_retries: int = 3,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self.store = store
        self.post_dal = post_dal
        self.trigger = trigger
        self.max_retries = max_retries
        self._sleep = sleep or asyncio.sleep
        self._uploading: Set[str] = set()
        self._background: Set["asyncio.Task[None]"] = set()

    @property
    def pending_tasks(self) -> int:
        return len(self._background)

    def is_uploading(self, user_id: str) -> bool:
        return user_id in self._uploading

    async def upload_image_to_storage(self, image: ImageAsset) -> UploadResult:
        """Store the photo, retrying with exponential backoff (2, 4, ... seconds).

        Bytes that cannot be decoded as an image fail at once with
        `ValidationError`; only storage failures are retried.
        """
        last_error = ""
        for attempt in range(1, self.max_retries + 1):
            LOGGER.info("Upload attempt %d/%d...", attempt, self.max_retries)
            try:
                raw = await image.read_bytes()
                jpeg = await asyncio.to_thread(ensure_jpeg, raw)
                LOGGER.info("File blob created, size: %d", len(jpeg))

                path = f"{PHOTO_FOLDER}/{generate_unique_filename()}"
                stored = await self.store.upload(path, jpeg, content_type="image/jpeg")
                LOGGER.info("Upload successful: %s", stored.path)
                return UploadResult(success=True, image_url=stored.url, image_path=stored.path)
            except ValueError as exc:
                LOGGER.error("Upload rejected, not a usable image: %s", exc)
                return UploadResult.failure(f"Invalid image: {exc}", ValidationError.__name__)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                last_error = str(exc) or "Unknown upload error"
                LOGGER.error("Upload attempt %d failed: %s", attempt, last_error)

            if attempt < self.max_retries:
                await self._sleep(2 ** attempt)

        return UploadResult.failure(
            f"Upload failed after {self.max_retries} attempts: {last_error}",
            StorageUploadFailed.__name__,
        )

    async def create_post_record(self, image_url: str, image_path: str, user_id: Optional[str]) -> UploadResult:
        """Insert an unscored post referencing the stored image."""
        if not user_id:
            return UploadResult.failure("User not authenticated", MetadataInsertFailed.__name__)
        try:
            record = await self.post_dal.create_post(user_id, image_url, image_path)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("Database insert error: %s", exc)
            return UploadResult.failure(f"Failed to create post record: {exc}", MetadataInsertFailed.__name__)

        LOGGER.info("Post record created: %s", record.id)
        return UploadResult(success=True, image_url=image_url, image_path=image_path, post_id=record.id)

    async def upload(
        self,
        image: ImageAsset,
        user_id: Optional[str],
        on_scoring_complete: Optional[ScoreObserver] = None,
    ) -> Optional[UploadResult]:
        """Run the complete upload flow for one photo.

        Returns None (and does nothing) when an upload for the same user is
        already in flight.
        """
        gate_key = user_id or ""
        if gate_key in self._uploading:
            LOGGER.warning("[IMAGE-UPLOAD] Upload already in progress for user %s; ignoring", user_id)
            return None

        self._uploading.add(gate_key)
        try:
            return await self._upload(image, user_id, on_scoring_complete)
        finally:
            self._uploading.discard(gate_key)

    async def _upload(
        self,
        image: ImageAsset,
        user_id: Optional[str],
        on_scoring_complete: Optional[ScoreObserver],
    ) -> UploadResult:
        LOGGER.info("Starting complete upload flow...")

        stored = await self.upload_image_to_storage(image)
        if not stored.success:
            return stored

        LOGGER.info("Image uploaded successfully, creating post record...")
        post = await self.create_post_record(stored.image_url, stored.image_path, user_id)
        if not post.success:
            # The stored object is left in place; there is no compensating delete.
            LOGGER.warning("Post creation failed, but image was uploaded to: %s", stored.image_path)
            return post

        LOGGER.info("[IMAGE-UPLOAD] Starting AI scoring for post %s", post.post_id)
        self._start_scoring(stored.image_url, post.post_id, on_scoring_complete)

        return UploadResult(
            success=True,
            image_url=stored.image_url,
            image_path=stored.image_path,
            post_id=post.post_id,
        )

    def _start_scoring(self, image_url: str, post_id: str, observer: Optional[ScoreObserver]) -> None:
        task = asyncio.create_task(self._score_in_background(image_url, post_id, observer))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _score_in_background(self, image_url: str, post_id: str, observer: Optional[ScoreObserver]) -> None:
        try:
            outcome: ScoringOutcome = await self.trigger.score_food(image_url, post_id)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("[IMAGE-UPLOAD] AI scoring error: %s", exc)
            return

        if not outcome.success:
            LOGGER.error("[IMAGE-UPLOAD] AI scoring failed: %s", outcome.error)
            return

        LOGGER.info("[IMAGE-UPLOAD] AI scoring completed: %s/10", outcome.score)
        if observer is not None and outcome.score and outcome.reasoning:
            try:
                observer(outcome.score, outcome.reasoning)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                LOGGER.error("[IMAGE-UPLOAD] Scoring observer raised: %s", exc)

    async def wait_for_background_tasks(self, timeout: Optional[float] = None) -> bool:
        """Wait until every detached scoring task has finished.

        Returns False when `timeout` seconds pass first; the remaining tasks
        are left running.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._background:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                LOGGER.warning("[IMAGE-UPLOAD] %d scoring task(s) still running", len(self._background))
                return False
            await asyncio.wait(set(self._background), timeout=remaining)
        return True
