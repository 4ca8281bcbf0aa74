import asyncio
import io

from PIL import Image

from models.image_asset import ImageAsset
from models.scoring import ScoringOutcome
from services.errors import StorageError
from services.storage.object_store import ObjectStore
from services.upload.orchestrator import UploadOrchestrator


class FlakyStore(ObjectStore):
    """Object store failing the first `failures` uploads."""

    def __init__(self, *args, failures=0, **kwargs):
        super().__init__(*args, **kwargs)
        self.failures = failures
        self.calls = 0

    async def upload(self, path, data, content_type="image/jpeg"):
        self.calls += 1
        if self.calls <= self.failures:
            raise StorageError("connection reset")
        return await super().upload(path, data, content_type)


class GatedTrigger:
    """Scoring trigger that waits for `release` before answering."""

    def __init__(self, outcome=None):
        self.release = asyncio.Event()
        self.calls = []
        self.outcome = outcome or ScoringOutcome(
            success=True, score=8, reasoning="Balanced meal", confidence=4, model="model-fast", analysis_time_ms=10
        )

    async def score_food(self, image_url, post_id):
        self.calls.append((image_url, post_id))
        await self.release.wait()
        return self.outcome


def _orchestrator(tmp_path, post_dal, sleep_recorder, *, failures=0, trigger=None):
    store = FlakyStore(tmp_path / "storage", "food-photos", "http://testserver", failures=failures)
    orchestrator = UploadOrchestrator(
        store, post_dal, trigger or GatedTrigger(), max_retries=3, sleep=sleep_recorder
    )
    return orchestrator, store


async def test_upload_returns_before_scoring_completes(tmp_path, post_dal, sleep_recorder, jpeg_bytes):
    trigger = GatedTrigger()
    orchestrator, store = _orchestrator(tmp_path, post_dal, sleep_recorder, trigger=trigger)
    scores = []

    result = await orchestrator.upload(
        ImageAsset(data=jpeg_bytes), "user-1", on_scoring_complete=lambda s, r: scores.append((s, r))
    )

    assert result.success
    assert result.image_path.startswith("food-photos/food_")
    assert result.image_url.endswith(result.image_path)
    post = await post_dal.get_post(result.post_id)
    assert post.health_score is None
    assert post.image_path == result.image_path
    assert (store.bucket_dir / result.image_path).read_bytes() == jpeg_bytes
    assert orchestrator.pending_tasks == 1

    trigger.release.set()
    await orchestrator.wait_for_background_tasks()
    assert trigger.calls == [(result.image_url, result.post_id)]
    assert scores == [(8, "Balanced meal")]
    assert orchestrator.pending_tasks == 0


async def test_storage_retries_with_exponential_backoff(tmp_path, post_dal, sleep_recorder, jpeg_bytes):
    orchestrator, store = _orchestrator(tmp_path, post_dal, sleep_recorder, failures=2)

    result = await orchestrator.upload(ImageAsset(data=jpeg_bytes), "user-1")

    assert result.success
    assert store.calls == 3
    assert sleep_recorder.delays == [2, 4]


async def test_storage_failure_after_all_attempts(tmp_path, post_dal, sleep_recorder, jpeg_bytes):
    trigger = GatedTrigger()
    orchestrator, store = _orchestrator(tmp_path, post_dal, sleep_recorder, failures=3, trigger=trigger)

    result = await orchestrator.upload(ImageAsset(data=jpeg_bytes), "user-1")

    assert not result.success
    assert result.error_type == "StorageUploadFailed"
    assert result.error == "Upload failed after 3 attempts: connection reset"
    assert store.calls == 3
    assert sleep_recorder.delays == [2, 4]
    assert await post_dal.list_posts_for_user("user-1") == []
    assert trigger.calls == []


async def test_missing_user_leaves_uploaded_object(tmp_path, post_dal, sleep_recorder, jpeg_bytes):
    trigger = GatedTrigger()
    orchestrator, store = _orchestrator(tmp_path, post_dal, sleep_recorder, trigger=trigger)

    result = await orchestrator.upload(ImageAsset(data=jpeg_bytes), None)

    assert not result.success
    assert result.error_type == "MetadataInsertFailed"
    assert result.error == "User not authenticated"
    assert len(list((store.bucket_dir / "food-photos").iterdir())) == 1
    assert trigger.calls == []


async def test_scoring_failure_does_not_affect_upload(tmp_path, post_dal, sleep_recorder, jpeg_bytes):
    trigger = GatedTrigger(ScoringOutcome.failure("Scoring failed: boom", "ScoringFunctionError"))
    trigger.release.set()
    orchestrator, _ = _orchestrator(tmp_path, post_dal, sleep_recorder, trigger=trigger)
    scores = []

    result = await orchestrator.upload(
        ImageAsset(data=jpeg_bytes), "user-1", on_scoring_complete=lambda s, r: scores.append(s)
    )
    await orchestrator.wait_for_background_tasks()

    assert result.success
    assert scores == []
    assert (await post_dal.get_post(result.post_id)).health_score is None


async def test_concurrent_upload_for_same_user_is_ignored(tmp_path, post_dal, jpeg_bytes):
    gate = asyncio.Event()

    async def slow_sleep(seconds):
        await gate.wait()

    # The first upload blocks in its backoff sleep after one failed attempt.
    store = FlakyStore(tmp_path / "storage", "food-photos", "http://testserver", failures=1)
    trigger = GatedTrigger()
    trigger.release.set()
    orchestrator = UploadOrchestrator(store, post_dal, trigger, sleep=slow_sleep)

    first = asyncio.create_task(orchestrator.upload(ImageAsset(data=jpeg_bytes), "user-1"))
    await asyncio.sleep(0.05)
    assert orchestrator.is_uploading("user-1")

    assert await orchestrator.upload(ImageAsset(data=jpeg_bytes), "user-1") is None
    other = await orchestrator.upload(ImageAsset(data=jpeg_bytes), "user-2")
    assert other.success

    gate.set()
    assert (await first).success
    assert not orchestrator.is_uploading("user-1")
    await orchestrator.wait_for_background_tasks()


async def test_non_jpeg_input_is_stored_as_jpeg(tmp_path, post_dal, sleep_recorder, png_bytes):
    orchestrator, store = _orchestrator(tmp_path, post_dal, sleep_recorder)
    orchestrator.trigger.release.set()

    result = await orchestrator.upload(ImageAsset(data=png_bytes), "user-1")
    await orchestrator.wait_for_background_tasks()

    stored = (store.bucket_dir / result.image_path).read_bytes()
    assert Image.open(io.BytesIO(stored)).format == "JPEG"


async def test_file_uri_asset_is_read(tmp_path, post_dal, sleep_recorder, jpeg_bytes):
    source = tmp_path / "capture.jpg"
    source.write_bytes(jpeg_bytes)
    orchestrator, store = _orchestrator(tmp_path, post_dal, sleep_recorder)
    orchestrator.trigger.release.set()

    result = await orchestrator.upload(ImageAsset(uri=source.as_uri()), "user-1")
    await orchestrator.wait_for_background_tasks()

    assert (store.bucket_dir / result.image_path).read_bytes() == jpeg_bytes


async def test_undecodable_bytes_are_rejected_without_retry(tmp_path, post_dal, sleep_recorder):
    trigger = GatedTrigger()
    orchestrator, store = _orchestrator(tmp_path, post_dal, sleep_recorder, trigger=trigger)

    result = await orchestrator.upload(ImageAsset(data=b"definitely not an image"), "user-1")

    assert not result.success
    assert result.error_type == "ValidationError"
    assert result.error.startswith("Invalid image:")
    assert store.calls == 0
    assert sleep_recorder.delays == []
    assert await post_dal.list_posts_for_user("user-1") == []
    assert trigger.calls == []


async def test_background_wait_can_be_bounded(tmp_path, post_dal, sleep_recorder, jpeg_bytes):
    trigger = GatedTrigger()
    orchestrator, _ = _orchestrator(tmp_path, post_dal, sleep_recorder, trigger=trigger)
    await orchestrator.upload(ImageAsset(data=jpeg_bytes), "user-1")

    assert await orchestrator.wait_for_background_tasks(timeout=0.05) is False
    assert orchestrator.pending_tasks == 1

    trigger.release.set()
    assert await orchestrator.wait_for_background_tasks() is True
    assert orchestrator.pending_tasks == 0
