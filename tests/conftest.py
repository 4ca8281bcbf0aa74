import asyncio
import io
import json
from types import SimpleNamespace
from typing import Any, Callable, List, Optional

import httpx
import pytest
from PIL import Image

from dal.post_dal import PostDAL
from services.storage.object_store import ObjectStore
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import Settings


def make_image_bytes(fmt: str = "JPEG", size=(8, 8), color=(200, 80, 40)) -> bytes:
    mode = "RGBA" if fmt == "PNG" else "RGB"
    fill = color + (255,) if mode == "RGBA" else color
    buffer = io.BytesIO()
    Image.new(mode, size, fill).save(buffer, format=fmt)
    return buffer.getvalue()


def model_text(score: Any, reasoning: str = "Grilled salmon with greens", confidence: Any = 4) -> str:
    return "Here is my analysis:\n" + json.dumps(
        {"score": score, "reasoning": reasoning, "confidence": confidence}
    )


class FakeResponses:
    """Stand-in for `AsyncOpenAI().responses` returning queued outcomes.

    Each queued item is either a string (returned as `output_text`), an
    exception (raised) or a coroutine function (awaited). The last item is
    reused once the queue runs dry.
    """

    def __init__(self, outcomes: List[Any]) -> None:
        self.outcomes = list(outcomes)
        self.calls: List[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            outcome = await outcome()
        return SimpleNamespace(output=[], output_text=outcome)


class FakeOpenAI:
    def __init__(self, *outcomes: Any) -> None:
        self.responses = FakeResponses(list(outcomes) or [model_text(7)])


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def mock_http_client(
    *,
    image_bytes: Optional[bytes] = None,
    image_status: int = 200,
    score_handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
) -> httpx.AsyncClient:
    """Client whose GETs return an image and whose POSTs go to `score_handler`."""
    payload = image_bytes if image_bytes is not None else make_image_bytes()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(image_status, content=payload if image_status == 200 else b"")
        if score_handler is not None:
            return score_handler(request)
        return httpx.Response(
            200,
            json={"success": True, "score": 8, "reasoning": "Balanced meal", "confidence": 4,
                  "model": "gpt-4o-mini", "analysis_time": 12},
        )

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG")


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


@pytest.fixture
def db_initializer(tmp_path) -> AsyncDatabaseInitializer:
    return AsyncDatabaseInitializer(tmp_path / "db")


@pytest.fixture
def post_dal(db_initializer) -> PostDAL:
    return PostDAL(db_initializer)


@pytest.fixture
def object_store(tmp_path) -> ObjectStore:
    return ObjectStore(tmp_path / "storage", "food-photos", "http://testserver")


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_dir=tmp_path / "db",
        storage_dir=tmp_path / "storage",
        public_base_url="http://testserver",
        scoring_function_url="http://testserver/functions/v1/score-food",
        scoring_models=("model-fast", "model-standard"),
    )


def run(coro):
    """Run a coroutine from a synchronous test (outside any running loop)."""
    return asyncio.run(coro)
